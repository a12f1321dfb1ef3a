"""
Event publishing with retry, size check and circuit breaker.
"""

from __future__ import annotations

import time

import redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from .event_types import MAX_EVENT_SIZE
from .event_schema import Event
from .circuit_breaker import get_event_circuit_breaker, calculate_retry_delay_with_jitter
from .routing import rooms_for_event

logger = get_logger(__name__)


class EventTooLargeError(ValueError):
    """Serialized event exceeds the WebSocket frame limit."""


def _validate_event_size(event_json: str, event_type: str) -> None:
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise EventTooLargeError(
            f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )


def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: Event,
    sleep=time.sleep,
) -> int:
    """
    Publish an event to one Redis channel.

    Retries with jittered backoff up to ``redis_publish_max_retries`` times and
    feeds the shared circuit breaker.

    Returns:
        Number of subscribers that received the message; 0 when the circuit
        breaker is open.

    Raises:
        EventTooLargeError: If the serialized event is too large.
        redis.RedisError: If every attempt failed.
    """
    event_json = event.to_json()
    _validate_event_size(event_json, event.type)

    circuit_breaker = get_event_circuit_breaker()
    if not circuit_breaker.can_execute():
        logger.warning(
            "Event publish skipped - circuit breaker open",
            channel=channel,
            event_type=event.type,
        )
        return 0

    max_retries = max(1, settings.redis_publish_max_retries)
    last_error: redis.RedisError | None = None
    for attempt in range(max_retries):
        try:
            result = redis_client.publish(channel, event_json)
            circuit_breaker.record_success()
            return result
        except redis.RedisError as e:
            last_error = e
            if attempt < max_retries - 1:
                delay = calculate_retry_delay_with_jitter(
                    attempt, settings.redis_publish_retry_delay
                )
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    event_type=event.type,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                sleep(delay)

    circuit_breaker.record_failure()
    logger.error(
        "Redis publish failed after all retries",
        channel=channel,
        event_type=event.type,
        error=str(last_error),
    )
    raise last_error  # type: ignore[misc]


def publish_to_rooms(redis_client: redis.Redis, event: Event, sleep=time.sleep) -> dict[str, int]:
    """
    Publish an event to every room its type routes to.

    Returns a mapping of room name to receiver count.
    """
    return {
        room: publish_event(redis_client, room, event, sleep=sleep)
        for room in rooms_for_event(event)
    }
