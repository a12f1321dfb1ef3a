"""
Redis pub/sub subscriber for the WebSocket gateway.

Pattern-subscribes to every branch room channel and hands each valid event
to a callback together with the room named by its channel.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from shared.config.logging import get_logger
from shared.infrastructure.events import (
    BRANCH_CHANNEL_PATTERN,
    Event,
    get_redis_pool,
    parse_room,
)

logger = get_logger(__name__)

OnEvent = Callable[[str, Event], Awaitable[None]]


def _as_text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


async def dispatch_message(msg: dict, on_event: OnEvent) -> bool:
    """
    Validate one pub/sub message and pass it on.

    Returns False for messages that were dropped.
    """
    if msg.get("type") not in ("message", "pmessage"):
        return False

    room = _as_text(msg.get("channel") or "")
    parsed = parse_room(room)
    if parsed is None:
        logger.warning("Message on unknown channel", channel=room)
        return False

    try:
        event = Event.from_json(_as_text(msg["data"]))
    except (ValueError, TypeError) as e:
        # json.JSONDecodeError is a ValueError
        logger.warning("Invalid event dropped", channel=room, error=str(e))
        return False

    if event.branch_id != parsed[0]:
        logger.warning(
            "Event branch does not match channel",
            channel=room,
            branch_id=event.branch_id,
        )
        return False

    await on_event(room, event)
    return True


async def run_subscriber(on_event: OnEvent, pattern: str = BRANCH_CHANNEL_PATTERN) -> None:
    """
    Subscribe to branch room channels and dispatch messages until cancelled.
    """
    redis_pool = await get_redis_pool()
    pubsub = redis_pool.pubsub()
    await pubsub.psubscribe(pattern)

    logger.info("Redis subscriber started", pattern=pattern)

    try:
        async for msg in pubsub.listen():
            if msg is None:
                continue
            try:
                await dispatch_message(msg, on_event)
            except Exception as e:
                logger.error("Error handling Redis message", error=str(e), exc_info=True)
    except asyncio.CancelledError:
        logger.info("Redis subscriber cancelled")
        raise
    finally:
        await pubsub.punsubscribe(pattern)
        await pubsub.aclose()
