"""
Event fanout.

Services hand committed lifecycle events to an ``EventFanout``. Delivery is
best-effort and at-most-once: publishing never raises into the caller and
nothing is replayed, so clients reconcile by re-fetching the order.

- RedisEventFanout: publishes each event on its room channels for ws_gateway
- LocalEventFanout: in-process rooms (tests, single-process deployments)
- BackgroundFanout: defers another fanout until after the HTTP response
- NullEventFanout: fanout disabled by configuration
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable, Protocol

import redis
from fastapi import BackgroundTasks

from shared.config.logging import get_logger
from shared.infrastructure.events import (
    Event,
    EventTooLargeError,
    get_redis_sync_client,
    publish_to_rooms,
    rooms_for_event,
)

logger = get_logger(__name__)


class EventFanout(Protocol):
    def publish(self, event: Event) -> None: ...


class RedisEventFanout:
    """Publishes to Redis pub/sub; the gateway relays to WebSocket rooms."""

    def __init__(
        self,
        client_factory: Callable[[], redis.Redis] = get_redis_sync_client,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client_factory = client_factory
        self._sleep = sleep

    def publish(self, event: Event) -> None:
        try:
            receivers = publish_to_rooms(self._client_factory(), event, sleep=self._sleep)
        except (redis.RedisError, EventTooLargeError) as e:
            logger.error(
                "Failed to publish order event",
                event_type=event.type,
                order_id=event.order_id,
                branch_id=event.branch_id,
                error=str(e),
            )
            return
        logger.debug(
            "Order event published",
            event_type=event.type,
            order_id=event.order_id,
            receivers=receivers,
        )


class LocalEventFanout:
    """
    In-process room registry.

    A subscriber joins any number of rooms and receives each event at most
    once, even when it sits in several of the rooms the event routes to.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._rooms: dict[str, set[str]] = defaultdict(set)
        self._inboxes: dict[str, list[Event]] = defaultdict(list)
        self.published: list[Event] = []

    def join(self, subscriber_id: str, room: str) -> None:
        with self._lock:
            self._rooms[room].add(subscriber_id)

    def leave(self, subscriber_id: str, room: str) -> None:
        with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(subscriber_id)
                if not members:
                    del self._rooms[room]

    def disconnect(self, subscriber_id: str) -> None:
        """Leave every room and drop undelivered events."""
        with self._lock:
            for room in list(self._rooms):
                self._rooms[room].discard(subscriber_id)
                if not self._rooms[room]:
                    del self._rooms[room]
            self._inboxes.pop(subscriber_id, None)

    def members(self, room: str) -> set[str]:
        with self._lock:
            return set(self._rooms.get(room, ()))

    def publish(self, event: Event) -> None:
        with self._lock:
            self.published.append(event)
            recipients: set[str] = set()
            for room in rooms_for_event(event):
                recipients |= self._rooms.get(room, set())
            for subscriber_id in recipients:
                self._inboxes[subscriber_id].append(event)

    def received(self, subscriber_id: str) -> list[Event]:
        with self._lock:
            return list(self._inboxes.get(subscriber_id, ()))

    def events_of_type(self, event_type: str) -> list[Event]:
        with self._lock:
            return [event for event in self.published if event.type == event_type]

    def clear(self) -> None:
        with self._lock:
            self.published.clear()
            self._inboxes.clear()


class BackgroundFanout:
    """Runs the wrapped fanout as a FastAPI background task."""

    def __init__(self, background_tasks: BackgroundTasks, inner: EventFanout):
        self._background_tasks = background_tasks
        self._inner = inner

    def publish(self, event: Event) -> None:
        self._background_tasks.add_task(self._inner.publish, event)


class NullEventFanout:
    def publish(self, event: Event) -> None:
        logger.debug("Event fanout disabled", event_type=event.type, order_id=event.order_id)


def publish_committed(fanout: EventFanout | None, events: list[Event]) -> None:
    """
    Hand events to the fanout after a successful commit.

    A failing fanout is logged and never propagates: the mutation is
    already durable.
    """
    if fanout is None:
        return
    for event in events:
        try:
            fanout.publish(event)
        except Exception as e:
            logger.error(
                "Event fanout failed after commit",
                event_type=event.type,
                order_id=event.order_id,
                error=str(e),
                exc_info=True,
            )
