"""
Tests for event routing, publishing and fanout.
"""

import json
from unittest.mock import MagicMock

import pytest
import redis
from fastapi import BackgroundTasks

from rest_api.services.events import (
    BackgroundFanout,
    LocalEventFanout,
    NullEventFanout,
    RedisEventFanout,
    publish_committed,
)
from shared.infrastructure.events import (
    ALL_EVENT_TYPES,
    EVENT_ROUTES,
    KITCHEN_ACK,
    ORDER_CANCELLED,
    ORDER_CREATED,
    ORDER_PAID,
    ORDER_UPDATED,
    PAYMENT_UPDATED,
    CircuitState,
    Event,
    EventCircuitBreaker,
    EventTooLargeError,
    get_event_circuit_breaker,
    parse_room,
    publish_event,
    publish_to_rooms,
    rooms_for_event,
)


def make_event(event_type=ORDER_UPDATED, branch_id=1, order_id=5, updated_at="2025-10-28T15:00:00+00:00", **kwargs):
    return Event(type=event_type, branch_id=branch_id, order_id=order_id, updated_at=updated_at, **kwargs)


def no_sleep(_delay):
    pass


class TestRouting:
    """Which rooms each event type reaches."""

    @pytest.mark.parametrize("event_type", [ORDER_CREATED, ORDER_UPDATED, ORDER_CANCELLED])
    def test_lifecycle_events_reach_every_room(self, event_type):
        assert rooms_for_event(make_event(event_type)) == ["branch:1", "branch:1:kitchen", "branch:1:admin"]

    def test_paid_goes_to_kitchen_only(self):
        assert rooms_for_event(make_event(ORDER_PAID)) == ["branch:1:kitchen"]

    @pytest.mark.parametrize("event_type", [PAYMENT_UPDATED, KITCHEN_ACK])
    def test_payment_and_ack_skip_kitchen(self, event_type):
        assert rooms_for_event(make_event(event_type)) == ["branch:1", "branch:1:admin"]

    def test_every_type_is_routed(self):
        assert set(EVENT_ROUTES) == set(ALL_EVENT_TYPES)

    def test_rooms_are_scoped_to_the_branch(self):
        assert rooms_for_event(make_event(ORDER_PAID, branch_id=12)) == ["branch:12:kitchen"]


class TestRoomNames:
    """parse_room."""

    def test_parse_known_rooms(self):
        assert parse_room("branch:3") == (3, None)
        assert parse_room("branch:3:kitchen") == (3, "kitchen")
        assert parse_room("branch:3:admin") == (3, "admin")

    @pytest.mark.parametrize("room", ["", "branch:", "branch:0", "branch:3:bar", "tenant:1", "branch:x"])
    def test_unknown_rooms(self, room):
        assert parse_room(room) is None


class TestEventSchema:
    """Event validation and serialization."""

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            make_event("order.teleported")

    def test_non_positive_ids_rejected(self):
        with pytest.raises(ValueError):
            make_event(branch_id=0)
        with pytest.raises(ValueError):
            make_event(order_id=-1)

    def test_missing_updated_at_rejected(self):
        with pytest.raises(ValueError):
            make_event(updated_at="")

    def test_json_round_trip_keeps_key_fields(self):
        event = make_event(order={"id": 5, "status": "CONFIRMED"}, actor={"user_id": 7})

        restored = Event.from_json(event.to_json())

        assert (restored.type, restored.order_id, restored.updated_at) == (
            ORDER_UPDATED,
            5,
            "2025-10-28T15:00:00+00:00",
        )
        assert restored.order == {"id": 5, "status": "CONFIRMED"}
        assert restored.ts is not None


class TestPublishEvent:
    """publish_event retries and the circuit breaker."""

    def test_publishes_json_on_channel(self):
        client = MagicMock()
        client.publish.return_value = 2

        receivers = publish_event(client, "branch:1", make_event(), sleep=no_sleep)

        assert receivers == 2
        channel, payload = client.publish.call_args.args
        assert channel == "branch:1"
        assert json.loads(payload)["order_id"] == 5

    def test_retries_transient_failure(self):
        client = MagicMock()
        client.publish.side_effect = [redis.ConnectionError("reset"), 1]
        sleeps = []

        assert publish_event(client, "branch:1", make_event(), sleep=sleeps.append) == 1
        assert client.publish.call_count == 2
        assert len(sleeps) == 1

    def test_raises_after_all_retries(self):
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("down")

        with pytest.raises(redis.ConnectionError):
            publish_event(client, "branch:1", make_event(), sleep=no_sleep)

        assert client.publish.call_count == 3
        assert get_event_circuit_breaker().get_stats()["failure_count"] == 1

    def test_oversized_event_rejected(self):
        client = MagicMock()
        event = make_event(order={"blob": "x" * 200_000})

        with pytest.raises(EventTooLargeError):
            publish_event(client, "branch:1", event, sleep=no_sleep)

        client.publish.assert_not_called()

    def test_open_breaker_skips_publish(self):
        client = MagicMock()
        breaker = get_event_circuit_breaker()
        for _ in range(10):
            breaker.record_failure()

        assert publish_event(client, "branch:1", make_event(), sleep=no_sleep) == 0
        client.publish.assert_not_called()

    def test_publish_to_rooms(self):
        client = MagicMock()
        client.publish.return_value = 1

        result = publish_to_rooms(client, make_event(KITCHEN_ACK), sleep=no_sleep)

        assert result == {"branch:1": 1, "branch:1:admin": 1}


class TestCircuitBreaker:
    """EventCircuitBreaker state machine."""

    def test_opens_after_threshold(self):
        breaker = EventCircuitBreaker(failure_threshold=2, recovery_timeout=30.0)

        breaker.record_failure()
        assert breaker.can_execute()
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert not breaker.can_execute()
        assert breaker.get_stats()["rejected_count"] == 1

    def test_half_open_after_timeout_then_recovers(self):
        now = [100.0]
        breaker = EventCircuitBreaker(failure_threshold=1, recovery_timeout=30.0, clock=lambda: now[0])
        breaker.record_failure()

        now[0] += 31
        assert breaker.can_execute()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_failed_half_open_call_reopens(self):
        now = [100.0]
        breaker = EventCircuitBreaker(failure_threshold=1, recovery_timeout=30.0, clock=lambda: now[0])
        breaker.record_failure()
        now[0] += 31
        breaker.can_execute()

        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN


class TestRedisEventFanout:
    """RedisEventFanout never raises into the caller."""

    def test_publishes_to_each_room(self):
        client = MagicMock()
        client.publish.return_value = 1
        fanout = RedisEventFanout(client_factory=lambda: client, sleep=no_sleep)

        fanout.publish(make_event(ORDER_CREATED))

        channels = [call.args[0] for call in client.publish.call_args_list]
        assert channels == ["branch:1", "branch:1:kitchen", "branch:1:admin"]

    def test_redis_failure_is_swallowed(self):
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("down")
        fanout = RedisEventFanout(client_factory=lambda: client, sleep=no_sleep)

        fanout.publish(make_event())

    def test_oversized_event_is_swallowed(self):
        client = MagicMock()
        fanout = RedisEventFanout(client_factory=lambda: client, sleep=no_sleep)

        fanout.publish(make_event(order={"blob": "x" * 200_000}))

        client.publish.assert_not_called()


class TestLocalEventFanout:
    """In-process rooms."""

    def test_subscriber_in_two_rooms_receives_once(self):
        fanout = LocalEventFanout()
        fanout.join("cashier", "branch:1")
        fanout.join("cashier", "branch:1:admin")

        fanout.publish(make_event(ORDER_CREATED))

        assert len(fanout.received("cashier")) == 1

    def test_room_filtering(self):
        fanout = LocalEventFanout()
        fanout.join("kitchen", "branch:1:kitchen")

        fanout.publish(make_event(PAYMENT_UPDATED))
        fanout.publish(make_event(ORDER_PAID))

        assert [e.type for e in fanout.received("kitchen")] == [ORDER_PAID]

    def test_leave_and_disconnect(self):
        fanout = LocalEventFanout()
        fanout.join("a", "branch:1")
        fanout.join("a", "branch:1:admin")
        fanout.join("b", "branch:1")

        fanout.leave("a", "branch:1")
        assert fanout.members("branch:1") == {"b"}

        fanout.disconnect("a")
        assert fanout.members("branch:1:admin") == set()

    def test_events_of_type_and_clear(self):
        fanout = LocalEventFanout()
        fanout.publish(make_event(ORDER_CREATED))
        fanout.publish(make_event(ORDER_UPDATED))

        assert len(fanout.events_of_type(ORDER_CREATED)) == 1

        fanout.clear()
        assert fanout.published == []


class TestPublishCommitted:
    """Post-commit handoff."""

    def test_none_fanout_is_ignored(self):
        publish_committed(None, [make_event()])

    def test_failure_does_not_stop_remaining_events(self):
        fanout = MagicMock()
        fanout.publish.side_effect = [RuntimeError("boom"), None]

        publish_committed(fanout, [make_event(PAYMENT_UPDATED), make_event(ORDER_UPDATED)])

        assert fanout.publish.call_count == 2

    def test_background_fanout_defers(self):
        tasks = BackgroundTasks()
        inner = MagicMock()

        BackgroundFanout(tasks, inner).publish(make_event())

        inner.publish.assert_not_called()
        assert len(tasks.tasks) == 1

    def test_null_fanout(self):
        NullEventFanout().publish(make_event())
