"""
Real-time event system over Redis pub/sub.

- event_types.py: Event type constants
- event_schema.py: Event dataclass with validation
- channels.py: Room / channel naming
- routing.py: Event type to room routing table
- circuit_breaker.py: Fail-fast when Redis is unavailable
- redis_pool.py: Sync pool (publishers) and async client (gateway)
- publisher.py: publish with retry and size check
"""

from .circuit_breaker import (
    CircuitState,
    EventCircuitBreaker,
    get_event_circuit_breaker,
    calculate_retry_delay_with_jitter,
)
from .event_types import (
    ORDER_CREATED,
    ORDER_UPDATED,
    ORDER_PAID,
    ORDER_CANCELLED,
    PAYMENT_UPDATED,
    KITCHEN_ACK,
    ALL_EVENT_TYPES,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import (
    BRANCH_CHANNEL_PATTERN,
    channel_branch,
    channel_branch_kitchen,
    channel_branch_admin,
    parse_room,
)
from .routing import EVENT_ROUTES, rooms_for_event
from .redis_pool import (
    get_redis_pool,
    close_redis_pool,
    get_redis_sync_client,
    close_redis_sync_client,
)
from .publisher import EventTooLargeError, publish_event, publish_to_rooms

__all__ = [
    # Circuit breaker
    "CircuitState",
    "EventCircuitBreaker",
    "get_event_circuit_breaker",
    "calculate_retry_delay_with_jitter",
    # Event types
    "ORDER_CREATED",
    "ORDER_UPDATED",
    "ORDER_PAID",
    "ORDER_CANCELLED",
    "PAYMENT_UPDATED",
    "KITCHEN_ACK",
    "ALL_EVENT_TYPES",
    "MAX_EVENT_SIZE",
    # Schema
    "Event",
    # Channels
    "BRANCH_CHANNEL_PATTERN",
    "channel_branch",
    "channel_branch_kitchen",
    "channel_branch_admin",
    "parse_room",
    # Routing
    "EVENT_ROUTES",
    "rooms_for_event",
    # Redis
    "get_redis_pool",
    "close_redis_pool",
    "get_redis_sync_client",
    "close_redis_sync_client",
    # Publishing
    "EventTooLargeError",
    "publish_event",
    "publish_to_rooms",
]
