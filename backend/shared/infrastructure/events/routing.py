"""
Event routing: which rooms receive which event type.
"""

from __future__ import annotations

from typing import Callable

from .channels import channel_branch, channel_branch_kitchen, channel_branch_admin
from .event_schema import Event
from .event_types import (
    ORDER_CREATED,
    ORDER_UPDATED,
    ORDER_PAID,
    ORDER_CANCELLED,
    PAYMENT_UPDATED,
    KITCHEN_ACK,
)

_ALL_ROOMS: tuple[Callable[[int], str], ...] = (
    channel_branch,
    channel_branch_kitchen,
    channel_branch_admin,
)

EVENT_ROUTES: dict[str, tuple[Callable[[int], str], ...]] = {
    ORDER_CREATED: _ALL_ROOMS,
    ORDER_UPDATED: _ALL_ROOMS,
    ORDER_CANCELLED: _ALL_ROOMS,
    # "Send ticket to kitchen"
    ORDER_PAID: (channel_branch_kitchen,),
    PAYMENT_UPDATED: (channel_branch, channel_branch_admin),
    KITCHEN_ACK: (channel_branch, channel_branch_admin),
}


def rooms_for_event(event: Event) -> list[str]:
    """Room names the event must be delivered to."""
    return [room(event.branch_id) for room in EVENT_ROUTES[event.type]]
