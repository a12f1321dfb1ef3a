"""
Order projection and lifecycle event construction.
"""

from __future__ import annotations

from typing import Any

from shared.infrastructure.correlation import get_request_id
from shared.infrastructure.events import Event
from shared.utils.schemas import OrderOutput
from rest_api.models import Order


def project_order(order: Order) -> dict[str, Any]:
    """Full JSON-ready projection of an order, items, modifiers and payments."""
    return OrderOutput.model_validate(order).model_dump(mode="json")


def _actor_summary(actor: dict[str, Any] | None) -> dict[str, Any]:
    # Tokens carry more than observers need to see
    if not actor:
        return {}
    return {"user_id": actor.get("user_id"), "roles": list(actor.get("roles", []))}


def build_order_event(event_type: str, order: Order, actor: dict[str, Any] | None = None) -> Event:
    """
    Build a lifecycle event carrying the current projection.

    ``updated_at`` is copied from the projection so receivers can compare
    it with what they already applied.
    """
    projection = project_order(order)
    return Event(
        type=event_type,
        branch_id=order.branch_id,
        order_id=order.id,
        updated_at=projection["updated_at"],
        order=projection,
        actor=_actor_summary(actor),
        request_id=get_request_id() or None,
    )
