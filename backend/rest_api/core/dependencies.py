"""
Shared FastAPI dependencies for the order routers.
"""

from typing import Any

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context
from rest_api.services.domain import InventoryService, OrderService, OrderTransitionService
from rest_api.services.events import (
    BackgroundFanout,
    EventFanout,
    NullEventFanout,
    RedisEventFanout,
)


def get_event_fanout(request: Request, background_tasks: BackgroundTasks) -> EventFanout:
    """
    Fanout for the current request.

    Events are handed to Redis after the response is sent, so a slow or
    unavailable broker never delays the HTTP reply.
    """
    if not settings.event_fanout_enabled:
        return NullEventFanout()
    fanout = getattr(request.app.state, "event_fanout", None)
    if fanout is None:
        fanout = RedisEventFanout()
        request.app.state.event_fanout = fanout
    return BackgroundFanout(background_tasks, fanout)


def get_actor(ctx: dict[str, Any] = Depends(current_user_context)) -> dict[str, Any]:
    """Verified staff claims reduced to what services record."""
    return {
        "sub": ctx["sub"],
        "user_id": int(ctx["sub"]),
        "roles": list(ctx.get("roles", [])),
        "branch_ids": list(ctx.get("branch_ids", [])),
    }


def get_order_service(
    db: Session = Depends(get_db),
    fanout: EventFanout = Depends(get_event_fanout),
) -> OrderService:
    return OrderService(db, fanout=fanout)


def get_transition_service(
    db: Session = Depends(get_db),
    fanout: EventFanout = Depends(get_event_fanout),
) -> OrderTransitionService:
    return OrderTransitionService(db, fanout=fanout)


def get_inventory_service(db: Session = Depends(get_db)) -> InventoryService:
    return InventoryService(db)
