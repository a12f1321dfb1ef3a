"""
Domain Services - application layer of the order engine.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import OrderTransitionService

    service = OrderTransitionService(db, fanout=fanout)
    order = service.transition_status(order_id, "CONFIRMED", actor=actor)
"""

from .errors import (
    OrderLifecycleError,
    OrderValidationError,
    CatalogReferenceError,
    InvalidTransitionError,
    OrderConflictError,
    OrderPersistenceError,
    OrderNotFoundError,
    StockItemNotFoundError,
)
from .pricing import PricedLine, OrderTotals, price_order, rate_from_bps, round_half_up_cents
from .state_machine import ALLOWED_TRANSITIONS, can_confirm_on_payment, can_transition, is_terminal
from .sequence_allocator import SequenceAllocator, format_order_code
from .inventory_service import InventoryService
from .order_service import OrderService, OrderFilters
from .transition_service import OrderTransitionService

__all__ = [
    # Errors
    "OrderLifecycleError",
    "OrderValidationError",
    "CatalogReferenceError",
    "InvalidTransitionError",
    "OrderConflictError",
    "OrderPersistenceError",
    "OrderNotFoundError",
    "StockItemNotFoundError",
    # Pricing
    "PricedLine",
    "OrderTotals",
    "price_order",
    "rate_from_bps",
    "round_half_up_cents",
    # Lifecycle
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "can_confirm_on_payment",
    "is_terminal",
    "SequenceAllocator",
    "format_order_code",
    # Services
    "InventoryService",
    "OrderService",
    "OrderFilters",
    "OrderTransitionService",
]
