"""
Order status state machine.

Pure data and predicates; the transactional guard that applies a transition
lives in ``transition_service``.
"""

from __future__ import annotations

from shared.config.constants import OrderStatus

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.SUBMITTED: frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.AWAITING_PAYMENT: frozenset({OrderStatus.PENDING, OrderStatus.CANCELLED}),
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SERVED}),
    OrderStatus.SERVED: frozenset({OrderStatus.COMPLETED}),
    # PAID is a recognised state with no outgoing moves; payment is tracked
    # on payment_status and settling a served order completes it.
    OrderStatus.PAID: frozenset(),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """True iff ``current -> target`` is a listed transition."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)


def can_confirm_on_payment(current: str, target: str) -> bool:
    """
    Settling payment confirms an order still waiting for it.

    This is the only way AWAITING_PAYMENT reaches CONFIRMED; a plain status
    update must pass through PENDING.
    """
    return target == OrderStatus.CONFIRMED and current in OrderStatus.PAYABLE_BEFORE_CONFIRMATION


def consumes_stock(current: str, target: str) -> bool:
    """First entry into CONFIRMED consumes inventory."""
    return target == OrderStatus.CONFIRMED and current != OrderStatus.CONFIRMED


def restores_stock(current: str, target: str) -> bool:
    """Cancelling after stock was consumed gives it back."""
    return target == OrderStatus.CANCELLED and current in OrderStatus.STOCK_COMMITTED
