"""
Centralized constants for the order engine.
Avoid magic strings and repeated constants.

Usage:
    from shared.config.constants import OrderStatus, Roles

    if status == OrderStatus.CONFIRMED:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """Staff role constants."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    CASHIER: Final[str] = "CASHIER"
    KITCHEN: Final[str] = "KITCHEN"

    ALL: Final[list[str]] = [ADMIN, MANAGER, CASHIER, KITCHEN]


# Role groups for common access patterns
MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})
CASHIER_ACCESS_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.CASHIER})
KITCHEN_ACCESS_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.KITCHEN})
ALL_STAFF_ROLES: Final[frozenset[str]] = frozenset(Roles.ALL)


# =============================================================================
# Order Status Constants
# =============================================================================


class OrderStatus:
    """Order lifecycle status constants."""

    SUBMITTED: Final[str] = "SUBMITTED"  # Cash order placed at the table
    AWAITING_PAYMENT: Final[str] = "AWAITING_PAYMENT"  # Card order waiting for the gateway
    PENDING: Final[str] = "PENDING"
    CONFIRMED: Final[str] = "CONFIRMED"  # Stock consumed, ticket sent to kitchen
    PREPARING: Final[str] = "PREPARING"
    READY: Final[str] = "READY"
    SERVED: Final[str] = "SERVED"
    PAID: Final[str] = "PAID"
    COMPLETED: Final[str] = "COMPLETED"
    CANCELLED: Final[str] = "CANCELLED"

    ALL: Final[list[str]] = [
        SUBMITTED, AWAITING_PAYMENT, PENDING, CONFIRMED, PREPARING,
        READY, SERVED, PAID, COMPLETED, CANCELLED,
    ]
    TERMINAL: Final[list[str]] = [COMPLETED, CANCELLED]
    # Cancelling from these restores consumed stock
    STOCK_COMMITTED: Final[list[str]] = [CONFIRMED, PREPARING]
    # Settling payment from these also confirms the order
    PAYABLE_BEFORE_CONFIRMATION: Final[list[str]] = [AWAITING_PAYMENT, PENDING]


class PaymentStatus:
    """Order payment status constants."""

    UNPAID: Final[str] = "UNPAID"
    PENDING: Final[str] = "PENDING"
    PAID: Final[str] = "PAID"

    ALL: Final[list[str]] = [UNPAID, PENDING, PAID]


class PaymentMethod:
    """Payment method constants."""

    CASH: Final[str] = "CASH"
    CARD: Final[str] = "CARD"

    ALL: Final[list[str]] = [CASH, CARD]


# =============================================================================
# Inventory Constants
# =============================================================================


class StockMovementReason:
    """Reasons recorded on stock movements."""

    CONSUMPTION: Final[str] = "CONSUMPTION"  # Order confirmed
    RESTORATION: Final[str] = "RESTORATION"  # Confirmed order cancelled
    ADJUSTMENT: Final[str] = "ADJUSTMENT"  # Manual count correction
    PURCHASE: Final[str] = "PURCHASE"
    WASTE: Final[str] = "WASTE"

    MANUAL: Final[list[str]] = [ADJUSTMENT, PURCHASE, WASTE]


# =============================================================================
# Audit Actions
# =============================================================================


class AuditAction:
    """Actions written to the audit log by the order engine."""

    ORDER_CREATE: Final[str] = "ORDER_CREATE"
    ORDER_STATUS_UPDATE: Final[str] = "ORDER_STATUS_UPDATE"
    ORDER_CANCEL: Final[str] = "ORDER_CANCEL"
    ORDER_KITCHEN_ACK: Final[str] = "ORDER_KITCHEN_ACK"
    PAYMENT_RECORD: Final[str] = "PAYMENT_RECORD"
    STOCK_ADJUST: Final[str] = "STOCK_ADJUST"


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Input and paging limits."""

    MAX_ITEMS_PER_ORDER: Final[int] = 100
    MAX_QUANTITY_PER_ITEM: Final[int] = 99
    MAX_MODIFIERS_PER_ITEM: Final[int] = 20
    MAX_NOTE_LENGTH: Final[int] = 500
    MAX_CUSTOMER_NAME_LENGTH: Final[int] = 100
    ORDER_CODE_SEQUENCE_WIDTH: Final[int] = 4
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200
