"""
Shared Pydantic schemas used across the application.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

OrderStatusLiteral = Literal[
    "SUBMITTED",
    "AWAITING_PAYMENT",
    "PENDING",
    "CONFIRMED",
    "PREPARING",
    "READY",
    "SERVED",
    "PAID",
    "COMPLETED",
    "CANCELLED",
]
PaymentStatusLiteral = Literal["UNPAID", "PENDING", "PAID"]
PaymentMethodLiteral = Literal["CASH", "CARD"]
ManualStockReason = Literal["ADJUSTMENT", "PURCHASE", "WASTE"]


def _utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes; everything stored is UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# =============================================================================
# Order Creation
# =============================================================================


class OrderItemInput(BaseModel):
    """Input for a single line of a new order."""

    menu_item_id: int = Field(gt=0)
    quantity: int = Field(ge=1, le=Limits.MAX_QUANTITY_PER_ITEM)
    note: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)
    modifier_ids: list[int] = Field(default_factory=list, max_length=Limits.MAX_MODIFIERS_PER_ITEM)


class CreateOrderRequest(BaseModel):
    """
    Request to place an order.

    An empty ``items`` list is accepted here and rejected by the order
    service with "at least one item required".
    """

    branch_id: int = Field(gt=0)
    table_id: int | None = Field(default=None, gt=0)
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_CUSTOMER_NAME_LENGTH)
    items: list[OrderItemInput] = Field(default_factory=list, max_length=Limits.MAX_ITEMS_PER_ORDER)
    payment_method: PaymentMethodLiteral = "CASH"


class CreateOrderResponse(BaseModel):
    """Response after placing an order."""

    order_id: int
    order_code: str
    payment_reference: str
    status: OrderStatusLiteral
    total_cents: int


# =============================================================================
# Order Projection
# =============================================================================


class OrderItemModifierOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    modifier_id: int
    modifier_name: str
    extra_price_cents: int


class OrderItemOutput(BaseModel):
    """Output for one order line, with price snapshots."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    item_name: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    note: str | None = None
    modifiers: list[OrderItemModifierOutput] = Field(default_factory=list)


class PaymentOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    method: PaymentMethodLiteral
    amount_cents: int
    transaction_ref: str
    paid_at: datetime

    @field_validator("paid_at")
    @classmethod
    def _normalize_paid_at(cls, value: datetime) -> datetime:
        return _utc(value)


class OrderOutput(BaseModel):
    """
    Full order projection.

    Returned by the pull endpoints and embedded in every real-time event,
    keyed by ``(id, updated_at)``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    branch_id: int
    table_id: int | None = None
    order_code: str
    payment_reference: str
    customer_name: str | None = None
    status: OrderStatusLiteral
    payment_status: PaymentStatusLiteral
    payment_method: PaymentMethodLiteral
    subtotal_cents: int
    tax_cents: int
    service_charge_cents: int
    total_cents: int
    business_date: date
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemOutput] = Field(default_factory=list)
    payments: list[PaymentOutput] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime) -> datetime:
        return _utc(value)


# =============================================================================
# Order Transitions
# =============================================================================


class UpdateOrderStatusRequest(BaseModel):
    """Request to move an order to another status (staff)."""

    status: OrderStatusLiteral


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=Limits.MAX_NOTE_LENGTH)


class MarkPaidRequest(BaseModel):
    """Payment settled by the cashier or reported by the card gateway."""

    payment_method: PaymentMethodLiteral
    transaction_ref: str = Field(min_length=1, max_length=128)


# =============================================================================
# Inventory
# =============================================================================


class StockItemOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    branch_id: int
    name: str
    unit: str
    quantity: Decimal
    min_threshold: Decimal


class LowStockAlert(BaseModel):
    """A stock item at or below its minimum threshold."""

    stock_item: StockItemOutput
    shortfall: Decimal  # min_threshold - quantity, >= 0


class StockMovementOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stock_item_id: int
    change: Decimal
    reason: str
    order_id: int | None = None
    order_reference: str | None = None
    note: str | None = None
    created_by_id: int | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return _utc(value)


class StockAdjustmentRequest(BaseModel):
    """Manual stock correction: signed delta plus a reason."""

    delta: Decimal = Field(max_digits=12, decimal_places=3)
    reason: ManualStockReason = "ADJUSTMENT"
    note: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)


# =============================================================================
# Errors
# =============================================================================


class ErrorResponse(BaseModel):
    """Typed failure body: ``{"error": kind, "detail": message}``."""

    error: str
    detail: str | list
