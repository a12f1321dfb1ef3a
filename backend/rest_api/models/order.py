"""
Order Models: Order, OrderItem, OrderItemModifier, OrderSequence.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BigIntPK, Base

if TYPE_CHECKING:
    from .billing import Payment


class Order(Base):
    """
    A customer order placed from a table (or the POS).

    Amounts are integer cents, fixed at creation and never recomputed.
    Orders are never deleted; cancellation is a status.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("branch.id"), nullable=False, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK, ForeignKey("dining_table.id"), index=True
    )
    order_code: Mapped[str] = mapped_column(String(40), nullable=False)
    # Unguessable token the customer uses to follow the order
    payment_reference: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(128))
    customer_name: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)

    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    service_charge_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    # Local date in the branch timezone; the date part of order_code
    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", order_by="OrderItem.id"
    )
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="order", order_by="Payment.id"
    )

    __table_args__ = (
        UniqueConstraint("branch_id", "order_code", name="uq_orders_branch_code"),
        UniqueConstraint("branch_id", "idempotency_key", name="uq_orders_branch_idempotency_key"),
        CheckConstraint("total_cents >= subtotal_cents", name="chk_orders_total_covers_subtotal"),
        CheckConstraint("subtotal_cents >= 0", name="chk_orders_subtotal_non_negative"),
        Index("ix_orders_branch_status", "branch_id", "status"),
        Index("ix_orders_branch_date", "branch_id", "business_date"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, code='{self.order_code}', status='{self.status}')>"


class OrderItem(Base):
    """
    A line of an order. ``unit_price_cents`` and ``item_name`` are
    snapshots taken at creation.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("orders.id"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("menu_item.id"), nullable=False
    )
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="items")
    modifiers: Mapped[list["OrderItemModifier"]] = relationship(
        back_populates="order_item", order_by="OrderItemModifier.id"
    )

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_order_item_quantity_positive"),
        CheckConstraint("unit_price_cents >= 0", name="chk_order_item_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, menu_item_id={self.menu_item_id}, quantity={self.quantity})>"


class OrderItemModifier(Base):
    """A modifier applied to one unit of an order item (price snapshot)."""

    __tablename__ = "order_item_modifier"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_item_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("order_item.id"), nullable=False, index=True
    )
    modifier_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("modifier.id"), nullable=False
    )
    modifier_name: Mapped[str] = mapped_column(Text, nullable=False)
    extra_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    order_item: Mapped["OrderItem"] = relationship(back_populates="modifiers")


class OrderSequence(Base):
    """
    Per-branch, per-business-date order counter.

    Incremented with an atomic UPDATE inside the order's transaction, so
    the row lock serializes concurrent creators of the same branch/day.
    """

    __tablename__ = "order_sequence"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("branch.id"), nullable=False
    )
    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("branch_id", "business_date", name="uq_order_sequence_branch_date"),
    )
