"""
Billing Models: Payment.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BigIntPK, Base

if TYPE_CHECKING:
    from .order import Order


class Payment(Base):
    """
    A settled payment reported by the cashier or the card gateway.

    ``transaction_ref`` makes "mark paid" replay-safe: the same reference
    never produces a second row for the same order.
    """

    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("orders.id"), nullable=False, index=True
    )
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    recorded_by_id: Mapped[Optional[int]] = mapped_column(BigIntPK)

    order: Mapped["Order"] = relationship(back_populates="payments")

    __table_args__ = (
        UniqueConstraint("order_id", "transaction_ref", name="uq_payment_order_transaction_ref"),
        CheckConstraint("amount_cents >= 0", name="chk_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, order_id={self.order_id}, method='{self.method}')>"
