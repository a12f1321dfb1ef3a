"""
Inventory Models: StockItem, StockMovement, Recipe.

Stock is a bookkeeping ledger: quantities may go negative, and every
change is mirrored by an append-only StockMovement row so that
``initial + sum(movements) == quantity`` holds for each item.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BigIntPK, Base, TimestampMixin

# Three decimals covers grams/millilitres expressed in kg/l
Quantity = Numeric(12, 3)


class StockItem(TimestampMixin, Base):
    """An ingredient or supply tracked per branch."""

    __tablename__ = "stock_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("branch.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, default="unit", nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    min_threshold: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)

    movements: Mapped[list["StockMovement"]] = relationship(back_populates="stock_item")

    def __repr__(self) -> str:
        return f"<StockItem(id={self.id}, name='{self.name}', quantity={self.quantity})>"


class StockMovement(Base):
    """
    One signed change to a stock item.

    Consumption/restoration rows carry the order id and code; manual
    adjustments carry a reason and an optional note.
    """

    __tablename__ = "stock_movement"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    stock_item_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("stock_item.id"), nullable=False, index=True
    )
    change: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK, ForeignKey("orders.id"), index=True
    )
    order_reference: Mapped[Optional[str]] = mapped_column(Text)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_by_id: Mapped[Optional[int]] = mapped_column(BigIntPK)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    stock_item: Mapped["StockItem"] = relationship(back_populates="movements")

    __table_args__ = (
        CheckConstraint("change <> 0", name="chk_stock_movement_non_zero"),
        Index("ix_stock_movement_item_created", "stock_item_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement(id={self.id}, stock_item_id={self.stock_item_id}, "
            f"change={self.change}, reason='{self.reason}')>"
        )


class Recipe(Base):
    """Quantity of a stock item consumed by one serving of a menu item."""

    __tablename__ = "recipe"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("menu_item.id"), nullable=False, index=True
    )
    stock_item_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("stock_item.id"), nullable=False
    )
    qty_per_serving: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    __table_args__ = (
        UniqueConstraint("menu_item_id", "stock_item_id", name="uq_recipe_menu_item_stock_item"),
        CheckConstraint("qty_per_serving > 0", name="chk_recipe_qty_positive"),
    )
