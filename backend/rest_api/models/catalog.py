"""
Catalog Models: MenuItem, Modifier.

Catalog CRUD lives in the menu service; the order engine only reads
prices and availability from these tables.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BigIntPK, Base, TimestampMixin


class MenuItem(TimestampMixin, Base):
    """A dish or drink sold by a branch. Price in cents."""

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("branch.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="chk_menu_item_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name='{self.name}', price_cents={self.price_cents})>"


class Modifier(TimestampMixin, Base):
    """
    An add-on with an extra price (extra cheese, large size).

    ``menu_item_id`` restricts the modifier to one dish; NULL means it can
    be applied to any item of the branch.
    """

    __tablename__ = "modifier"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("branch.id"), nullable=False, index=True
    )
    menu_item_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK, ForeignKey("menu_item.id"), index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    extra_price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("extra_price_cents >= 0", name="chk_modifier_price_non_negative"),
    )
