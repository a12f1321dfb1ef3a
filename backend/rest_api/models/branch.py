"""
Branch Models: Branch, DiningTable.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BigIntPK, Base, TimestampMixin


class Branch(TimestampMixin, Base):
    """
    A restaurant location.

    ``code`` prefixes every order code issued by the branch
    (``CAS-20251028-0002``). Rates are stored in basis points
    (1000 = 10.00%).
    """

    __tablename__ = "branch"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    tax_rate_bps: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    service_rate_bps: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # IANA name; business dates (and so sequence rollover) follow local midnight
    timezone: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("tax_rate_bps >= 0", name="chk_branch_tax_rate_non_negative"),
        CheckConstraint("service_rate_bps >= 0", name="chk_branch_service_rate_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, code='{self.code}')>"


class DiningTable(TimestampMixin, Base):
    """A table whose QR code opens the customer menu."""

    __tablename__ = "dining_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("branch.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("branch_id", "code", name="uq_dining_table_branch_code"),
    )
