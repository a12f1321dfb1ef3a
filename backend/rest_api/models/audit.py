"""
Audit Log Model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import BigIntPK, Base


class AuditLog(Base):
    """
    Append-only record of who changed what.

    Written in the same transaction as the change it describes, so a
    rolled-back transition leaves no audit row behind.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    branch_id: Mapped[Optional[int]] = mapped_column(BigIntPK, index=True)

    # Who made the change (NULL for customers and the payment gateway)
    user_id: Mapped[Optional[int]] = mapped_column(BigIntPK, index=True)

    # What was changed
    action: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[int] = mapped_column(BigIntPK, nullable=False)

    # JSON details (from/to status, reason, amounts)
    meta: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )
