"""
Audit sink.
Records who changed what, in the caller's transaction.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from rest_api.models import AuditLog

logger = get_logger(__name__)


@dataclass(frozen=True)
class EntityRef:
    """Reference to the audited entity, e.g. ``EntityRef("order", 42)``."""

    entity_type: str
    entity_id: int


def log_change(
    db: Session,
    *,
    user_id: Optional[int],
    action: str,
    entity: EntityRef,
    meta: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Append an audit row.

    Args:
        db: Database session
        user_id: Staff user who made the change (None for customers and gateways)
        action: One of ``AuditAction``
        entity: The entity that changed
        meta: JSON-serializable details; ``branch_id`` is lifted into its own column

    Returns:
        The pending AuditLog entry
    """
    meta = dict(meta or {})
    audit_entry = AuditLog(
        branch_id=meta.get("branch_id"),
        user_id=user_id,
        action=action,
        entity_type=entity.entity_type,
        entity_id=entity.entity_id,
        meta=json.dumps(meta, default=str, sort_keys=True) if meta else None,
    )
    db.add(audit_entry)
    # Don't commit here - the transition owns the transaction
    return audit_entry


class SqlAuditSink:
    """Default AuditSink: one ``audit_log`` row per recorded action."""

    def __init__(self, db: Session):
        self._db = db

    def record_audit(
        self,
        user_id: int | None,
        action: str,
        entity_ref: EntityRef,
        meta: dict[str, Any] | None = None,
    ) -> None:
        log_change(self._db, user_id=user_id, action=action, entity=entity_ref, meta=meta)
        logger.debug(
            "Audit recorded",
            action=action,
            entity_type=entity_ref.entity_type,
            entity_id=entity_ref.entity_id,
            user_id=user_id,
        )
