"""
Event Schema.

Every lifecycle event carries the full order projection, keyed by
``(order_id, updated_at)`` so receivers can discard stale deliveries.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any

from .event_types import ALL_EVENT_TYPES


@dataclass
class Event:
    """
    Unified schema for order lifecycle events.

    ``order`` is the complete current projection, not a diff.
    ``actor`` identifies who triggered the change (empty for customers).
    """

    type: str
    branch_id: int
    order_id: int
    updated_at: str
    order: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version
    request_id: str | None = None

    def __post_init__(self) -> None:
        if self.type not in ALL_EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type!r}")

        if not isinstance(self.branch_id, int) or self.branch_id <= 0:
            raise ValueError("Event branch_id must be a positive integer")

        if not isinstance(self.order_id, int) or self.order_id <= 0:
            raise ValueError("Event order_id must be a positive integer")

        if not self.updated_at or not isinstance(self.updated_at, str):
            raise ValueError("Event updated_at must be an ISO-8601 string")

        if self.order is not None and not isinstance(self.order, dict):
            raise ValueError("Event order must be a dict")

        if self.actor is not None and not isinstance(self.actor, dict):
            raise ValueError("Event actor must be a dict or None")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["order"] = data["order"] or {}
        data["actor"] = data["actor"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize event from JSON string; validation runs in __post_init__."""
        data = json.loads(json_str)
        return cls(**data)
