"""
Room / Redis channel naming.

A room name is also the Redis channel its events are published on, so the
gateway can relay a message to the room named by the channel it arrived on.
"""

from __future__ import annotations

import re

ROOM_PATTERN = re.compile(r"^branch:(?P<branch_id>[1-9][0-9]*)(?::(?P<role>kitchen|admin))?$")

# Pattern the gateway subscribes to
BRANCH_CHANNEL_PATTERN = "branch:*"


def _validate_positive_id(id_value: int, name: str) -> None:
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_branch(branch_id: int) -> str:
    """Room for every staff screen in a branch."""
    _validate_positive_id(branch_id, "branch_id")
    return f"branch:{branch_id}"


def channel_branch_kitchen(branch_id: int) -> str:
    """Room for kitchen displays in a branch."""
    _validate_positive_id(branch_id, "branch_id")
    return f"branch:{branch_id}:kitchen"


def channel_branch_admin(branch_id: int) -> str:
    """Room for admin/cashier dashboards in a branch."""
    _validate_positive_id(branch_id, "branch_id")
    return f"branch:{branch_id}:admin"


def parse_room(room: str) -> tuple[int, str | None] | None:
    """
    Split a room name into ``(branch_id, role)``.

    Returns None for anything that is not a known room name.
    """
    match = ROOM_PATTERN.match(room or "")
    if not match:
        return None
    return int(match.group("branch_id")), match.group("role")
