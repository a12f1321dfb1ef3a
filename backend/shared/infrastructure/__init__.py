"""
Infrastructure module: database sessions, request correlation and Redis events.
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "safe_commit",
]
