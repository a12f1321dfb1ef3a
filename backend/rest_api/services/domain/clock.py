"""
Time helpers for the order engine.

Services take a ``clock`` callable so tests can pin "now"; the default is
the real UTC clock.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config.settings import settings

Clock = Callable[[], datetime]

ONE_MICROSECOND = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def branch_zone(tz_name: str | None) -> ZoneInfo:
    """Resolve a branch timezone, falling back to the configured default."""
    try:
        return ZoneInfo(tz_name or settings.default_branch_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.default_branch_timezone)


def business_date(now: datetime, tz_name: str | None) -> date:
    """Local calendar date at the branch; rolls over at local midnight."""
    return as_utc(now).astimezone(branch_zone(tz_name)).date()


def next_updated_at(now: datetime, previous: datetime | None) -> datetime:
    """
    Strictly increasing timestamp for one order.

    Two transitions in the same clock tick still get distinct, ordered
    ``updated_at`` values, which receivers use for last-write-wins.
    """
    now = as_utc(now)
    if previous is None:
        return now
    return max(now, as_utc(previous) + ONE_MICROSECOND)
