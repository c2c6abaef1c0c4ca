from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time source backed by the local system clock."""

    def now(self) -> datetime:
        return utc_now()


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO timestamp and normalize to UTC."""
    if not value:
        return None

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        # Naive values are read as UTC.
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a timezone-aware datetime to UTC."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


def elapsed_seconds(start: datetime, end: datetime) -> float:
    """Seconds from start to end, clamped at zero."""
    return max(0.0, (to_utc(end) - to_utc(start)).total_seconds())


def local_day_key(dt: datetime, tz: ZoneInfo) -> str:
    return to_utc(dt).astimezone(tz).date().isoformat()


def week_bounds(day_value: date) -> tuple[date, date]:
    """Return the Monday and Sunday of the week containing day_value."""
    monday = day_value - timedelta(days=day_value.weekday())
    return monday, monday + timedelta(days=6)

