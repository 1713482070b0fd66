"""Timestamp helpers: every persisted instant is an ISO-8601 string in UTC.

Wall-clock logic (reminder times, time-of-day buckets) works on the same
instants viewed in the device's zone; see to_local / localnow.
"""
from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from mealsync.utilities.config import LOCAL_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_zone() -> Optional[tzinfo]:
    """The configured zone, or None for the system's local zone."""
    return ZoneInfo(LOCAL_TIMEZONE) if LOCAL_TIMEZONE else None


def to_local(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """The same instant in `tz` (default: local_zone()); naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz if tz is not None else local_zone())


def localnow() -> datetime:
    return to_local(utcnow())


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value) -> Optional[datetime]:
    """Parse an ISO string (a trailing 'Z' is accepted); naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, never negative (clock stepped backwards)."""
    return max(0, int((end - start).total_seconds()))
