"""Timezone-aware datetime utilities for the memory engine."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser


def now_utc() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp into a timezone-aware datetime (None stays None)."""
    if not dt_str:
        return None
    if isinstance(dt_str, datetime):
        return ensure_aware(dt_str)
    return ensure_aware(date_parser.isoparse(dt_str))


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 in UTC."""
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(timezone.utc).isoformat()


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days elapsed from start to end."""
    delta = ensure_aware(end) - ensure_aware(start)
    return delta.total_seconds() / 86400.0


def days(n: float) -> timedelta:
    """Shorthand for a timedelta of n (possibly fractional) days."""
    return timedelta(days=n)
