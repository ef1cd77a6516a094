"""
Timestamp utilities for consistent UTC time handling across the memory layer.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Union

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_seconds_str(timestamp: Optional[Union[int, float, datetime]] = None) -> str:
    """Convert a timestamp to the epoch-seconds string stored on graph elements.

    Args:
        timestamp: Unix timestamp or datetime (optional, uses current time if None)

    Returns:
        Seconds timestamp as string
    """
    if timestamp is None:
        timestamp = time.time()
    elif isinstance(timestamp, datetime):
        timestamp = ensure_utc(timestamp).timestamp()
    return str(int(timestamp))


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Union[None, str, int, float, datetime]) -> Optional[datetime]:
    """Parse an ISO-8601 string, epoch seconds or datetime into a UTC datetime.

    Returns None for empty values.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(text))


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime as an ISO-8601 UTC string."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def age_in_days(created_at: datetime, now: datetime) -> float:
    """Fractional days elapsed between ``created_at`` and ``now``."""
    return (ensure_utc(now) - ensure_utc(created_at)).total_seconds() / SECONDS_PER_DAY
