"""
Datetime formatting utilities
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime (the form stored in the database)
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_datetime_to_iso(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert datetime to ISO format with UTC timezone indicator

    Args:
        dt: datetime object or None

    Returns:
        ISO string with 'Z' suffix (e.g., "2025-01-09T10:30:00Z") or None
    """
    if dt is None:
        return None

    # Format as ISO with 'Z' to indicate UTC
    return dt.strftime('%Y-%m-%dT%H:%M:%SZ')


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize an aware datetime to naive UTC; naive values are assumed UTC already
    """
    if dt is not None and dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
