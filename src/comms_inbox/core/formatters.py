"""
Comms Inbox Formatters

Time helpers shared by the inbox services and CLI output.
All stored timestamps are integer epoch milliseconds.
"""

from datetime import datetime, timezone
from typing import Optional


def get_utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """Format datetime as ISO string like "2026-01-15T12:30:00Z"."""
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())


def to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def utc_now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return to_epoch_ms(get_utc_now())


def format_epoch_ms(value: Optional[int]) -> Optional[str]:
    """
    Format an epoch-milliseconds value for display.

    Returns:
        ISO timestamp, or None when value is None
    """
    if value is None:
        return None
    return format_datetime(from_epoch_ms(value))
