"""
Datetime utility functions for handling timezone-aware datetimes.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    Every timestamp the engine stamps goes through this function so tests can
    patch a single symbol to control the clock.

    Returns:
        A timezone-aware datetime object representing the current time in UTC.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Ensure a datetime object is timezone-aware (UTC).
    SQLite may return timezone-naive datetimes even when stored as timezone-aware.

    Args:
        dt: The datetime to ensure is timezone-aware

    Returns:
        A timezone-aware datetime object in UTC

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("Cannot make a None datetime timezone-aware")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def monotonic_stamp(previous: Optional[datetime]) -> datetime:
    """
    Return the current UTC time, never earlier than ``previous``.

    Wall clocks can step backwards; activity timestamps must not.
    """
    now = utc_now()
    if previous is None:
        return now
    previous = ensure_timezone_aware(previous)
    return now if now >= previous else previous
