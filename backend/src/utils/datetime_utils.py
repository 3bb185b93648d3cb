"""
Datetime utilities for consistent timezone handling.

Template timestamps are stored timezone-aware in UTC; tenants render them in
their own timezone on the client.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in UTC.

    Naive datetimes (SQLite returns these) are assumed to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
