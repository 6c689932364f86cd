"""
Timezone-aware datetime utilities.

SQLite stores naive datetimes; everything leaving the repositories is
converted back to UTC-aware values with `ensure_utc`.
"""

from datetime import datetime, timezone
from typing import Optional

# UTC timezone constant
UTC = timezone.utc


def now_utc() -> datetime:
    """
    Get current UTC datetime (timezone-aware).

    Returns:
        datetime: Current UTC time with tzinfo set to UTC
    """
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware and in UTC. Naive values are assumed UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to a naive UTC datetime for storage."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)
