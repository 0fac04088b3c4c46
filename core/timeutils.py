"""
Time helpers.

All timestamps are stored and compared as naive UTC datetimes so that values
read back from SQLite and PostgreSQL compare the same way.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize(value: Optional[datetime]) -> datetime:
    """
    Coerce an injected evaluation time to naive UTC.

    None means "now". Aware datetimes are converted to UTC first.
    """
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
