"""Time helpers.

All timestamps are stored as naive UTC so that PostgreSQL and the SQLite
test engine compare them the same way.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
