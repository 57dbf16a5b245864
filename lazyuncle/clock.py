"""Time helpers.

All timestamps are stored as naive UTC ISO-8601 strings with microsecond
precision so that SQLite can compare them as plain text. Services call
``utcnow()`` through this module so tests can move the clock.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db(dt: datetime) -> str:
    """Serialize a datetime for storage."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(sep=" ", timespec="microseconds")


def from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def now_db() -> str:
    return to_db(utcnow())


def ago_db(**kwargs) -> str:
    """Storage string for ``utcnow() - timedelta(**kwargs)``."""
    return to_db(utcnow() - timedelta(**kwargs))


def local_midnight_utc() -> datetime:
    """Start of the current local day, expressed as naive UTC."""
    local_now = utcnow().replace(tzinfo=timezone.utc).astimezone()
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)
