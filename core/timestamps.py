"""Timezone-aware UTC timestamp utilities.

Every timestamp pman persists is an ISO 8601 string with a +00:00 offset.
Keeping one format means string comparison in SQL agrees with
chronological order, which the token sweep and revocation queries rely on.
"""

from datetime import datetime, timezone


def now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def isonow() -> str:
    """Return the current UTC time as an ISO 8601 string with +00:00 offset."""
    return now().isoformat()


def to_iso(dt: datetime) -> str:
    """Serialize a datetime in the persisted format (UTC, +00:00 offset)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def from_epoch(seconds: int | float) -> datetime:
    """Convert a POSIX timestamp (JWT ``iat``/``exp``) to an aware datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def parse_timestamp(iso_str: str) -> datetime:
    """Parse an ISO timestamp, assuming UTC if no timezone info.

    SQLite's CURRENT_TIMESTAMP default produces naive values; those are UTC.
    """
    dt = datetime.fromisoformat(iso_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
