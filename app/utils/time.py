"""Time utilities."""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def from_unix(seconds: int) -> datetime:
    """Convert a ledger unix timestamp (seconds) to an aware UTC datetime."""

    return datetime.fromtimestamp(seconds, tz=UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


__all__ = ["utcnow", "from_unix", "as_utc"]
