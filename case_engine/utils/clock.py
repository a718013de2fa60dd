"""UTC timestamp helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns. Everything the engine writes is UTC, so a naive value read back
is UTC too.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
