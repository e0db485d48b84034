"""Time utilities with timezone-aware datetimes."""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def ago(days: int = 0, hours: int = 0, minutes: int = 0, seconds: float = 0) -> datetime:
    """Get a timezone-aware UTC datetime in the past relative to now."""
    return utc_now() - timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)


def from_epoch_ms(value: int | float | None) -> datetime | None:
    """Convert a millisecond epoch to an aware UTC datetime.

    Zero and missing values map to None, matching how the executor reports
    "never run" / "not scheduled".
    """
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def coerce_datetime(value: datetime | str | None) -> datetime | None:
    """Normalize a stored timestamp to an aware datetime.

    PostgreSQL hands back datetimes, SQLite hands back ISO strings.
    Naive values are assumed to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def format_iso(dt: datetime | None) -> str | None:
    """Format datetime as ISO string."""
    return dt.isoformat() if dt else None
