"""Timestamp helpers for persisted rows.

All timestamps are stored as ISO-8601 text in UTC with microsecond
precision so that lexical order equals chronological order.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_ts(value: datetime) -> str:
    """Format a datetime for storage.

    Naive datetimes are assumed to be UTC.

    Args:
        value: Datetime to format.

    Returns:
        Fixed-width ISO-8601 string.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_ts(value: str | None) -> datetime | None:
    """Parse a stored timestamp.

    Args:
        value: ISO-8601 string or None.

    Returns:
        Aware UTC datetime, or None.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def start_of_next_month(value: datetime) -> datetime:
    """Get the first instant of the UTC month after ``value``.

    Args:
        value: Reference datetime.

    Returns:
        Midnight UTC on the first day of the following month.
    """
    value = value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    if value.month == 12:
        return datetime(value.year + 1, 1, 1, tzinfo=UTC)
    return datetime(value.year, value.month + 1, 1, tzinfo=UTC)
