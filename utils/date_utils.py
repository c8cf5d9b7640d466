"""Date parsing and formatting utilities."""

import math
from datetime import date, datetime, timezone
from typing import Any, Optional
from dateutil import parser as date_parser


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a date/time value into a timezone-aware datetime.

    Accepts datetime and date objects as well as strings in the formats
    dateutil understands. Naive values are treated as UTC.

    Args:
        value: Date-like value

    Returns:
        datetime or None if parsing fails
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = date_parser.parse(value)
        except (ValueError, TypeError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-like value into a date object, or None."""
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Convert a date-like value to epoch milliseconds.

    Numbers are taken to already be epoch milliseconds. Non-finite
    numbers and unparsable strings yield None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return int(value)
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return int(parsed.timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to a UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def format_date(d: date, fmt: str = "%Y-%m-%d") -> str:
    """
    Format a date for display.

    Args:
        d: Date object to format
        fmt: strftime format string (default: "2024-01-31")

    Returns:
        Formatted date string
    """
    return d.strftime(fmt)


def month_day_label(value: Any) -> str:
    """Truncate a date-like value to a `month/day` axis label."""
    parsed = parse_datetime(value)
    if parsed is None:
        return str(value)
    return f"{parsed.month}/{parsed.day}"


def duration_days(start_ms: int, end_ms: int) -> int:
    """Number of (partial) days between two epoch-millisecond values."""
    return math.ceil((end_ms - start_ms) / (1000 * 60 * 60 * 24))
