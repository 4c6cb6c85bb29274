"""
UTC date helpers.

Every timestamp in the system is compared in UTC, so a "day" is always the UTC
calendar day of the value, never the server's local day.
"""

from datetime import UTC, date, datetime, time, timedelta
from email.utils import parsedate_to_datetime

ONE_DAY = timedelta(days=1)


class InvalidDateRangeError(ValueError):
    """Raised when a range has start >= end."""

    def __init__(self, start: datetime, end: datetime):
        super().__init__(
            f"Invalid date range: start ({start.isoformat()}) must be earlier than end ({end.isoformat()})"
        )
        self.start = start
        self.end = end


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string (a trailing Z is accepted) into UTC, or None."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def parse_date_string(value: str | None) -> datetime | None:
    """Generic date-string parsing: ISO-8601 first, then RFC 2822 (email Date header)."""
    parsed = parse_iso_datetime(value)
    if parsed is not None:
        return parsed
    if not value or not isinstance(value, str):
        return None
    try:
        return ensure_utc(parsedate_to_datetime(value.strip()))
    except (TypeError, ValueError, IndexError):
        return None


def to_utc_day_bounds(value: datetime | date | str | None) -> tuple[datetime, datetime] | None:
    """
    Return (start, end) of the UTC calendar day containing `value`.

    `start` is midnight UTC of the day read from the UTC year/month/day fields,
    `end` is exactly 24h later. Anything that is not a valid point in time
    yields None, which callers treat as "no date filter".
    """
    if isinstance(value, datetime):
        moment = ensure_utc(value)
    elif isinstance(value, date):
        moment = datetime.combine(value, time.min, tzinfo=UTC)
    elif isinstance(value, str):
        moment = parse_iso_datetime(value)
        if moment is None:
            return None
    else:
        return None

    start = datetime(moment.year, moment.month, moment.day, tzinfo=UTC)
    return start, start + ONE_DAY


def is_same_utc_day(a: datetime, b: datetime) -> bool:
    return ensure_utc(a).date() == ensure_utc(b).date()


def validate_date_range(start: datetime | None, end: datetime | None) -> None:
    """Raise InvalidDateRangeError when both bounds are set and start >= end."""
    if start is not None and end is not None and ensure_utc(start) >= ensure_utc(end):
        raise InvalidDateRangeError(start, end)
