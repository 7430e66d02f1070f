"""Date and time helpers shared by the API, CLI and client.

All timestamps are stored and exchanged as UTC ISO8601 strings with a
``Z`` suffix; target dates are plain calendar dates.
"""

from datetime import UTC, date, datetime

from dateutil import parser as dateutil_parser  # type: ignore[import-untyped]


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Read a timestamp as an aware UTC datetime.

    Naive values are taken to be UTC already; offsets are converted.

    Args:
        value: ISO8601 string, datetime, or None

    Returns:
        UTC datetime, or None when ``value`` is None

    Raises:
        ValueError: If ``value`` is not ISO8601

    Example:
        >>> parse_datetime("2024-01-15T10:30:00+02:00").hour
        8
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc(value)
    return _to_utc(dateutil_parser.isoparse(value))


def parse_date(value: str | date | None) -> date | None:
    """Read a ``YYYY-MM-DD`` calendar date.

    Datetimes and full timestamps keep only their date part.

    Raises:
        ValueError: If the value is not a valid date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return dateutil_parser.isoparse(value).date()


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_today() -> date:
    return utc_now().date()


def format_iso(dt: datetime | None) -> str | None:
    """Serialize a UTC datetime, using ``Z`` for the zero offset.

    Example:
        >>> format_iso(datetime(2024, 1, 15, 10, 30, tzinfo=UTC))
        '2024-01-15T10:30:00Z'
    """
    if dt is None:
        return None
    return dt.isoformat().replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Current time in the stored timestamp format."""
    return format_iso(utc_now())  # type: ignore[return-value]


def timestamp_ms(dt: datetime | None = None) -> int:
    """Milliseconds since the epoch for ``dt`` (defaults to now)."""
    return int((dt or utc_now()).timestamp() * 1000)


def redact_token(token: str | None) -> str:
    """Shorten a secret for display.

    Example:
        >>> redact_token("abcdefghijklmnop")
        'abcdefgh...mnop'
        >>> redact_token("short")
        '***'
    """
    if not token:
        return "None"
    if len(token) <= 12:
        return "***"
    return f"{token[:8]}...{token[-4:]}"
