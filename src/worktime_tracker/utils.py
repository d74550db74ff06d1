"""Shared utility functions for worktime-tracker."""

import time
from datetime import UTC, datetime

import dateparser


def now_ms() -> int:
    """Return the current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# Relative expressions ("yesterday") resolve against local time
_DATEPARSER_SETTINGS = {
    "RETURN_AS_TIMEZONE_AWARE": True,
    "TIMEZONE": "local",
    "PREFER_DATES_FROM": "past",
}


def parse_datetime(text: str) -> datetime:
    """
    Parse a report boundary such as "2025-12-08 09:00", "yesterday" or
    "3 hours ago". Times without a zone are local.

    Raises:
        ValueError: If dateparser cannot make sense of the text
    """
    parsed = dateparser.parse(text, settings=_DATEPARSER_SETTINGS)
    if parsed is None:
        raise ValueError(f"Cannot parse {text!r} as a date/time")
    return parsed


def ms_to_datetime(ms: int) -> datetime:
    """Convert epoch milliseconds to a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def datetime_to_ms(dt: datetime) -> int:
    """
    Convert a datetime to epoch milliseconds.

    Naive datetimes are interpreted as local time, the same way
    ``datetime.timestamp()`` does.
    """
    return int(dt.timestamp() * 1000)


def ts2str(ts: datetime, format: str = "%FT%H:%M:%S") -> str:
    """Render an aware datetime in local time."""
    return ts.astimezone().strftime(format)


def ts2strtime(ts: datetime | None) -> str:
    """Local HH:MM:SS, or a placeholder when there is no time."""
    if not ts:
        return "XX:XX:XX"
    return ts2str(ts, "%H:%M:%S")
