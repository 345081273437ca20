# src/remindsync/timeutil.py

"""
Timestamp helpers.

Every timestamp in the app is a naive local datetime. Strings are parsed once
at ingestion (store rows, lock files, user input) and never compared raw.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

TS_FORMAT = "%Y-%m-%dT%H:%M:%S"
HHMM_FORMAT = "%H:%M"

_PARSE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)


def now_local() -> datetime:
    """Current local wall-clock time, truncated to whole seconds."""
    return datetime.now().replace(microsecond=0)


def parse_datetime_any(value: str | None) -> datetime | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    for fmt in _PARSE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def format_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.strftime(TS_FORMAT)


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" (leading/trailing spaces allowed). Raises ValueError."""
    return datetime.strptime(value.strip(), HHMM_FORMAT).time()


def format_hhmm(value: time) -> str:
    return value.strftime(HHMM_FORMAT)


def next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def last_day_of_month(year: int, month: int) -> int:
    ny, nm = next_month(year, month)
    return (date(ny, nm, 1) - timedelta(days=1)).day


def month_datetime(year: int, month: int, day: int, at: time) -> datetime:
    """Datetime on `day` of the month, clamped to the month's last valid day."""
    actual = min(day, last_day_of_month(year, month))
    return datetime.combine(date(year, month, actual), at)


def seconds_until(target: datetime, now: datetime) -> float:
    return max(0.0, (target - now).total_seconds())
