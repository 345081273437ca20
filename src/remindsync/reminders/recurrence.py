# src/remindsync/reminders/recurrence.py

"""
Recurrence engine.

Pure functions over RecurringTask:
- sanitize(task): normalize + validate a recurrence spec (all-or-nothing, raises ValidationError)
- compute_next(task, base): next trigger strictly after `base`, as a naive local datetime
- should_fire_now(task, now): whether a due firing should notify (active window check)

Repeat modes and the fields each one keeps:
- INTERVAL_RANGE: interval_minutes, optional start_time/end_time window
- DAILY:          schedule_time
- WEEKLY:         schedule_time + schedule_weekday (1 = Monday .. 7 = Sunday)
- MONTHLY:        schedule_time + schedule_day (1..31, clamped to the month's last day)
- CRON:           cron_expression (5, 6 or 7 fields)

All other fields are nulled for the active mode.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, time, timedelta

from croniter import croniter

from ..errors import ValidationError
from ..timeutil import format_hhmm, month_datetime, next_month, now_local, parse_hhmm
from .models import RecurringTask, RepeatMode

logger = logging.getLogger(__name__)

_MODE_ALIASES = {
    "INTERVAL": RepeatMode.INTERVAL_RANGE,
    "INTERVAL-RANGE": RepeatMode.INTERVAL_RANGE,
    "INTERVAL_RANGE": RepeatMode.INTERVAL_RANGE,
    "DAILY": RepeatMode.DAILY,
    "WEEKLY": RepeatMode.WEEKLY,
    "MONTHLY": RepeatMode.MONTHLY,
    "CRON": RepeatMode.CRON,
}

# Upper bound for skipping ahead over years excluded by a 7th (year) cron field.
_MAX_CRON_YEAR = 2199

_YEAR_TOKEN = re.compile(r"^(\*|\d{4}(?:-\d{4})?)(?:/(\d+))?$")


def normalize_repeat_mode(mode: str | None) -> str:
    """Case-insensitive; anything unrecognized falls back to INTERVAL_RANGE."""
    key = (mode or "").strip().upper()
    return _MODE_ALIASES.get(key, RepeatMode.INTERVAL_RANGE).value


def sanitize(task: RecurringTask) -> RecurringTask:
    """
    Return a normalized copy of `task`.

    Never coerces silently: missing required fields, out-of-range values,
    malformed HH:MM strings, invalid cron expressions and start_time > end_time
    all raise ValidationError. `sanitize(sanitize(x)) == sanitize(x)`.
    """
    out = replace(task)
    out.description = (task.description or "").strip()
    out.repeat_mode = normalize_repeat_mode(task.repeat_mode)
    out.interval_minutes = max(1, _as_int(task.interval_minutes, "interval_minutes"))
    out.start_time = _normalize_time_field(task.start_time, "start_time")
    out.end_time = _normalize_time_field(task.end_time, "end_time")
    out.schedule_time = _normalize_time_field(task.schedule_time, "schedule_time")
    out.cron_expression = _normalize_text(task.cron_expression)

    if out.start_time is not None and out.end_time is not None:
        if parse_hhmm(out.start_time) > parse_hhmm(out.end_time):
            raise ValidationError("start_time must not be later than end_time")

    mode = out.repeat_mode
    if mode == RepeatMode.INTERVAL_RANGE:
        out.schedule_time = None
        out.schedule_weekday = None
        out.schedule_day = None
        out.cron_expression = None

    elif mode == RepeatMode.DAILY:
        if out.schedule_time is None:
            raise ValidationError("DAILY mode requires schedule_time")
        out.start_time = None
        out.end_time = None
        out.schedule_weekday = None
        out.schedule_day = None
        out.cron_expression = None

    elif mode == RepeatMode.WEEKLY:
        if out.schedule_time is None:
            raise ValidationError("WEEKLY mode requires schedule_time")
        if task.schedule_weekday is None:
            raise ValidationError("WEEKLY mode requires schedule_weekday")
        weekday = _as_int(task.schedule_weekday, "schedule_weekday")
        if not 1 <= weekday <= 7:
            raise ValidationError("schedule_weekday must be between 1 and 7")
        out.schedule_weekday = weekday
        out.start_time = None
        out.end_time = None
        out.schedule_day = None
        out.cron_expression = None

    elif mode == RepeatMode.MONTHLY:
        if out.schedule_time is None:
            raise ValidationError("MONTHLY mode requires schedule_time")
        if task.schedule_day is None:
            raise ValidationError("MONTHLY mode requires schedule_day")
        day = _as_int(task.schedule_day, "schedule_day")
        if not 1 <= day <= 31:
            raise ValidationError("schedule_day must be between 1 and 31")
        out.schedule_day = day
        out.start_time = None
        out.end_time = None
        out.schedule_weekday = None
        out.cron_expression = None

    elif mode == RepeatMode.CRON:
        if out.cron_expression is None:
            raise ValidationError("CRON mode requires cron_expression")
        out.cron_expression = validate_cron_expression(out.cron_expression)
        out.start_time = None
        out.end_time = None
        out.schedule_time = None
        out.schedule_weekday = None
        out.schedule_day = None

    return out


def compute_next(task: RecurringTask, base: datetime | None = None) -> datetime:
    """Next trigger time strictly after `base` (default: now), naive local time."""
    spec = sanitize(task)
    if base is None:
        base = now_local()

    mode = spec.repeat_mode
    if mode == RepeatMode.DAILY:
        return _daily_next(spec, base)
    if mode == RepeatMode.WEEKLY:
        return _weekly_next(spec, base)
    if mode == RepeatMode.MONTHLY:
        return _monthly_next(spec, base)
    if mode == RepeatMode.CRON:
        return _cron_next(spec, base)
    return _interval_next(spec, base)


def should_fire_now(task: RecurringTask, now: datetime) -> bool:
    """
    INTERVAL_RANGE: False when now's time-of-day is outside [start_time, end_time].
    Other modes: always True (their next_trigger already encodes timing).
    """
    spec = sanitize(task)
    if spec.repeat_mode != RepeatMode.INTERVAL_RANGE:
        return True
    current = now.time()
    if spec.start_time is not None and current < parse_hhmm(spec.start_time):
        return False
    if spec.end_time is not None and current > parse_hhmm(spec.end_time):
        return False
    return True


def validate_cron_expression(value: str) -> str:
    """Return the trimmed expression or raise ValidationError."""
    expr = (value or "").strip()
    if not expr:
        raise ValidationError("cron_expression must not be empty")
    fields, years = _split_cron(expr)
    try:
        croniter(fields, datetime(2000, 1, 1))
    except (ValueError, KeyError) as e:
        raise ValidationError(f"invalid cron expression {expr!r}: {e}") from e
    if years is not None:
        _parse_year_field(years)
    return expr


# ---- mode rules ----


def _interval_next(spec: RecurringTask, base: datetime) -> datetime:
    start = parse_hhmm(spec.start_time) if spec.start_time else None
    end = parse_hhmm(spec.end_time) if spec.end_time else None
    day_start = start or time(0, 0)
    step = timedelta(minutes=spec.interval_minutes)
    current = base.time()

    if start is not None and current < start:
        return datetime.combine(base.date(), start)

    if end is not None and current > end:
        return datetime.combine(base.date() + timedelta(days=1), day_start)

    nxt = base + step
    if end is not None and nxt.time() > end:
        nxt = datetime.combine(base.date() + timedelta(days=1), day_start)
    if start is not None and nxt.time() < start:
        nxt = datetime.combine(nxt.date(), start)
    if nxt <= base:
        nxt = base + step
    return nxt


def _daily_next(spec: RecurringTask, base: datetime) -> datetime:
    at = parse_hhmm(spec.schedule_time or "")
    candidate = datetime.combine(base.date(), at)
    if candidate <= base:
        candidate = datetime.combine(base.date() + timedelta(days=1), at)
    return candidate


def _weekly_next(spec: RecurringTask, base: datetime) -> datetime:
    at = parse_hhmm(spec.schedule_time or "")
    target = int(spec.schedule_weekday or 1)
    days_ahead = (target - base.isoweekday() + 7) % 7
    candidate = datetime.combine(base.date() + timedelta(days=days_ahead), at)
    if candidate <= base:
        candidate += timedelta(days=7)
    return candidate


def _monthly_next(spec: RecurringTask, base: datetime) -> datetime:
    at = parse_hhmm(spec.schedule_time or "")
    day = int(spec.schedule_day or 1)
    candidate = month_datetime(base.year, base.month, day, at)
    if candidate <= base:
        year, month = next_month(base.year, base.month)
        candidate = month_datetime(year, month, day, at)
    return candidate


def _cron_next(spec: RecurringTask, base: datetime) -> datetime:
    fields, years = _split_cron(spec.cron_expression or "")
    allowed = _parse_year_field(years) if years is not None else None

    cursor = base
    try:
        while True:
            candidate = croniter(fields, cursor).get_next(datetime)
            if allowed is None or candidate.year in allowed:
                return candidate
            later = [y for y in allowed if y > candidate.year]
            if not later:
                break
            # Jump to just before Jan 1st of the next allowed year.
            cursor = datetime(min(later), 1, 1) - timedelta(seconds=1)
    except (ValueError, KeyError) as e:
        raise ValidationError(f"cron expression {spec.cron_expression!r} has no next trigger: {e}") from e
    raise ValidationError(f"cron expression {spec.cron_expression!r} has no future trigger")


# ---- helpers ----


def _split_cron(expr: str) -> tuple[str, str | None]:
    """
    Map our field order onto croniter's.

    5 fields: min hour dom mon dow            (seconds = 0)
    6 fields: sec min hour dom mon dow
    7 fields: sec min hour dom mon dow year

    croniter wants seconds as a trailing 6th field; the year field is
    evaluated here.
    """
    parts = expr.split()
    if len(parts) == 5:
        fields = parts
        years = None
    elif len(parts) in (6, 7):
        fields = parts[1:6] + [parts[0]]
        years = parts[6] if len(parts) == 7 else None
    else:
        raise ValidationError("cron expression must have 5, 6 or 7 fields")
    # Quartz-style "no specific value" in day-of-month/day-of-week.
    fields = ["*" if f == "?" else f for f in fields]
    return " ".join(fields), years


def _parse_year_field(raw: str) -> set[int] | None:
    """Parse a cron year field ("*", "2030", "2030-2035", "2030,2032", "*/2", "2030-2040/5")."""
    if raw.strip() == "*":
        return None
    years: set[int] = set()
    for token in raw.split(","):
        m = _YEAR_TOKEN.match(token.strip())
        if not m:
            raise ValidationError(f"invalid cron year field {raw!r}")
        span, step_raw = m.group(1), m.group(2)
        step = int(step_raw) if step_raw else 1
        if step < 1:
            raise ValidationError(f"invalid cron year step in {raw!r}")
        if span == "*":
            lo, hi = 1970, _MAX_CRON_YEAR
        elif "-" in span:
            lo_s, hi_s = span.split("-", 1)
            lo, hi = int(lo_s), int(hi_s)
        else:
            lo = int(span)
            hi = lo if not step_raw else _MAX_CRON_YEAR
        if lo > hi or lo < 1970 or hi > _MAX_CRON_YEAR:
            raise ValidationError(f"cron year out of range in {raw!r}")
        years.update(range(lo, hi + 1, step))
    return years


def _normalize_time_field(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return format_hhmm(parse_hhmm(raw))
    except ValueError as e:
        raise ValidationError(f"{field_name} must be HH:MM, e.g. 08:30 (got {raw!r})") from e


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be an integer (got {value!r})") from e
