# tests/test_recurrence.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from remindsync.errors import ValidationError
from remindsync.reminders.models import RecurringTask, RepeatMode
from remindsync.reminders.recurrence import (
    compute_next,
    normalize_repeat_mode,
    sanitize,
    should_fire_now,
    validate_cron_expression,
)


def _task(**kwargs) -> RecurringTask:
    defaults = {"id": "r1", "description": "drink water", "next_trigger": None}
    defaults.update(kwargs)
    return RecurringTask(**defaults)


def test_normalize_repeat_mode_is_case_insensitive_with_fallback() -> None:
    assert normalize_repeat_mode("daily") == "DAILY"
    assert normalize_repeat_mode(" Weekly ") == "WEEKLY"
    assert normalize_repeat_mode("interval") == "INTERVAL_RANGE"
    assert normalize_repeat_mode("fortnightly") == "INTERVAL_RANGE"
    assert normalize_repeat_mode(None) == "INTERVAL_RANGE"


def test_daily_next_is_strictly_after_base() -> None:
    task = _task(repeat_mode="DAILY", schedule_time="09:00")

    assert compute_next(task, datetime(2026, 3, 10, 8, 0)) == datetime(2026, 3, 10, 9, 0)
    assert compute_next(task, datetime(2026, 3, 10, 9, 0)) == datetime(2026, 3, 11, 9, 0)
    assert compute_next(task, datetime(2026, 3, 10, 10, 0)) == datetime(2026, 3, 11, 9, 0)


def test_weekly_uses_monday_as_one() -> None:
    sunday_noon = datetime(2026, 10, 18, 12, 0)

    monday = _task(repeat_mode="WEEKLY", schedule_weekday=1, schedule_time="08:00")
    assert compute_next(monday, sunday_noon) == datetime(2026, 10, 19, 8, 0)

    later_today = _task(repeat_mode="WEEKLY", schedule_weekday=7, schedule_time="13:00")
    assert compute_next(later_today, sunday_noon) == datetime(2026, 10, 18, 13, 0)

    earlier_today = _task(repeat_mode="WEEKLY", schedule_weekday=7, schedule_time="11:00")
    assert compute_next(earlier_today, sunday_noon) == datetime(2026, 10, 25, 11, 0)


def test_monthly_day_31_clamps_to_short_months() -> None:
    task = _task(repeat_mode="MONTHLY", schedule_day=31, schedule_time="09:00")

    feb = compute_next(task, datetime(2026, 1, 31, 10, 0))
    assert feb == datetime(2026, 2, 28, 9, 0)

    # The clamp is per month; March gets its 31st back.
    assert compute_next(task, feb) == datetime(2026, 3, 31, 9, 0)

    # Leap year.
    assert compute_next(task, datetime(2028, 2, 1, 0, 0)) == datetime(2028, 2, 29, 9, 0)


def test_monthly_year_rollover() -> None:
    task = _task(repeat_mode="MONTHLY", schedule_day=15, schedule_time="07:30")
    assert compute_next(task, datetime(2026, 12, 20, 0, 0)) == datetime(2027, 1, 15, 7, 30)


def test_interval_without_window_adds_interval() -> None:
    task = _task(repeat_mode="INTERVAL_RANGE", interval_minutes=45)
    base = datetime(2026, 10, 18, 23, 50)
    assert compute_next(task, base) == datetime(2026, 10, 19, 0, 35)


def test_interval_window_rules() -> None:
    task = _task(
        repeat_mode="INTERVAL_RANGE",
        interval_minutes=60,
        start_time="09:00",
        end_time="18:00",
    )

    # Before the window: today's start.
    assert compute_next(task, datetime(2026, 10, 18, 7, 30)) == datetime(2026, 10, 18, 9, 0)
    # Inside the window.
    assert compute_next(task, datetime(2026, 10, 18, 10, 0)) == datetime(2026, 10, 18, 11, 0)
    # Step would leave the window: tomorrow's start.
    assert compute_next(task, datetime(2026, 10, 18, 17, 30)) == datetime(2026, 10, 19, 9, 0)
    # After the window.
    assert compute_next(task, datetime(2026, 10, 18, 19, 0)) == datetime(2026, 10, 19, 9, 0)


# Every 7 minutes across one week, starting Monday 2026-10-19 00:00.
SWEEP_BASES = [datetime(2026, 10, 19) + timedelta(minutes=7 * i) for i in range(7 * 24 * 60 // 7)]


@pytest.mark.parametrize(
    ("start", "end", "interval"),
    [
        ("09:00", "18:00", 30),
        ("00:00", "23:59", 45),
        ("22:00", "23:30", 7),
        ("06:15", "06:45", 60),
        ("12:00", "12:05", 1),
    ],
)
def test_interval_next_stays_after_base_and_inside_window(start: str, end: str, interval: int) -> None:
    task = _task(start_time=start, end_time=end, interval_minutes=interval)
    lo = datetime.strptime(start, "%H:%M").time()
    hi = datetime.strptime(end, "%H:%M").time()

    for base in SWEEP_BASES:
        nxt = compute_next(task, base)
        assert nxt > base, base
        assert lo <= nxt.time() <= hi, (base, nxt)


@pytest.mark.parametrize("weekday", range(1, 8))
@pytest.mark.parametrize("at", ["00:00", "09:30", "23:59"])
def test_weekly_next_matches_weekday_within_a_week(weekday: int, at: str) -> None:
    task = _task(repeat_mode="WEEKLY", schedule_weekday=weekday, schedule_time=at)
    at_time = datetime.strptime(at, "%H:%M").time()

    for base in SWEEP_BASES:
        nxt = compute_next(task, base)
        assert nxt.isoweekday() == weekday, base
        assert nxt.time() == at_time, base
        assert timedelta(0) < nxt - base <= timedelta(days=7), (base, nxt)


def test_should_fire_now_respects_window_only_for_interval_mode() -> None:
    task = _task(interval_minutes=30, start_time="09:00", end_time="18:00")

    assert should_fire_now(task, datetime(2026, 10, 18, 8, 59)) is False
    assert should_fire_now(task, datetime(2026, 10, 18, 12, 0)) is True
    assert should_fire_now(task, datetime(2026, 10, 18, 18, 0)) is True
    assert should_fire_now(task, datetime(2026, 10, 18, 18, 1)) is False

    daily = _task(repeat_mode="DAILY", schedule_time="03:00")
    assert should_fire_now(daily, datetime(2026, 10, 18, 3, 0)) is True


def test_sanitize_nulls_fields_of_other_modes_and_is_idempotent() -> None:
    raw = _task(
        description="  stretch  ",
        repeat_mode="daily",
        schedule_time="9:05",
        start_time="08:00",
        end_time="10:00",
        schedule_weekday=3,
        schedule_day=12,
        cron_expression="0 9 * * *",
    )

    once = sanitize(raw)
    assert once.description == "stretch"
    assert once.repeat_mode == RepeatMode.DAILY.value
    assert once.schedule_time == "09:05"
    assert once.start_time is None
    assert once.end_time is None
    assert once.schedule_weekday is None
    assert once.schedule_day is None
    assert once.cron_expression is None

    assert sanitize(once) == once
    # Input is not mutated.
    assert raw.schedule_weekday == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"repeat_mode": "DAILY"},
        {"repeat_mode": "WEEKLY", "schedule_time": "08:00"},
        {"repeat_mode": "WEEKLY", "schedule_time": "08:00", "schedule_weekday": 8},
        {"repeat_mode": "MONTHLY", "schedule_time": "08:00", "schedule_day": 0},
        {"repeat_mode": "MONTHLY", "schedule_time": "08:00", "schedule_day": 32},
        {"repeat_mode": "DAILY", "schedule_time": "25:00"},
        {"repeat_mode": "INTERVAL_RANGE", "start_time": "18:00", "end_time": "09:00"},
        {"repeat_mode": "INTERVAL_RANGE", "interval_minutes": "soon"},
        {"repeat_mode": "CRON"},
        {"repeat_mode": "CRON", "cron_expression": "every morning"},
        {"repeat_mode": "CRON", "cron_expression": "0 9 * *"},
    ],
)
def test_sanitize_rejects_invalid_specs(kwargs) -> None:
    with pytest.raises(ValidationError):
        sanitize(_task(**kwargs))


def test_validation_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        sanitize(_task(repeat_mode="DAILY"))


def test_cron_five_fields() -> None:
    task = _task(repeat_mode="CRON", cron_expression="0 9 * * 1-5")
    # Sunday noon -> Monday 09:00
    assert compute_next(task, datetime(2026, 10, 18, 12, 0)) == datetime(2026, 10, 19, 9, 0)


def test_cron_six_fields_start_with_seconds() -> None:
    task = _task(repeat_mode="CRON", cron_expression="30 0 9 * * ?")
    assert compute_next(task, datetime(2026, 10, 18, 8, 0)) == datetime(2026, 10, 18, 9, 0, 30)


def test_cron_year_field_skips_to_allowed_year() -> None:
    task = _task(repeat_mode="CRON", cron_expression="0 0 9 1 1 ? 2028")
    assert compute_next(task, datetime(2026, 10, 18, 12, 0)) == datetime(2028, 1, 1, 9, 0)


def test_cron_year_in_the_past_has_no_next_trigger() -> None:
    task = _task(repeat_mode="CRON", cron_expression="0 0 9 1 1 ? 2020")
    with pytest.raises(ValidationError):
        compute_next(task, datetime(2026, 10, 18, 12, 0))


def test_validate_cron_expression_trims() -> None:
    assert validate_cron_expression("  */15 * * * *  ") == "*/15 * * * *"
    with pytest.raises(ValidationError):
        validate_cron_expression("   ")
    with pytest.raises(ValidationError):
        validate_cron_expression("0 0 9 1 1 ? 20x8")
