# tests/test_api.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from remindsync.core.state import AppState
from remindsync.errors import ValidationError
from remindsync.reminders import api
from remindsync.reminders.models import NotificationPayload, RecurringTask, TaskKind, TaskStatus

from .fakes import T0, FakeClock, wait_until


def _daily(time_: str = "09:00", **kwargs) -> RecurringTask:
    return RecurringTask(
        id="",
        description=kwargs.pop("description", "vitamins"),
        next_trigger=None,
        repeat_mode="DAILY",
        schedule_time=time_,
        **kwargs,
    )


def test_create_task_arms_and_marks_dirty(app_state: AppState) -> None:
    when = T0 + timedelta(hours=1)
    task = api.create_task(app_state, "  pay rent ", when)

    assert task.description == "pay rent"
    assert wait_until(lambda: app_state.scheduler.armed_tasks() == {task.id: when})
    assert app_state.sync.tracker.dirty
    assert app_state.store.load_settings().webdav_last_local_change_time == T0


def test_create_task_without_reminder_is_not_armed(app_state: AppState) -> None:
    task = api.create_task(app_state, "someday")
    assert task.reminder_time is None
    assert not wait_until(lambda: bool(app_state.scheduler.armed_tasks()), timeout=0.2)


def test_create_task_rejects_blank_description(app_state: AppState) -> None:
    with pytest.raises(ValidationError):
        api.create_task(app_state, "   ")
    assert app_state.store.count_rows("tasks") == 0
    assert not app_state.sync.tracker.dirty


def test_unknown_ids_are_validation_errors(app_state: AppState) -> None:
    with pytest.raises(ValidationError):
        api.complete_task(app_state, "missing")
    with pytest.raises(ValidationError):
        api.pause_recurring_task(app_state, "missing")


def test_complete_and_delete_cancel_timers(app_state: AppState) -> None:
    first = api.create_task(app_state, "one", T0 + timedelta(hours=1))
    second = api.create_task(app_state, "two", T0 + timedelta(hours=2))
    assert wait_until(lambda: len(app_state.scheduler.armed_tasks()) == 2)

    api.complete_task(app_state, first.id)
    api.delete_task(app_state, second.id)

    assert wait_until(lambda: app_state.scheduler.armed_tasks() == {})
    done = app_state.store.get_task(first.id)
    assert done is not None and done.status == TaskStatus.COMPLETED
    assert app_state.store.list_active_tasks() == []


def test_update_task_moves_timer(app_state: AppState) -> None:
    task = api.create_task(app_state, "dentist", T0 + timedelta(hours=1))
    moved = T0 + timedelta(days=1)
    updated = api.update_task(app_state, task.id, "dentist (moved)", moved)

    assert updated.description == "dentist (moved)"
    assert wait_until(lambda: app_state.scheduler.armed_tasks() == {task.id: moved})


def test_create_recurring_computes_first_trigger(app_state: AppState) -> None:
    task = api.create_recurring_task(app_state, _daily("09:00"))

    expected = datetime(2026, 10, 19, 9, 0)
    assert task.next_trigger == expected
    assert task.repeat_mode == "DAILY"
    assert wait_until(lambda: app_state.scheduler.armed_recurring() == {task.id: expected})


def test_invalid_recurring_draft_persists_nothing(app_state: AppState) -> None:
    with pytest.raises(ValidationError):
        api.create_recurring_task(app_state, _daily("9 o'clock"))
    assert app_state.store.count_rows("recurring_tasks") == 0


def test_update_recurring_recomputes_and_rearms(app_state: AppState) -> None:
    task = api.create_recurring_task(app_state, _daily("09:00"))
    task.repeat_mode = "WEEKLY"
    task.schedule_weekday = 3
    task.schedule_time = "18:30"

    updated = api.update_recurring_task(app_state, task)

    expected = datetime(2026, 10, 21, 18, 30)
    assert updated.next_trigger == expected
    assert updated.schedule_weekday == 3
    assert wait_until(lambda: app_state.scheduler.armed_recurring() == {task.id: expected})


def test_pause_resume_recurring(app_state: AppState, clock: FakeClock) -> None:
    task = api.create_recurring_task(app_state, _daily("09:00"))
    assert wait_until(lambda: task.id in app_state.scheduler.armed_recurring())

    api.pause_recurring_task(app_state, task.id)
    assert wait_until(lambda: app_state.scheduler.armed_recurring() == {})

    clock.advance(days=2)
    resumed = api.resume_recurring_task(app_state, task.id)
    expected = datetime(2026, 10, 21, 9, 0)
    assert not resumed.is_paused
    assert resumed.next_trigger == expected
    assert wait_until(lambda: app_state.scheduler.armed_recurring() == {task.id: expected})


def test_delete_recurring_cancels(app_state: AppState) -> None:
    task = api.create_recurring_task(app_state, _daily("09:00"))
    assert wait_until(lambda: task.id in app_state.scheduler.armed_recurring())
    api.delete_recurring_task(app_state, task.id)
    assert wait_until(lambda: app_state.scheduler.armed_recurring() == {})
    assert app_state.store.list_recurring_tasks() == []


def test_due_reminder_reaches_notification_hub(app_state: AppState, clock: FakeClock) -> None:
    seen = []
    app_state.notifications.subscribe(seen.append)

    task = api.create_task(app_state, "stretch", T0 + timedelta(seconds=1))
    clock.advance(seconds=1)

    assert wait_until(lambda: len(seen) == 1, timeout=3.0)
    payload = seen[0]
    assert payload.reminder_id == task.id
    assert app_state.notifications.snapshot() == payload
    assert [r.id for r in api.list_reminder_records(app_state)] == [payload.record_id]


def test_snooze_one_time_reschedules(app_state: AppState) -> None:
    task = api.create_task(app_state, "laundry")
    record = app_state.store.create_reminder_record(
        reminder_id=task.id, description=task.description, kind=TaskKind.ONE_TIME, trigger_time=T0
    )

    fire_at = api.snooze_notification(app_state, record.id, task.id, TaskKind.ONE_TIME, 10)

    assert fire_at == T0 + timedelta(minutes=10)
    moved = app_state.store.get_task(task.id)
    assert moved is not None and moved.reminder_time == fire_at
    snoozed = app_state.store.get_reminder_record(record.id)
    assert snoozed is not None and snoozed.action == "SNOOZED"
    assert wait_until(lambda: app_state.scheduler.armed_tasks() == {task.id: fire_at})


def test_snooze_recurring_overrides_next_trigger(app_state: AppState) -> None:
    task = api.create_recurring_task(app_state, _daily("09:00"))
    record = app_state.store.create_reminder_record(
        reminder_id=task.id, description=task.description, kind=TaskKind.RECURRING, trigger_time=T0
    )

    fire_at = api.snooze_notification(app_state, record.id, task.id, TaskKind.RECURRING, 0)

    # At least one minute.
    assert fire_at == T0 + timedelta(minutes=1)
    reloaded = app_state.store.get_recurring_task(task.id)
    assert reloaded is not None and reloaded.next_trigger == fire_at
    assert wait_until(lambda: app_state.scheduler.armed_recurring() == {task.id: fire_at})


def test_ack_updates_record_and_clears_snapshot(app_state: AppState) -> None:
    record = app_state.store.create_reminder_record(
        reminder_id="t", description="d", kind=TaskKind.ONE_TIME, trigger_time=T0
    )
    app_state.notifications.publish(
        NotificationPayload(
            record_id=record.id, reminder_id="t", kind=TaskKind.ONE_TIME, description="d", snooze_minutes=5
        )
    )

    api.ack_notification(app_state, record.id, "completed")

    acked = app_state.store.get_reminder_record(record.id)
    assert acked is not None and acked.action == "COMPLETED"
    assert app_state.notifications.snapshot() is None


def test_delete_records(app_state: AppState) -> None:
    ids = [
        app_state.store.create_reminder_record(
            reminder_id="t", description=str(i), kind=TaskKind.ONE_TIME, trigger_time=T0
        ).id
        for i in range(3)
    ]
    api.delete_reminder_record(app_state, ids[0])
    api.delete_reminder_records(app_state, ids[1:])
    assert api.list_reminder_records(app_state) == []


def test_update_sync_settings_validates(app_state: AppState) -> None:
    with pytest.raises(ValidationError):
        api.update_sync_settings(app_state, enabled=True)
    with pytest.raises(ValidationError):
        api.update_sync_settings(app_state, interval_minutes=0)

    saved = api.update_sync_settings(
        app_state,
        enabled=True,
        url=" https://dav.example.test/files/ ",
        root_path="me",
        snooze_minutes=15,
    )
    assert saved.webdav_url == "https://dav.example.test/files/"
    reloaded = app_state.store.load_settings()
    assert reloaded.sync_configured
    assert reloaded.webdav_root_path == "me"
    assert reloaded.snooze_minutes == 15
