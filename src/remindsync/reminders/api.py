# src/remindsync/reminders/api.py

"""
User-level reminder operations.

Each one combines the store, the recurrence engine, the scheduler and the sync
change tracker:
- validation happens before anything is persisted (ValidationError)
- a successful mutation re-arms or cancels the affected timer
- a successful mutation notifies the sync coordinator
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta

from ..core.state import AppState
from ..errors import ValidationError
from .models import (
    AppSettings,
    RecordAction,
    RecurringTask,
    ReminderRecord,
    Task,
    TaskKind,
    TaskStatus,
)
from .recurrence import compute_next, sanitize

logger = logging.getLogger(__name__)


def _require_description(description: str | None) -> str:
    text = (description or "").strip()
    if not text:
        raise ValidationError("description is required")
    return text


def _is_future(state: AppState, when: datetime | None) -> bool:
    return when is not None and when > state.clock()


def _get_task(state: AppState, task_id: str) -> Task:
    task = state.store.get_task(task_id)
    if task is None or task.is_deleted:
        raise ValidationError(f"unknown task {task_id}")
    return task


def _get_recurring(state: AppState, task_id: str) -> RecurringTask:
    task = state.store.get_recurring_task(task_id)
    if task is None or task.is_deleted:
        raise ValidationError(f"unknown recurring task {task_id}")
    return task


# ---- one-time tasks ----


def create_task(state: AppState, description: str, reminder_time: datetime | None = None) -> Task:
    text = _require_description(description)
    task = state.store.create_task(text, reminder_time)
    if _is_future(state, task.reminder_time):
        state.scheduler.schedule_task(task)
    state.sync.notify_local_change()
    logger.info("Task created id=%s reminder_time=%s", task.id, task.reminder_time)
    return task


def update_task(
    state: AppState,
    task_id: str,
    description: str,
    reminder_time: datetime | None,
) -> Task:
    text = _require_description(description)
    _get_task(state, task_id)
    state.store.update_task(task_id, text, reminder_time)
    state.scheduler.cancel_task(task_id)

    task = _get_task(state, task_id)
    if task.status == TaskStatus.PENDING and _is_future(state, task.reminder_time):
        state.scheduler.schedule_task(task)
    state.sync.notify_local_change()
    return task


def complete_task(state: AppState, task_id: str) -> None:
    _get_task(state, task_id)
    state.store.complete_task(task_id)
    state.scheduler.cancel_task(task_id)
    state.sync.notify_local_change()


def uncomplete_task(state: AppState, task_id: str) -> None:
    _get_task(state, task_id)
    state.store.uncomplete_task(task_id)
    task = _get_task(state, task_id)
    if _is_future(state, task.reminder_time):
        state.scheduler.schedule_task(task)
    state.sync.notify_local_change()


def delete_task(state: AppState, task_id: str) -> None:
    _get_task(state, task_id)
    state.store.delete_task(task_id)
    state.scheduler.cancel_task(task_id)
    state.sync.notify_local_change()


# ---- recurring tasks ----


def create_recurring_task(state: AppState, draft: RecurringTask) -> RecurringTask:
    spec = sanitize(draft)
    spec.description = _require_description(spec.description)
    spec.next_trigger = compute_next(spec, state.clock())
    spec.last_triggered = None

    task = state.store.create_recurring_task(spec)
    if not task.is_paused:
        state.scheduler.schedule_recurring(task)
    state.sync.notify_local_change()
    logger.info(
        "Recurring task created id=%s mode=%s next=%s", task.id, task.repeat_mode, task.next_trigger
    )
    return task


def update_recurring_task(state: AppState, task: RecurringTask) -> RecurringTask:
    existing = _get_recurring(state, task.id)
    spec = sanitize(task)
    spec.description = _require_description(spec.description)
    spec.next_trigger = compute_next(spec, state.clock())
    spec.last_triggered = existing.last_triggered

    state.store.update_recurring_task(spec)
    updated = _get_recurring(state, task.id)
    if updated.is_paused:
        state.scheduler.cancel_recurring(updated.id)
    else:
        state.scheduler.schedule_recurring(updated)
    state.sync.notify_local_change()
    return updated


def pause_recurring_task(state: AppState, task_id: str) -> None:
    _get_recurring(state, task_id)
    state.store.pause_recurring_task(task_id)
    state.scheduler.cancel_recurring(task_id)
    state.sync.notify_local_change()


def resume_recurring_task(state: AppState, task_id: str) -> RecurringTask:
    task = _get_recurring(state, task_id)
    next_trigger = compute_next(task, state.clock())
    state.store.resume_recurring_task(task_id, next_trigger)
    resumed = _get_recurring(state, task_id)
    state.scheduler.schedule_recurring(resumed)
    state.sync.notify_local_change()
    return resumed


def delete_recurring_task(state: AppState, task_id: str) -> None:
    _get_recurring(state, task_id)
    state.store.delete_recurring_task(task_id)
    state.scheduler.cancel_recurring(task_id)
    state.sync.notify_local_change()


# ---- notifications / records ----


def ack_notification(state: AppState, record_id: str, action: str = RecordAction.DISMISSED.value) -> None:
    action = (action or "").strip().upper()
    if not action:
        raise ValidationError("action is required")
    if state.store.get_reminder_record(record_id) is not None:
        state.store.update_reminder_record_action(record_id, action)
        state.sync.notify_local_change()
    state.notifications.clear(record_id)


def snooze_notification(
    state: AppState,
    record_id: str,
    reminder_id: str,
    kind: TaskKind,
    minutes: int,
) -> datetime:
    """Snooze a fired reminder; returns the new fire time."""
    minutes = max(1, int(minutes))
    fire_at = state.clock() + timedelta(minutes=minutes)

    if state.store.get_reminder_record(record_id) is not None:
        state.store.update_reminder_record_action(record_id, RecordAction.SNOOZED.value)

    if kind == TaskKind.ONE_TIME:
        task = state.store.get_task(reminder_id)
        if task is not None and not task.is_deleted:
            state.store.update_task(task.id, task.description, fire_at)
            state.scheduler.cancel_task(task.id)
            state.scheduler.schedule_task(replace(task, reminder_time=fire_at))
    elif kind == TaskKind.RECURRING:
        rtask = state.store.get_recurring_task(reminder_id)
        if rtask is not None and not rtask.is_deleted:
            rtask.next_trigger = fire_at
            rtask.is_paused = False
            state.store.update_recurring_task(rtask)
            state.scheduler.schedule_recurring(rtask)

    state.sync.notify_local_change()
    state.notifications.clear(record_id)
    return fire_at


def list_reminder_records(state: AppState, limit: int = 50) -> list[ReminderRecord]:
    return state.store.list_reminder_records(limit)


def delete_reminder_record(state: AppState, record_id: str) -> None:
    state.store.delete_reminder_record(record_id)
    state.sync.notify_local_change()


def delete_reminder_records(state: AppState, record_ids: list[str]) -> None:
    if not record_ids:
        return
    state.store.delete_reminder_records(record_ids)
    state.sync.notify_local_change()


# ---- settings ----


def update_sync_settings(
    state: AppState,
    *,
    enabled: bool | None = None,
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    root_path: str | None = None,
    interval_minutes: int | None = None,
    snooze_minutes: int | None = None,
) -> AppSettings:
    settings = state.store.load_settings()
    if interval_minutes is not None and int(interval_minutes) < 1:
        raise ValidationError("interval_minutes must be >= 1")
    if snooze_minutes is not None and int(snooze_minutes) < 1:
        raise ValidationError("snooze_minutes must be >= 1")

    if enabled is not None:
        settings.webdav_enabled = bool(enabled)
    if url is not None:
        settings.webdav_url = url.strip()
    if username is not None:
        settings.webdav_username = username
    if password is not None:
        settings.webdav_password = password
    if root_path is not None:
        settings.webdav_root_path = root_path.strip()
    if interval_minutes is not None:
        settings.webdav_sync_interval_minutes = int(interval_minutes)
    if snooze_minutes is not None:
        settings.snooze_minutes = int(snooze_minutes)

    if settings.webdav_enabled and not settings.webdav_url:
        raise ValidationError("WebDAV url is required when sync is enabled")

    state.store.save_settings(settings)
    state.sync.update_settings()
    return settings
