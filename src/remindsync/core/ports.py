# src/remindsync/core/ports.py

"""
Ports (interfaces) used by the scheduler and the sync side.

The core depends on Protocols instead of concrete implementations.
This keeps the store/transport/presentation swappable and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from ..reminders.models import (
    AppSettings,
    NotificationPayload,
    RecurringTask,
    ReminderRecord,
    SyncState,
    Task,
    TaskKind,
)

Clock = Callable[[], datetime]


class NotificationSink(Protocol):
    """Presentation-side port: where fired reminders are published."""

    def publish(self, payload: NotificationPayload) -> None: ...


class ReminderRepo(Protocol):
    """What the scheduler needs from the store."""

    def get_task(self, task_id: str) -> Task | None: ...
    def list_active_tasks(self) -> list[Task]: ...
    def get_recurring_task(self, task_id: str) -> RecurringTask | None: ...
    def list_recurring_tasks(self) -> list[RecurringTask]: ...
    def update_recurring_trigger(
        self,
        task_id: str,
        *,
        next_trigger: datetime,
        last_triggered: datetime | None = None,
    ) -> None: ...
    def create_reminder_record(
        self,
        *,
        reminder_id: str,
        description: str,
        kind: TaskKind,
        trigger_time: datetime,
    ) -> ReminderRecord: ...
    def load_settings(self) -> AppSettings: ...


class SyncRepo(Protocol):
    """What the sync coordinator and merger need from the store."""

    @property
    def db_path(self) -> Path: ...

    def load_settings(self) -> AppSettings: ...
    def update_sync_status(self, status: SyncState, error: str | None = None) -> AppSettings: ...
    def mark_local_change(self) -> datetime: ...
    def export_snapshot(self, target: str | Path) -> Path: ...
    def merge_rows_into(
        self,
        table: str,
        remote_rows: list[dict[str, Any]],
        choose: Callable[[list[dict[str, Any]], list[dict[str, Any]]], list[dict[str, Any]]],
    ) -> int: ...
