# src/remindsync/reminders/models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class TaskKind(StrEnum):
    ONE_TIME = "TASK"
    RECURRING = "RECURRING"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskKind:
        if not raw:
            return cls.ONE_TIME
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.ONE_TIME


class TaskStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.PENDING


class RepeatMode(StrEnum):
    INTERVAL_RANGE = "INTERVAL_RANGE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CRON = "CRON"


class RecordAction(StrEnum):
    """
    What happened to a fired reminder.

    Unknown values coming from other devices are kept as plain strings.
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SNOOZED = "SNOOZED"
    DISMISSED = "DISMISSED"


class SyncState(StrEnum):
    NEVER = "never"
    SYNCING = "syncing"
    LOCKED = "locked"
    FIRST_SYNC = "first_sync"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_success(self) -> bool:
        return self in (SyncState.SUCCESS, SyncState.FIRST_SYNC)


@dataclass(slots=True)
class Task:
    id: str
    description: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    reminder_time: datetime | None = None
    deleted_at: datetime | None = None
    kind: TaskKind = TaskKind.ONE_TIME

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(slots=True)
class RecurringTask:
    id: str
    description: str
    next_trigger: datetime | None
    interval_minutes: int = 60
    repeat_mode: str = RepeatMode.INTERVAL_RANGE.value
    is_paused: bool = False
    start_time: str | None = None
    end_time: str | None = None
    schedule_time: str | None = None
    schedule_weekday: int | None = None  # 1 = Monday .. 7 = Sunday
    schedule_day: int | None = None  # 1..31, clamped per month
    cron_expression: str | None = None
    last_triggered: datetime | None = None
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    kind: TaskKind = TaskKind.RECURRING

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(slots=True)
class ReminderRecord:
    id: str
    reminder_id: str
    description: str
    kind: TaskKind
    trigger_time: datetime
    action: str = RecordAction.PENDING.value
    close_time: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass(slots=True)
class AppSettings:
    """The single settings row shared by the store, the scheduler and sync."""

    device_id: str
    snooze_minutes: int = 5
    webdav_enabled: bool = False
    webdav_url: str = ""
    webdav_username: str = ""
    webdav_password: str = ""
    webdav_root_path: str = ""
    webdav_sync_interval_minutes: int = 60
    webdav_last_sync_time: datetime | None = None
    webdav_last_success_time: datetime | None = None
    webdav_last_local_change_time: datetime | None = None
    webdav_last_sync_status: str | None = None
    webdav_last_sync_error: str | None = None

    @property
    def sync_configured(self) -> bool:
        return self.webdav_enabled and bool(self.webdav_url.strip())


@dataclass(slots=True, frozen=True)
class NotificationPayload:
    record_id: str
    reminder_id: str
    kind: TaskKind
    description: str
    snooze_minutes: int


@dataclass(slots=True, frozen=True)
class SyncStatus:
    status: str
    error: str | None = None
    time: datetime | None = None
    dirty: bool = False
    next_attempt_at: datetime | None = None
    in_flight: bool = False
