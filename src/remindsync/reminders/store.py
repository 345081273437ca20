# src/remindsync/reminders/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from ..errors import StoreError
from ..timeutil import format_ts, now_local, parse_datetime_any
from .models import (
    AppSettings,
    RecordAction,
    RecurringTask,
    ReminderRecord,
    SyncState,
    Task,
    TaskKind,
    TaskStatus,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
# (local rows, remote rows) -> rows to write
RowChooser = Callable[[list[dict[str, Any]], list[dict[str, Any]]], list[dict[str, Any]]]

TASK_COLUMNS: tuple[str, ...] = (
    "id",
    "description",
    "kind",
    "status",
    "created_at",
    "completed_at",
    "reminder_time",
    "updated_at",
    "deleted_at",
)

RECURRING_COLUMNS: tuple[str, ...] = (
    "id",
    "description",
    "kind",
    "status",
    "created_at",
    "completed_at",
    "interval_minutes",
    "last_triggered",
    "next_trigger",
    "is_paused",
    "start_time",
    "end_time",
    "repeat_mode",
    "schedule_time",
    "schedule_weekday",
    "schedule_day",
    "cron_expression",
    "updated_at",
    "deleted_at",
)

RECORD_COLUMNS: tuple[str, ...] = (
    "id",
    "reminder_id",
    "description",
    "kind",
    "trigger_time",
    "close_time",
    "action",
    "updated_at",
    "deleted_at",
)

# Tables shared with other devices: name -> columns.
SYNC_TABLES: dict[str, tuple[str, ...]] = {
    "tasks": TASK_COLUMNS,
    "recurring_tasks": RECURRING_COLUMNS,
    "reminder_records": RECORD_COLUMNS,
}

DELETED_RETENTION = timedelta(days=7)
COMPLETED_RETENTION = timedelta(days=30)
MAX_COMPLETED_TASKS = 100


def read_table_rows(conn: sqlite3.Connection, table: str) -> list[dict[str, Any]]:
    """
    All rows of a synced table (tombstones included) as column -> value dicts.

    Columns the database does not have (older schema on another device) come
    back as None.
    """
    columns = SYNC_TABLES[table]
    cur = conn.execute(f"PRAGMA table_info({table})")
    present = {row[1] for row in cur.fetchall()}
    if not present:
        return []
    select = [c for c in columns if c in present]
    cur = conn.execute(f"SELECT {', '.join(select)} FROM {table}")
    out: list[dict[str, Any]] = []
    for values in cur.fetchall():
        row = dict.fromkeys(columns)
        row.update(zip(select, values, strict=True))
        out.append(row)
    return out


def read_snapshot_rows(path: str | Path, table: str) -> list[dict[str, Any]]:
    """Read a synced table from a standalone snapshot file."""
    try:
        conn = sqlite3.connect(str(path))
        try:
            return read_table_rows(conn, table)
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreError(f"cannot read snapshot table {table}: {e}") from e


class ReminderStore:
    """
    SQLite reminder store.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Every mutation stamps updated_at; deletes are soft (deleted_at) and rows are
    physically removed only by cleanup_data().

    Thread-safety:
    - each method opens its own SQLite connection (busy timeout, WAL)
    """

    def __init__(
        self,
        db_path: str | Path = "reminders.sqlite3",
        *,
        busy_timeout: float = 30.0,
        clock: Clock = now_local,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = float(busy_timeout)
        self._clock = clock
        self._ensure_schema()
        try:
            counts = {t: self.count_rows(t) for t in SYNC_TABLES}
        except StoreError:
            counts = {}
        logger.info("ReminderStore ready db=%s counts=%s", self._db_path, counts)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Shutdown hook (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=self._busy_timeout)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """One connection, one transaction: commit on success, rollback + StoreError on failure."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open database {self._db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _now(self) -> str:
        return format_ts(self._clock()) or ""

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'TASK',
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    reminder_time TEXT,
                    updated_at TEXT,
                    deleted_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS recurring_tasks (
                    id TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'RECURRING',
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    interval_minutes INTEGER NOT NULL DEFAULT 60,
                    last_triggered TEXT,
                    next_trigger TEXT,
                    is_paused INTEGER NOT NULL DEFAULT 0,
                    start_time TEXT,
                    end_time TEXT,
                    repeat_mode TEXT NOT NULL DEFAULT 'INTERVAL_RANGE',
                    schedule_time TEXT,
                    schedule_weekday INTEGER,
                    schedule_day INTEGER,
                    cron_expression TEXT,
                    updated_at TEXT,
                    deleted_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS reminder_records (
                    id TEXT PRIMARY KEY,
                    reminder_id TEXT NOT NULL,
                    description TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'TASK',
                    trigger_time TEXT NOT NULL,
                    close_time TEXT,
                    action TEXT NOT NULL DEFAULT 'PENDING',
                    updated_at TEXT,
                    deleted_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    device_id TEXT NOT NULL,
                    snooze_minutes INTEGER NOT NULL DEFAULT 5,
                    webdav_enabled INTEGER NOT NULL DEFAULT 0,
                    webdav_url TEXT NOT NULL DEFAULT '',
                    webdav_username TEXT NOT NULL DEFAULT '',
                    webdav_password TEXT NOT NULL DEFAULT '',
                    webdav_root_path TEXT NOT NULL DEFAULT '',
                    webdav_sync_interval_minutes INTEGER NOT NULL DEFAULT 60
                )
                """
            )

            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("ReminderStore migration: added column %s.%s", table, name)

            # Columns added after the first release.
            add_col("tasks", "updated_at", "TEXT")
            add_col("tasks", "deleted_at", "TEXT")
            add_col("recurring_tasks", "updated_at", "TEXT")
            add_col("recurring_tasks", "deleted_at", "TEXT")
            add_col("recurring_tasks", "repeat_mode", "TEXT NOT NULL DEFAULT 'INTERVAL_RANGE'")
            add_col("recurring_tasks", "schedule_time", "TEXT")
            add_col("recurring_tasks", "schedule_weekday", "INTEGER")
            add_col("recurring_tasks", "schedule_day", "INTEGER")
            add_col("recurring_tasks", "cron_expression", "TEXT")
            add_col("reminder_records", "updated_at", "TEXT")
            add_col("reminder_records", "deleted_at", "TEXT")
            add_col("settings", "webdav_last_sync_time", "TEXT")
            add_col("settings", "webdav_last_success_time", "TEXT")
            add_col("settings", "webdav_last_local_change_time", "TEXT")
            add_col("settings", "webdav_last_sync_status", "TEXT")
            add_col("settings", "webdav_last_sync_error", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, deleted_at)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_trigger ON reminder_records(trigger_time)"
            )

            cur.execute(
                "INSERT OR IGNORE INTO settings (id, device_id) VALUES (1, ?)",
                (str(uuid.uuid4()),),
            )

    # ---- row mapping ----

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            description=str(row["description"] or ""),
            status=TaskStatus.from_db(row["status"]),
            created_at=parse_datetime_any(row["created_at"]) or self._clock(),
            updated_at=parse_datetime_any(row["updated_at"]),
            completed_at=parse_datetime_any(row["completed_at"]),
            reminder_time=parse_datetime_any(row["reminder_time"]),
            deleted_at=parse_datetime_any(row["deleted_at"]),
            kind=TaskKind.from_db(row["kind"]),
        )

    def _row_to_recurring(self, row: sqlite3.Row) -> RecurringTask:
        return RecurringTask(
            id=str(row["id"]),
            description=str(row["description"] or ""),
            next_trigger=parse_datetime_any(row["next_trigger"]),
            interval_minutes=int(row["interval_minutes"] or 60),
            repeat_mode=str(row["repeat_mode"] or "INTERVAL_RANGE"),
            is_paused=bool(row["is_paused"]),
            start_time=row["start_time"],
            end_time=row["end_time"],
            schedule_time=row["schedule_time"],
            schedule_weekday=row["schedule_weekday"],
            schedule_day=row["schedule_day"],
            cron_expression=row["cron_expression"],
            last_triggered=parse_datetime_any(row["last_triggered"]),
            status=TaskStatus.from_db(row["status"]),
            created_at=parse_datetime_any(row["created_at"]),
            completed_at=parse_datetime_any(row["completed_at"]),
            updated_at=parse_datetime_any(row["updated_at"]),
            deleted_at=parse_datetime_any(row["deleted_at"]),
        )

    def _row_to_record(self, row: sqlite3.Row) -> ReminderRecord:
        return ReminderRecord(
            id=str(row["id"]),
            reminder_id=str(row["reminder_id"]),
            description=str(row["description"] or ""),
            kind=TaskKind.from_db(row["kind"]),
            trigger_time=parse_datetime_any(row["trigger_time"]) or self._clock(),
            action=str(row["action"] or RecordAction.PENDING.value),
            close_time=parse_datetime_any(row["close_time"]),
            updated_at=parse_datetime_any(row["updated_at"]),
            deleted_at=parse_datetime_any(row["deleted_at"]),
        )

    def _row_to_settings(self, row: sqlite3.Row) -> AppSettings:
        return AppSettings(
            device_id=str(row["device_id"]),
            snooze_minutes=int(row["snooze_minutes"] or 5),
            webdav_enabled=bool(row["webdav_enabled"]),
            webdav_url=str(row["webdav_url"] or ""),
            webdav_username=str(row["webdav_username"] or ""),
            webdav_password=str(row["webdav_password"] or ""),
            webdav_root_path=str(row["webdav_root_path"] or ""),
            webdav_sync_interval_minutes=int(row["webdav_sync_interval_minutes"] or 60),
            webdav_last_sync_time=parse_datetime_any(row["webdav_last_sync_time"]),
            webdav_last_success_time=parse_datetime_any(row["webdav_last_success_time"]),
            webdav_last_local_change_time=parse_datetime_any(row["webdav_last_local_change_time"]),
            webdav_last_sync_status=row["webdav_last_sync_status"],
            webdav_last_sync_error=row["webdav_last_sync_error"],
        )

    # ---- counts ----

    def count_rows(self, table: str) -> int:
        if table not in SYNC_TABLES:
            raise ValueError(f"unknown table {table!r}")
        with self._connect() as conn:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            return int(n)

    # ---- one-time tasks ----

    def create_task(self, description: str, reminder_time: datetime | None = None) -> Task:
        if not description or not description.strip():
            raise ValueError("description is required")

        now = self._now()
        task_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks(id, description, kind, status, created_at, reminder_time, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    description.strip(),
                    TaskKind.ONE_TIME.value,
                    TaskStatus.PENDING.value,
                    now,
                    format_ts(reminder_time),
                    now,
                ),
            )
        logger.debug("Task added id=%s reminder_time=%s", task_id, reminder_time)
        task = self.get_task(task_id)
        if task is None:
            raise StoreError(f"task {task_id} vanished after insert")
        return task

    def get_task(self, task_id: str) -> Task | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None

    def list_active_tasks(self) -> list[Task]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE status = 'PENDING' AND deleted_at IS NULL
                ORDER BY COALESCE(reminder_time, created_at) ASC, created_at ASC
                """
            ).fetchall()
            return [self._row_to_task(r) for r in rows]

    def list_completed_tasks(self, limit: int = 100) -> list[Task]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE status = 'COMPLETED' AND deleted_at IS NULL
                ORDER BY completed_at DESC
                LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
            return [self._row_to_task(r) for r in rows]

    def update_task(self, task_id: str, description: str, reminder_time: datetime | None) -> None:
        if not description or not description.strip():
            raise ValueError("description is required")
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET description = ?, reminder_time = ?, updated_at = ? WHERE id = ?",
                (description.strip(), format_ts(reminder_time), self._now(), task_id),
            )

    def complete_task(self, task_id: str) -> None:
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET status = 'COMPLETED', completed_at = ?, updated_at = ? WHERE id = ?",
                (now, now, task_id),
            )

    def uncomplete_task(self, task_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET status = 'PENDING', completed_at = NULL, updated_at = ? WHERE id = ?",
                (self._now(), task_id),
            )

    def delete_task(self, task_id: str) -> None:
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET deleted_at = ?, updated_at = ? WHERE id = ?",
                (now, now, task_id),
            )

    # ---- recurring tasks ----

    def create_recurring_task(self, task: RecurringTask) -> RecurringTask:
        """Persist an already sanitized recurring task under a fresh id."""
        if not task.description:
            raise ValueError("description is required")

        now = self._now()
        task_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO recurring_tasks(
                    id, description, kind, status, created_at,
                    interval_minutes, last_triggered, next_trigger, is_paused,
                    start_time, end_time, repeat_mode,
                    schedule_time, schedule_weekday, schedule_day, cron_expression,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    task.description,
                    TaskKind.RECURRING.value,
                    TaskStatus.PENDING.value,
                    now,
                    int(task.interval_minutes),
                    format_ts(task.last_triggered),
                    format_ts(task.next_trigger),
                    1 if task.is_paused else 0,
                    task.start_time,
                    task.end_time,
                    task.repeat_mode,
                    task.schedule_time,
                    task.schedule_weekday,
                    task.schedule_day,
                    task.cron_expression,
                    now,
                ),
            )
        logger.debug(
            "Recurring task added id=%s mode=%s next=%s", task_id, task.repeat_mode, task.next_trigger
        )
        created = self.get_recurring_task(task_id)
        if created is None:
            raise StoreError(f"recurring task {task_id} vanished after insert")
        return created

    def get_recurring_task(self, task_id: str) -> RecurringTask | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM recurring_tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_recurring(row) if row else None

    def list_recurring_tasks(self) -> list[RecurringTask]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM recurring_tasks
                WHERE deleted_at IS NULL
                ORDER BY COALESCE(next_trigger, created_at) ASC
                """
            ).fetchall()
            return [self._row_to_recurring(r) for r in rows]

    def update_recurring_task(self, task: RecurringTask) -> None:
        """Write description, recurrence spec, pause flag and trigger times."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE recurring_tasks
                SET description = ?,
                    interval_minutes = ?,
                    last_triggered = ?,
                    next_trigger = ?,
                    is_paused = ?,
                    start_time = ?,
                    end_time = ?,
                    repeat_mode = ?,
                    schedule_time = ?,
                    schedule_weekday = ?,
                    schedule_day = ?,
                    cron_expression = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    task.description,
                    int(task.interval_minutes),
                    format_ts(task.last_triggered),
                    format_ts(task.next_trigger),
                    1 if task.is_paused else 0,
                    task.start_time,
                    task.end_time,
                    task.repeat_mode,
                    task.schedule_time,
                    task.schedule_weekday,
                    task.schedule_day,
                    task.cron_expression,
                    self._now(),
                    task.id,
                ),
            )

    def update_recurring_trigger(
        self,
        task_id: str,
        *,
        next_trigger: datetime,
        last_triggered: datetime | None = None,
    ) -> None:
        """Scheduler write path: advance next_trigger (and last_triggered when it fired)."""
        fields = ["next_trigger = ?"]
        params: list[Any] = [format_ts(next_trigger)]
        if last_triggered is not None:
            fields.append("last_triggered = ?")
            params.append(format_ts(last_triggered))
        fields.append("updated_at = ?")
        params.append(self._now())
        params.append(task_id)

        sql = f"UPDATE recurring_tasks SET {', '.join(fields)} WHERE id = ?"
        with self._connect() as conn:
            conn.execute(sql, params)

    def pause_recurring_task(self, task_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE recurring_tasks SET is_paused = 1, updated_at = ? WHERE id = ?",
                (self._now(), task_id),
            )

    def resume_recurring_task(self, task_id: str, next_trigger: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE recurring_tasks SET is_paused = 0, next_trigger = ?, updated_at = ? WHERE id = ?",
                (format_ts(next_trigger), self._now(), task_id),
            )

    def delete_recurring_task(self, task_id: str) -> None:
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE recurring_tasks SET deleted_at = ?, updated_at = ? WHERE id = ?",
                (now, now, task_id),
            )

    # ---- reminder records ----

    def create_reminder_record(
        self,
        *,
        reminder_id: str,
        description: str,
        kind: TaskKind,
        trigger_time: datetime,
    ) -> ReminderRecord:
        record_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO reminder_records(id, reminder_id, description, kind, trigger_time, action, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    reminder_id,
                    description,
                    kind.value,
                    format_ts(trigger_time),
                    RecordAction.PENDING.value,
                    self._now(),
                ),
            )
        record = self.get_reminder_record(record_id)
        if record is None:
            raise StoreError(f"reminder record {record_id} vanished after insert")
        return record

    def get_reminder_record(self, record_id: str) -> ReminderRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM reminder_records WHERE id = ?", (record_id,)).fetchone()
            return self._row_to_record(row) if row else None

    def list_reminder_records(self, limit: int = 50) -> list[ReminderRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM reminder_records
                WHERE deleted_at IS NULL
                ORDER BY trigger_time DESC
                LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
            return [self._row_to_record(r) for r in rows]

    def update_reminder_record_action(self, record_id: str, action: str) -> None:
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE reminder_records SET action = ?, close_time = ?, updated_at = ? WHERE id = ?",
                (action, now, now, record_id),
            )

    def delete_reminder_record(self, record_id: str) -> None:
        self.delete_reminder_records([record_id])

    def delete_reminder_records(self, record_ids: Iterable[str]) -> None:
        ids = [i for i in record_ids if i]
        if not ids:
            return
        now = self._now()
        with self._connect() as conn:
            conn.executemany(
                "UPDATE reminder_records SET deleted_at = ?, updated_at = ? WHERE id = ?",
                [(now, now, i) for i in ids],
            )

    # ---- settings ----

    def load_settings(self) -> AppSettings:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM settings WHERE id = 1").fetchone()
            if row is None:
                raise StoreError("settings row is missing")
            return self._row_to_settings(row)

    def save_settings(self, settings: AppSettings) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE settings
                SET device_id = ?,
                    snooze_minutes = ?,
                    webdav_enabled = ?,
                    webdav_url = ?,
                    webdav_username = ?,
                    webdav_password = ?,
                    webdav_root_path = ?,
                    webdav_sync_interval_minutes = ?,
                    webdav_last_sync_time = ?,
                    webdav_last_success_time = ?,
                    webdav_last_local_change_time = ?,
                    webdav_last_sync_status = ?,
                    webdav_last_sync_error = ?
                WHERE id = 1
                """,
                (
                    settings.device_id,
                    max(1, int(settings.snooze_minutes)),
                    1 if settings.webdav_enabled else 0,
                    settings.webdav_url.strip(),
                    settings.webdav_username,
                    settings.webdav_password,
                    settings.webdav_root_path.strip(),
                    max(1, int(settings.webdav_sync_interval_minutes)),
                    format_ts(settings.webdav_last_sync_time),
                    format_ts(settings.webdav_last_success_time),
                    format_ts(settings.webdav_last_local_change_time),
                    settings.webdav_last_sync_status,
                    settings.webdav_last_sync_error,
                ),
            )

    def update_sync_status(self, status: SyncState, error: str | None = None) -> AppSettings:
        """Record the outcome of a sync attempt; success states also stamp last success time."""
        settings = self.load_settings()
        now = self._clock()
        settings.webdav_last_sync_time = now
        if status.is_success:
            settings.webdav_last_success_time = now
        settings.webdav_last_sync_status = status.value
        settings.webdav_last_sync_error = error
        self.save_settings(settings)
        return settings

    def mark_local_change(self) -> datetime:
        now = self._clock()
        with self._connect() as conn:
            conn.execute(
                "UPDATE settings SET webdav_last_local_change_time = ? WHERE id = 1",
                (format_ts(now),),
            )
        return now

    # ---- sync primitives ----

    def export_snapshot(self, target: str | Path) -> Path:
        """Write a consistent single-file copy of the database to `target` (must not exist)."""
        target = Path(target)
        with self._connect() as conn:
            conn.execute("VACUUM INTO ?", (str(target),))
        return target

    def table_rows(self, table: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            return read_table_rows(conn, table)

    def merge_rows_into(
        self,
        table: str,
        remote_rows: list[dict[str, Any]],
        choose: RowChooser,
    ) -> int:
        """
        Reconcile `remote_rows` into `table` in one write transaction.

        The local rows are read under BEGIN IMMEDIATE, `choose(local, remote)`
        returns the rows to write, and those are REPLACEd by id before commit,
        so no other writer can commit between the read and the write.
        Returns the number of rows written.
        """
        columns = SYNC_TABLES.get(table)
        if columns is None:
            raise ValueError(f"unknown table {table!r}")

        placeholders = ", ".join("?" for _ in columns)
        sql = f"REPLACE INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            local_rows = read_table_rows(conn, table)
            winners = choose(local_rows, remote_rows)
            params = [tuple(row.get(c) for c in columns) for row in winners]
            if params:
                conn.executemany(sql, params)
        return len(params)

    # ---- maintenance ----

    def cleanup_data(self) -> dict[str, int]:
        """
        Physically purge old rows:
        - tombstones older than 7 days
        - completed one-time tasks older than 30 days
        - completed one-time tasks beyond the newest 100
        """
        now = self._clock()
        deleted_cutoff = format_ts(now - DELETED_RETENTION)
        completed_cutoff = format_ts(now - COMPLETED_RETENTION)
        removed: dict[str, int] = {}

        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE deleted_at IS NOT NULL AND deleted_at < ?",
                (deleted_cutoff,),
            )
            removed["tasks_deleted"] = cur.rowcount
            cur = conn.execute(
                """
                DELETE FROM tasks
                WHERE status = 'COMPLETED' AND deleted_at IS NULL
                  AND completed_at IS NOT NULL AND completed_at < ?
                """,
                (completed_cutoff,),
            )
            removed["tasks_completed_expired"] = cur.rowcount
            cur = conn.execute(
                """
                DELETE FROM tasks WHERE id IN (
                    SELECT id FROM tasks
                    WHERE status = 'COMPLETED' AND deleted_at IS NULL
                    ORDER BY completed_at DESC
                    LIMIT -1 OFFSET ?
                )
                """,
                (MAX_COMPLETED_TASKS,),
            )
            removed["tasks_completed_overflow"] = cur.rowcount
            cur = conn.execute(
                "DELETE FROM recurring_tasks WHERE deleted_at IS NOT NULL AND deleted_at < ?",
                (deleted_cutoff,),
            )
            removed["recurring_deleted"] = cur.rowcount
            cur = conn.execute(
                "DELETE FROM reminder_records WHERE deleted_at IS NOT NULL AND deleted_at < ?",
                (deleted_cutoff,),
            )
            removed["records_deleted"] = cur.rowcount

        logger.debug("cleanup_data removed=%s", removed)
        return removed

    def optimize(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            conn.execute("ANALYZE")
            conn.execute("PRAGMA optimize")
