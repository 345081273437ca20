# src/remindsync/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import cast

from ..core.state import AppState
from ..errors import RemindSyncError, TransportError, ValidationError
from ..reminders import api
from ..reminders.models import RecordAction, RecurringTask, RepeatMode, TaskKind
from ..timeutil import parse_datetime_any

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

SHORT_ID = 8
SYNC_TIMEOUT_SECONDS = 120.0


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Typed user-facing errors (bad input, sync failures) become the reply text.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except ValidationError as e:
            return f"Invalid input: {e}"
        except TransportError as e:
            return f"Sync failed: {e}"
        except RemindSyncError as e:
            logger.warning("/%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _short(id_: str) -> str:
    return id_[:SHORT_ID]


def _fmt(dt: datetime | None) -> str:
    return dt.strftime("%Y-%m-%d %H:%M") if dt else "-"


def _resolve_id(prefix: str, candidates: Iterable[str]) -> str:
    """Resolve a (possibly shortened) id against `candidates`."""
    prefix = prefix.strip()
    if not prefix:
        raise ValidationError("an id is required")
    matches = [c for c in candidates if c.startswith(prefix)]
    if not matches:
        raise ValidationError(f"no item with id {prefix}")
    if len(matches) > 1:
        raise ValidationError(f"id {prefix} is ambiguous ({len(matches)} matches)")
    return matches[0]


def _find_any(state: AppState, prefix: str) -> tuple[str, str]:
    """Find a one-time or recurring task by id prefix. Returns (kind, id)."""
    task_ids = [t.id for t in state.store.list_active_tasks()]
    task_ids += [t.id for t in state.store.list_completed_tasks()]
    rec_ids = [t.id for t in state.store.list_recurring_tasks()]
    matches = [("task", i) for i in task_ids if i.startswith(prefix)]
    matches += [("recurring", i) for i in rec_ids if i.startswith(prefix)]
    if not matches:
        raise ValidationError(f"no task with id {prefix}")
    if len(matches) > 1:
        raise ValidationError(f"id {prefix} is ambiguous ({len(matches)} matches)")
    return matches[0]


def _parse_when(state: AppState, raw: str) -> datetime:
    """Accept +MINUTES, HH:MM (today, or tomorrow if passed) or YYYY-MM-DDTHH:MM[:SS]."""
    raw = raw.strip()
    now = state.clock()
    if raw.startswith("+"):
        try:
            minutes = int(raw[1:])
        except ValueError as e:
            raise ValidationError(f"bad relative time {raw!r}") from e
        if minutes < 1:
            raise ValidationError("relative time must be at least +1")
        return now + timedelta(minutes=minutes)
    if len(raw) <= 5 and ":" in raw:
        try:
            at = datetime.strptime(raw, "%H:%M").time()
        except ValueError as e:
            raise ValidationError(f"bad time {raw!r}") from e
        when = datetime.combine(now.date(), at)
        return when if when > now else when + timedelta(days=1)
    when = parse_datetime_any(raw)
    if when is None:
        raise ValidationError(f"bad date/time {raw!r} (use +MIN, HH:MM or YYYY-MM-DDTHH:MM)")
    return when


def _parse_int(raw: str, what: str) -> int:
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"{what} must be a number (got {raw!r})") from e


def _run_async(state: AppState, coro, timeout: float):
    loop = state.loop
    if loop is None:
        coro.close()
        raise TransportError("background loop is not running")
    return asyncio.run_coroutine_threadsafe(coro, loop).result(timeout=timeout)


def _created_recurring(task: RecurringTask) -> str:
    return f"Recurring {_short(task.id)} created ({task.repeat_mode}); next at {_fmt(task.next_trigger)}."


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    status = state.sync.get_status()
    armed_tasks = len(state.scheduler.armed_tasks())
    armed_recurring = len(state.scheduler.armed_recurring())
    pending = state.notifications.snapshot()
    lines = [
        "Status:",
        f"  Database: {state.store.db_path}",
        f"  Armed timers: {armed_tasks} task(s), {armed_recurring} recurring",
        f"  Sync: {status.status} at {_fmt(status.time)}",
        f"  Unsynced changes: {'yes' if status.dirty else 'no'}",
        f"  Next sync attempt: {_fmt(status.next_attempt_at)}",
    ]
    if status.error:
        lines.append(f"  Last sync error: {status.error}")
    if pending is not None:
        lines.append(f"  Pending notification: {_short(pending.record_id)} {pending.description}")
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks       -> active one-time tasks and recurring tasks
    /tasks done  -> completed one-time tasks
    """
    if args and args[0].lower() == "done":
        done = state.store.list_completed_tasks(limit=20)
        if not done:
            return "No completed tasks."
        lines = ["Completed tasks:"]
        for t in done:
            lines.append(f"  {_short(t.id)}  {_fmt(t.completed_at)}  {t.description}")
        return "\n".join(lines)

    tasks = state.store.list_active_tasks()
    recurring = state.store.list_recurring_tasks()
    if not tasks and not recurring:
        return "No tasks yet. Try /add, /remind or /every."

    lines: list[str] = []
    if tasks:
        lines.append("Tasks:")
        for t in tasks:
            lines.append(f"  {_short(t.id)}  {_fmt(t.reminder_time):16}  {t.description}")
    if recurring:
        lines.append("Recurring:")
        for r in recurring:
            paused = " [paused]" if r.is_paused else ""
            lines.append(
                f"  {_short(r.id)}  {_fmt(r.next_trigger):16}  {r.repeat_mode:<14} {r.description}{paused}"
            )
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /add <description>"
    task = api.create_task(state, " ".join(args))
    return f"Task {_short(task.id)} added."


def cmd_remind(state: AppState, args: list[str]) -> str:
    """/remind <+MIN | HH:MM | YYYY-MM-DDTHH:MM> <description>"""
    if len(args) < 2:
        return "Usage: /remind <+MIN | HH:MM | YYYY-MM-DDTHH:MM> <description>"
    when = _parse_when(state, args[0])
    task = api.create_task(state, " ".join(args[1:]), when)
    return f"Task {_short(task.id)} will remind at {_fmt(task.reminder_time)}."


def cmd_every(state: AppState, args: list[str]) -> str:
    """/every <minutes> [HH:MM-HH:MM] <description>"""
    if len(args) < 2:
        return "Usage: /every <minutes> [HH:MM-HH:MM] <description>"
    interval = _parse_int(args[0], "minutes")
    start = end = None
    rest = args[1:]
    if "-" in rest[0] and ":" in rest[0]:
        start, _, end = rest[0].partition("-")
        rest = rest[1:]
    draft = RecurringTask(
        id="",
        description=" ".join(rest),
        next_trigger=None,
        interval_minutes=interval,
        repeat_mode=RepeatMode.INTERVAL_RANGE.value,
        start_time=start,
        end_time=end,
    )
    return _created_recurring(api.create_recurring_task(state, draft))


def cmd_daily(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /daily <HH:MM> <description>"
    draft = RecurringTask(
        id="",
        description=" ".join(args[1:]),
        next_trigger=None,
        repeat_mode=RepeatMode.DAILY.value,
        schedule_time=args[0],
    )
    return _created_recurring(api.create_recurring_task(state, draft))


def cmd_weekly(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        return "Usage: /weekly <1-7, 1=Monday> <HH:MM> <description>"
    draft = RecurringTask(
        id="",
        description=" ".join(args[2:]),
        next_trigger=None,
        repeat_mode=RepeatMode.WEEKLY.value,
        schedule_weekday=_parse_int(args[0], "weekday"),
        schedule_time=args[1],
    )
    return _created_recurring(api.create_recurring_task(state, draft))


def cmd_monthly(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        return "Usage: /monthly <1-31> <HH:MM> <description>"
    draft = RecurringTask(
        id="",
        description=" ".join(args[2:]),
        next_trigger=None,
        repeat_mode=RepeatMode.MONTHLY.value,
        schedule_day=_parse_int(args[0], "day"),
        schedule_time=args[1],
    )
    return _created_recurring(api.create_recurring_task(state, draft))


def cmd_cron(state: AppState, args: list[str]) -> str:
    """/cron <expression> | <description>"""
    line = " ".join(args)
    expr, sep, description = line.partition("|")
    if not sep or not expr.strip() or not description.strip():
        return "Usage: /cron <min hour dom mon dow> | <description>"
    draft = RecurringTask(
        id="",
        description=description,
        next_trigger=None,
        repeat_mode=RepeatMode.CRON.value,
        cron_expression=expr,
    )
    return _created_recurring(api.create_recurring_task(state, draft))


def cmd_pause(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /pause <id>"
    task_id = _resolve_id(args[0], (t.id for t in state.store.list_recurring_tasks()))
    api.pause_recurring_task(state, task_id)
    return f"Recurring {_short(task_id)} paused."


def cmd_resume(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /resume <id>"
    task_id = _resolve_id(args[0], (t.id for t in state.store.list_recurring_tasks()))
    task = api.resume_recurring_task(state, task_id)
    return f"Recurring {_short(task_id)} resumed; next at {_fmt(task.next_trigger)}."


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    task_id = _resolve_id(args[0], (t.id for t in state.store.list_active_tasks()))
    api.complete_task(state, task_id)
    return f"Task {_short(task_id)} completed."


def cmd_undone(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /undone <id>"
    task_id = _resolve_id(args[0], (t.id for t in state.store.list_completed_tasks()))
    api.uncomplete_task(state, task_id)
    return f"Task {_short(task_id)} reopened."


def cmd_delete(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /delete <id>"
    kind, task_id = _find_any(state, args[0])
    if kind == "recurring":
        api.delete_recurring_task(state, task_id)
    else:
        api.delete_task(state, task_id)
    return f"Deleted {_short(task_id)}."


def cmd_records(state: AppState, args: list[str]) -> str:
    """
    /records            -> recent reminder records
    /records clear <id> -> delete one record
    """
    if args and args[0].lower() == "clear":
        if len(args) < 2:
            return "Usage: /records clear <id>"
        record_id = _resolve_id(args[1], (r.id for r in state.store.list_reminder_records(500)))
        api.delete_reminder_record(state, record_id)
        return f"Record {_short(record_id)} deleted."

    limit = _parse_int(args[0], "limit") if args else 20
    records = api.list_reminder_records(state, limit)
    if not records:
        return "No reminder records."
    lines = ["Reminder records:"]
    for r in records:
        lines.append(f"  {_short(r.id)}  {_fmt(r.trigger_time)}  {r.action:<9} {r.description}")
    return "\n".join(lines)


def cmd_ack(state: AppState, args: list[str]) -> str:
    """/ack [record_id] [action]  (defaults: current notification, DISMISSED)"""
    pending = state.notifications.snapshot()
    if args:
        record_id = _resolve_id(args[0], (r.id for r in state.store.list_reminder_records(500)))
    elif pending is not None:
        record_id = pending.record_id
    else:
        return "Nothing to acknowledge."
    action = args[1] if len(args) > 1 else RecordAction.DISMISSED.value
    api.ack_notification(state, record_id, action)
    return f"Record {_short(record_id)} -> {action.upper()}."


def cmd_snooze(state: AppState, args: list[str]) -> str:
    """/snooze [record_id] [minutes]  (defaults: current notification, configured snooze)"""
    pending = state.notifications.snapshot()
    settings = state.store.load_settings()
    minutes = settings.snooze_minutes

    if args:
        record_id = _resolve_id(args[0], (r.id for r in state.store.list_reminder_records(500)))
        if len(args) > 1:
            minutes = _parse_int(args[1], "minutes")
    elif pending is not None:
        record_id = pending.record_id
        minutes = pending.snooze_minutes
    else:
        return "Nothing to snooze."

    record = state.store.get_reminder_record(record_id)
    if record is None:
        return f"No record {_short(record_id)}."
    kind = TaskKind.from_db(record.kind)
    fire_at = api.snooze_notification(state, record.id, record.reminder_id, kind, minutes)
    return f"Snoozed until {_fmt(fire_at)}."


def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("[SYNC] Syncing with WebDAV...")
    result = _run_async(state, state.sync.sync_now(), SYNC_TIMEOUT_SECONDS)
    return f"Sync finished: {result.value}."


def cmd_webdav(state: AppState, args: list[str]) -> str:
    """
    /webdav                      -> show configuration
    /webdav on|off               -> enable/disable sync
    /webdav url|user|password|root <value>
    /webdav interval <minutes>
    """
    if not args:
        s = state.store.load_settings()
        return (
            "WebDAV:\n"
            f"  Enabled: {'yes' if s.webdav_enabled else 'no'}\n"
            f"  URL: {s.webdav_url or '-'}\n"
            f"  Root path: {s.webdav_root_path or '-'}\n"
            f"  User: {s.webdav_username or '-'}\n"
            f"  Password: {'set' if s.webdav_password else '-'}\n"
            f"  Interval: {s.webdav_sync_interval_minutes} min\n"
            f"  Device: {s.device_id}"
        )

    sub = args[0].lower()
    value = " ".join(args[1:])
    if sub in ("on", "off"):
        api.update_sync_settings(state, enabled=(sub == "on"))
        return f"WebDAV sync {'enabled' if sub == 'on' else 'disabled'}."
    if sub == "url":
        api.update_sync_settings(state, url=value)
    elif sub == "user":
        api.update_sync_settings(state, username=value)
    elif sub == "password":
        api.update_sync_settings(state, password=value)
    elif sub == "root":
        api.update_sync_settings(state, root_path=value)
    elif sub == "interval":
        api.update_sync_settings(state, interval_minutes=_parse_int(value, "interval"))
    else:
        return "Usage: /webdav [on|off|url|user|password|root|interval] [value]"
    return f"WebDAV {sub} updated."


def cmd_test_webdav(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("[SYNC] Testing WebDAV connection...")
    check = state.sync.test_connection()
    return f"WebDAV: {check.message}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show scheduler and sync status.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks | /tasks done.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task without reminder: /add <description>.")
registry.register(
    "remind", cmd_remind, help_text="One-time reminder: /remind <+MIN|HH:MM|YYYY-MM-DDTHH:MM> <text>."
)
registry.register(
    "every", cmd_every, help_text="Interval reminder: /every <min> [HH:MM-HH:MM] <text>."
)
registry.register("daily", cmd_daily, help_text="Daily reminder: /daily <HH:MM> <text>.")
registry.register("weekly", cmd_weekly, help_text="Weekly reminder: /weekly <1-7> <HH:MM> <text>.")
registry.register("monthly", cmd_monthly, help_text="Monthly reminder: /monthly <1-31> <HH:MM> <text>.")
registry.register("cron", cmd_cron, help_text="Cron reminder: /cron <expr> | <text>.")
registry.register("pause", cmd_pause, help_text="Pause a recurring reminder: /pause <id>.")
registry.register("resume", cmd_resume, help_text="Resume a recurring reminder: /resume <id>.")
registry.register("done", cmd_done, help_text="Complete a task: /done <id>.")
registry.register("undone", cmd_undone, help_text="Reopen a completed task: /undone <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task or recurring reminder: /delete <id>.", aliases=["rm"])
registry.register("records", cmd_records, help_text="Reminder history: /records [n] | /records clear <id>.")
registry.register("ack", cmd_ack, help_text="Acknowledge a notification: /ack [id] [action].")
registry.register("snooze", cmd_snooze, help_text="Snooze a notification: /snooze [id] [minutes].")
registry.register("sync", cmd_sync, help_text="Sync with WebDAV now.")
registry.register("webdav", cmd_webdav, help_text="Show/edit WebDAV settings: /webdav [key value].")
registry.register("test-webdav", cmd_test_webdav, help_text="Check the WebDAV connection.")
