# tests/test_commands.py

from __future__ import annotations

from remindsync.cli.commands import CommandRegistry, registry
from remindsync.core.state import AppState
from remindsync.reminders.models import NotificationPayload, TaskKind

from .fakes import BASE_URL, T0, FakeWebDavServer, wait_until


def _run(state: AppState, line: str) -> str:
    reply = registry.handle(state, line)
    assert reply is not None
    return reply


def test_command_registry_routes_2_and_3_params(app_state: AppState) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    notes: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return "h2 " + ",".join(args)

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a", aliases=["aa"])
    reg.register("b", h3, "b")

    assert reg.handle(app_state, "/a x y") == "h2 x,y"
    assert reg.handle(app_state, "/AA") == "h2 "
    assert reg.handle(app_state, "/b", emit=notes.append) == "h3"
    assert called == {"h2": 2, "h3": 1}
    assert notes == ["note"]
    assert "/a - a" in reg.build_help()


def test_command_registry_unknown_and_non_command(app_state: AppState) -> None:
    reg = CommandRegistry()
    assert reg.handle(app_state, "hello") is None
    assert "Unknown command" in (reg.handle(app_state, "/nope") or "")
    assert "Empty command" in (reg.handle(app_state, "/") or "")


def test_help_lists_every_command(app_state: AppState) -> None:
    text = _run(app_state, "/help")
    for name in ("tasks", "remind", "every", "daily", "weekly", "monthly", "cron", "sync", "test-webdav"):
        assert f"/{name} " in text


def test_add_remind_and_list(app_state: AppState) -> None:
    assert _run(app_state, "/add buy stamps").startswith("Task ")
    reply = _run(app_state, "/remind +30 call the plumber")
    assert "2026-10-18 12:30" in reply

    listing = _run(app_state, "/tasks")
    assert "buy stamps" in listing
    assert "call the plumber" in listing
    assert wait_until(lambda: len(app_state.scheduler.armed_tasks()) == 1)


def test_remind_at_clock_time_rolls_to_tomorrow(app_state: AppState) -> None:
    assert "2026-10-19 08:15" in _run(app_state, "/remind 08:15 early bird")
    assert "2026-10-18 18:00" in _run(app_state, "/remind 18:00 evening")
    assert "2026-11-01 10:00" in _run(app_state, "/remind 2026-11-01T10:00 exact")


def test_bad_input_is_reported_not_raised(app_state: AppState) -> None:
    assert _run(app_state, "/remind tomorrow x").startswith("Invalid input:")
    assert _run(app_state, "/remind +0 x").startswith("Invalid input:")
    assert _run(app_state, "/weekly 8 09:00 gym").startswith("Invalid input:")
    assert _run(app_state, "/daily 9am coffee").startswith("Invalid input:")
    assert _run(app_state, "/cron 0 9 * * 1-5").startswith("Usage:")
    assert _run(app_state, "/done nothing-here").startswith("Invalid input:")
    assert _run(app_state, "/remind").startswith("Usage:")


def test_recurring_commands(app_state: AppState) -> None:
    assert "next at 2026-10-18 12:30" in _run(app_state, "/every 30 09:00-18:00 drink water")
    assert "next at 2026-10-19 09:00" in _run(app_state, "/daily 09:00 vitamins")
    assert "next at 2026-10-20 07:00" in _run(app_state, "/weekly 2 07:00 bins out")
    assert "next at 2026-10-31 10:00" in _run(app_state, "/monthly 31 10:00 invoices")
    assert "next at 2026-10-19 09:00" in _run(app_state, "/cron 0 9 * * 1-5 | standup")

    recurring = app_state.store.list_recurring_tasks()
    assert len(recurring) == 5
    assert {r.repeat_mode for r in recurring} == {"INTERVAL_RANGE", "DAILY", "WEEKLY", "MONTHLY", "CRON"}
    assert wait_until(lambda: len(app_state.scheduler.armed_recurring()) == 5)


def test_pause_resume_done_delete_by_short_id(app_state: AppState) -> None:
    _run(app_state, "/daily 09:00 vitamins")
    rec = app_state.store.list_recurring_tasks()[0]
    short = rec.id[:8]

    assert "paused" in _run(app_state, f"/pause {short}")
    assert "[paused]" in _run(app_state, "/tasks")
    assert "resumed" in _run(app_state, f"/resume {short}")

    _run(app_state, "/add file taxes")
    task = app_state.store.list_active_tasks()[0]
    assert "completed" in _run(app_state, f"/done {task.id[:6]}")
    assert "file taxes" in _run(app_state, "/tasks done")
    assert "reopened" in _run(app_state, f"/undone {task.id[:6]}")

    assert "Deleted" in _run(app_state, f"/delete {short}")
    assert "Deleted" in _run(app_state, f"/rm {task.id}")
    assert "No tasks yet" in _run(app_state, "/tasks")


def test_ack_and_snooze_current_notification(app_state: AppState) -> None:
    assert _run(app_state, "/ack") == "Nothing to acknowledge."
    assert _run(app_state, "/snooze") == "Nothing to snooze."

    _run(app_state, "/add water plants")
    task = app_state.store.list_active_tasks()[0]
    record = app_state.store.create_reminder_record(
        reminder_id=task.id, description=task.description, kind=TaskKind.ONE_TIME, trigger_time=T0
    )
    app_state.notifications.publish(
        NotificationPayload(
            record_id=record.id,
            reminder_id=task.id,
            kind=TaskKind.ONE_TIME,
            description=task.description,
            snooze_minutes=7,
        )
    )

    assert "2026-10-18 12:07" in _run(app_state, "/snooze")
    assert app_state.notifications.snapshot() is None
    assert "SNOOZED" in _run(app_state, "/records")

    assert "DISMISSED" in _run(app_state, f"/ack {record.id[:8]}")
    assert "deleted" in _run(app_state, f"/records clear {record.id[:8]}")
    assert "No reminder records." == _run(app_state, "/records")


def test_webdav_settings_sync_and_test(app_state: AppState, server: FakeWebDavServer) -> None:
    assert "Enabled: no" in _run(app_state, "/webdav")
    assert _run(app_state, "/webdav on").startswith("Invalid input:")

    _run(app_state, f"/webdav url {BASE_URL}")
    _run(app_state, "/webdav interval 30")
    assert _run(app_state, "/webdav on") == "WebDAV sync enabled."

    shown = _run(app_state, "/webdav")
    assert "Enabled: yes" in shown
    assert "Interval: 30 min" in shown

    assert _run(app_state, "/test-webdav") == "WebDAV: connection ok."

    _run(app_state, "/add sync me")
    assert _run(app_state, "/sync") == "Sync finished: first_sync."
    assert server.get("remindsync.db") is not None
    assert "Sync: first_sync" in _run(app_state, "/status")


def test_sync_failure_is_reported(app_state: AppState, server: FakeWebDavServer) -> None:
    assert _run(app_state, "/sync").startswith("Sync failed:")

    _run(app_state, f"/webdav url {BASE_URL}")
    _run(app_state, "/webdav on")
    server.offline = True
    assert _run(app_state, "/sync").startswith("Sync failed:")
    assert "Last sync error" in _run(app_state, "/status")
