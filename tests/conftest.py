# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from remindsync.connectors.background import start_background
from remindsync.core.state import AppState
from remindsync.notifications import NotificationHub
from remindsync.reminders.scheduler import ReminderScheduler
from remindsync.reminders.store import ReminderStore
from remindsync.sync.coordinator import SyncCoordinator

from .fakes import T0, FakeClock, FakeWebDavServer, RecordingSink


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> ReminderStore:
    return ReminderStore(tmp_path / "reminders.sqlite3", clock=clock)


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def server() -> FakeWebDavServer:
    return FakeWebDavServer()


@pytest.fixture()
def app_state(
    tmp_path: Path,
    store: ReminderStore,
    clock: FakeClock,
    server: FakeWebDavServer,
) -> Iterator[AppState]:
    """
    AppState wired like the real bootstrap, with deterministic fakes, and its
    background loop running.

    NOTE: We keep the real SQLite store here because its correctness is part of
    what we want to test.
    """
    hub = NotificationHub()

    def _on_fired() -> None:
        sync.notify_local_change()

    scheduler = ReminderScheduler(store, hub, clock=clock, on_change=_on_fired)
    sync = SyncCoordinator(
        store,
        client_factory=server.client_factory,
        clock=clock,
        tmp_dir=tmp_path,
        on_merged=scheduler.schedule_existing,
    )
    state = AppState(
        settings=SimpleNamespace(app_name="remindsync-test", maintenance_enabled=False),
        store=store,
        scheduler=scheduler,
        sync=sync,
        notifications=hub,
        clock=clock,
    )
    runner = start_background(state)
    assert runner is not None
    try:
        yield state
    finally:
        runner.stop()
        runner.join(timeout=5.0)
