# src/remindsync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store, notification hub, sync coordinator and scheduler into AppState.

Nothing here starts timers: the background runner binds the scheduler and the
coordinator to its event loop.
"""

from __future__ import annotations

import functools
import logging

from ..config import Settings, get_settings
from ..core.state import AppState
from ..notifications import NotificationHub
from ..reminders.scheduler import ReminderScheduler
from ..reminders.store import ReminderStore
from ..sync.coordinator import SyncCoordinator
from ..sync.webdav import WebDavClient

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = ReminderStore(settings.db_path, busy_timeout=settings.db_busy_timeout_seconds)
    hub = NotificationHub()

    client_factory = functools.partial(
        WebDavClient.from_settings,
        connect_timeout=settings.http_connect_timeout_seconds,
        read_timeout=settings.http_read_timeout_seconds,
    )

    def _on_fired() -> None:
        # Fired reminders write records and triggers; those are local changes too.
        sync.notify_local_change()

    scheduler = ReminderScheduler(store, hub, on_change=_on_fired)
    # Pulled rows may add, move or delete reminders: re-arm from the merged store.
    sync = SyncCoordinator(
        store,
        client_factory=client_factory,
        on_merged=scheduler.schedule_existing,
    )

    state = AppState(
        settings=settings,
        store=store,
        scheduler=scheduler,
        sync=sync,
        notifications=hub,
    )
    logger.info("State ready (db=%s)", settings.db_path)
    return state
