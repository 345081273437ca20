# src/remindsync/core/state.py

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..timeutil import now_local
from .ports import Clock

if TYPE_CHECKING:
    from ..notifications import NotificationHub
    from ..reminders.scheduler import ReminderScheduler
    from ..reminders.store import ReminderStore
    from ..sync.coordinator import SyncCoordinator


@dataclass
class AppState:
    """Everything wired by the composition root, shared by the CLI and the reminder operations."""

    settings: Any
    store: ReminderStore
    scheduler: ReminderScheduler
    sync: SyncCoordinator
    notifications: NotificationHub
    clock: Clock = now_local

    # Background event loop owning the timers; set once the runner is up.
    loop: asyncio.AbstractEventLoop | None = None

    # Serializes console commands against each other.
    lock: threading.RLock = field(default_factory=threading.RLock)
