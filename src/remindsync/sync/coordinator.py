# src/remindsync/sync/coordinator.py

"""
Sync coordinator: decides when a sync attempt runs.

Policy:
- debounce: a local change schedules an attempt DEBOUNCE after it; a pending
  attempt is only ever pushed later, never earlier, so bursts coalesce
- throttle: automatic attempts are spaced at least MIN_INTERVAL after the last
  successful sync
- startup: if there are unsynced changes at boot, try after STARTUP_DELAY
- interval backstop: every configured N minutes, sync if dirty unless a
  debounced attempt is due within INTERVAL_GRACE

Attempts are single-flight. The network and merge work runs in a worker
thread (asyncio.to_thread); bookkeeping stays on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from ..core.loop import call_in_loop
from ..core.ports import Clock, SyncRepo
from ..errors import LockContention, StoreError, TransportError
from ..reminders.models import AppSettings, SyncState, SyncStatus
from ..timeutil import now_local
from .change_tracker import ChangeTracker, dirty_from_settings
from .merger import sync_once
from .remote_lock import RemoteLock
from .webdav import ConnectionCheck, WebDavClient

logger = logging.getLogger(__name__)

DEBOUNCE = timedelta(minutes=5)
MIN_INTERVAL = timedelta(minutes=15)
STARTUP_DELAY = timedelta(seconds=15)
INTERVAL_GRACE = timedelta(seconds=30)

ClientFactory = Callable[[AppSettings], WebDavClient]


class SyncCoordinator:
    def __init__(
        self,
        store: SyncRepo,
        *,
        client_factory: ClientFactory = WebDavClient.from_settings,
        clock: Clock = now_local,
        tracker: ChangeTracker | None = None,
        debounce: timedelta = DEBOUNCE,
        min_interval: timedelta = MIN_INTERVAL,
        startup_delay: timedelta = STARTUP_DELAY,
        lock_now_ms: Callable[[], int] | None = None,
        tmp_dir: str | Path | None = None,
        on_merged: Callable[[], None] | None = None,
        on_status: Callable[[SyncStatus], None] | None = None,
    ) -> None:
        self._store = store
        self._client_factory = client_factory
        self._clock = clock
        self._tracker = tracker or ChangeTracker()
        self._debounce = debounce
        self._min_interval = min_interval
        self._startup_delay = startup_delay
        self._lock_now_ms = lock_now_ms
        self._tmp_dir = tmp_dir
        self._on_merged = on_merged
        self._on_status = on_status

        self._loop: asyncio.AbstractEventLoop | None = None
        self._mutex = threading.Lock()
        self._next_due: datetime | None = None
        self._pending: asyncio.Task[None] | None = None
        self._interval: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[object]] = set()
        self._in_flight = False

    @property
    def tracker(self) -> ChangeTracker:
        return self._tracker

    @property
    def next_attempt_at(self) -> datetime | None:
        with self._mutex:
            return self._next_due

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ---- lifecycle ----

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._apply_settings()
        logger.info("SyncCoordinator started (dirty=%s)", self._tracker.dirty)

    def stop(self) -> None:
        for task in (self._pending, self._interval, *self._background):
            if task is not None:
                task.cancel()
        self._pending = None
        self._interval = None
        self._background.clear()
        with self._mutex:
            self._next_due = None

    def update_settings(self) -> None:
        """Re-read sync settings: restart the interval loop, maybe schedule a startup-style attempt."""
        call_in_loop(self._loop, self._apply_settings)

    def _apply_settings(self) -> None:
        try:
            settings = self._store.load_settings()
        except StoreError:
            logger.exception("Cannot load settings; sync scheduling unchanged")
            return
        self._tracker.reset(dirty_from_settings(settings))
        self._restart_interval(settings)
        self._schedule_startup_if_needed(settings)

    # ---- local changes ----

    def notify_local_change(self) -> None:
        """Record a local mutation and (re)arm the debounced attempt. Thread-safe."""
        try:
            self._store.mark_local_change()
        except StoreError:
            logger.exception("mark_local_change failed")
        self._tracker.mark()
        if self._loop is not None:
            call_in_loop(self._loop, self._schedule_debounced)

    def _schedule_debounced(self) -> None:
        settings = self._load_configured()
        if settings is None:
            return
        now = self._clock()
        due = now + self._debounce
        throttle = self._next_allowed(settings, now)
        if throttle is not None and throttle > due:
            due = throttle
        self.schedule_attempt_at(due, "debounce")

    def _schedule_startup_if_needed(self, settings: AppSettings) -> None:
        if not self._tracker.dirty or not settings.sync_configured:
            return
        now = self._clock()
        due = now + self._startup_delay
        throttle = self._next_allowed(settings, now)
        if throttle is not None and throttle > due:
            due = throttle
        self.schedule_attempt_at(due, "startup")

    # ---- scheduling ----

    def schedule_attempt_at(self, due: datetime, reason: str) -> None:
        """
        Arm the single pending attempt for `due`.

        Attempts right away when `due` has passed. An already pending attempt
        that is as late or later wins: schedules are only ever extended.
        """
        now = self._clock()
        if due <= now:
            self._spawn(self._request_if_needed(reason))
            return

        with self._mutex:
            if self._next_due is not None and self._next_due >= due:
                return
            self._next_due = due

        if self._pending is not None:
            self._pending.cancel()

        delay = (due - now).total_seconds()
        loop = self._loop or asyncio.get_running_loop()
        self._pending = loop.create_task(self._fire_pending(delay, reason))
        logger.debug("Sync attempt (%s) armed at %s", reason, due)

    async def _fire_pending(self, delay: float, reason: str) -> None:
        await asyncio.sleep(delay)
        with self._mutex:
            self._next_due = None
        if self._pending is asyncio.current_task():
            self._pending = None
        try:
            await self._request_if_needed(reason)
        except Exception:
            logger.exception("Scheduled sync attempt (%s) crashed", reason)

    def _spawn(self, coro) -> None:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _restart_interval(self, settings: AppSettings) -> None:
        if self._interval is not None:
            self._interval.cancel()
            self._interval = None
        if not settings.sync_configured:
            return
        minutes = max(1, int(settings.webdav_sync_interval_minutes))
        loop = self._loop or asyncio.get_running_loop()
        self._interval = loop.create_task(self._interval_loop(minutes * 60.0))

    async def _interval_loop(self, period_s: float) -> None:
        while True:
            await asyncio.sleep(period_s)
            try:
                await self.on_interval_tick()
            except Exception:
                logger.exception("Interval sync tick failed")

    async def on_interval_tick(self) -> SyncState | None:
        now = self._clock()
        due = self.next_attempt_at
        if due is not None and timedelta(0) < due - now <= INTERVAL_GRACE:
            # The debounced attempt is about to run; don't race it.
            return None
        return await self._request_if_needed("interval")

    async def _request_if_needed(self, reason: str) -> SyncState | None:
        if not self._tracker.dirty:
            return None
        settings = self._load_configured()
        if settings is None:
            return None
        now = self._clock()
        throttle = self._next_allowed(settings, now)
        if throttle is not None:
            self.schedule_attempt_at(throttle, "throttle")
            return None
        return await self.request_sync(reason)

    def _next_allowed(self, settings: AppSettings, now: datetime) -> datetime | None:
        last = settings.webdav_last_success_time
        if last is None:
            return None
        allowed = last + self._min_interval
        return allowed if allowed > now else None

    def _load_configured(self) -> AppSettings | None:
        try:
            settings = self._store.load_settings()
        except StoreError:
            logger.exception("Cannot load settings for sync")
            return None
        return settings if settings.sync_configured else None

    # ---- attempts ----

    async def request_sync(self, reason: str = "manual") -> SyncState | None:
        """
        Run one attempt now. Single-flight: returns None if one is already
        running (or sync is not configured).
        """
        settings = self._load_configured()
        if settings is None:
            return None
        if self._in_flight:
            logger.debug("Sync (%s) skipped: attempt already in flight", reason)
            return None

        self._in_flight = True
        start_seq = self._tracker.sequence
        try:
            state = await self._run_attempt(settings, reason)
            if state.is_success:
                if not self._tracker.clear_if_unchanged(start_seq):
                    # Changed while syncing: a final pass will pick it up.
                    self._schedule_debounced()
                if state == SyncState.SUCCESS and self._on_merged is not None:
                    try:
                        self._on_merged()
                    except Exception:
                        logger.exception("on_merged callback failed")
            return state
        finally:
            self._in_flight = False

    async def sync_now(self) -> SyncState:
        """User-triggered sync. Raises TransportError when the attempt fails."""
        settings = self._load_configured()
        if settings is None:
            raise TransportError("WebDAV sync is not configured")
        state = await self.request_sync("manual")
        if state is None:
            return SyncState.SYNCING
        if state == SyncState.FAILED:
            raise TransportError(self.get_status().error or "sync failed")
        return state

    async def _run_attempt(self, settings: AppSettings, reason: str) -> SyncState:
        logger.info("Sync attempt started (%s)", reason)
        self._record(SyncState.SYNCING, None)
        try:
            state = await asyncio.to_thread(self._attempt_blocking, settings)
        except LockContention as e:
            logger.info("Sync skipped: %s", e)
            self._record(SyncState.LOCKED, None)
            return SyncState.LOCKED
        except (TransportError, StoreError) as e:
            logger.warning("Sync failed: %s", e)
            self._record(SyncState.FAILED, str(e))
            return SyncState.FAILED
        except Exception as e:
            logger.exception("Sync crashed")
            self._record(SyncState.FAILED, str(e) or e.__class__.__name__)
            return SyncState.FAILED

        self._record(state, None)
        logger.info("Sync attempt finished: %s", state.value)
        return state

    def _attempt_blocking(self, settings: AppSettings) -> SyncState:
        with self._client_factory(settings) as client:
            if self._lock_now_ms is not None:
                lock = RemoteLock(client, settings.device_id, now_ms=self._lock_now_ms)
            else:
                lock = RemoteLock(client, settings.device_id)
            return sync_once(self._store, client, lock, tmp_dir=self._tmp_dir)

    def _record(self, state: SyncState, error: str | None) -> None:
        try:
            self._store.update_sync_status(state, error)
        except StoreError:
            logger.exception("Cannot record sync status %s", state.value)
            return
        if self._on_status is not None:
            try:
                self._on_status(self.get_status())
            except Exception:
                logger.exception("on_status callback failed")

    # ---- status ----

    def get_status(self) -> SyncStatus:
        settings = self._store.load_settings()
        return SyncStatus(
            status=settings.webdav_last_sync_status or SyncState.NEVER.value,
            error=settings.webdav_last_sync_error,
            time=settings.webdav_last_sync_time,
            dirty=self._tracker.dirty,
            next_attempt_at=self.next_attempt_at,
            in_flight=self._in_flight,
        )

    def test_connection(self, settings: AppSettings | None = None) -> ConnectionCheck:
        """PROPFIND the configured root. Blocking; raises TransportError on network failure."""
        if settings is None:
            settings = self._store.load_settings()
        if not settings.webdav_url.strip():
            return ConnectionCheck(False, "WebDAV url is not set")
        with self._client_factory(settings) as client:
            return client.test_connection()
