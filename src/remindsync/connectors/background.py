# src/remindsync/connectors/background.py

"""
Background services thread.

The console REPL is blocking (input()), while the reminder timers, the sync
coordinator and store maintenance are asyncio tasks. They get their own event
loop in a daemon thread; the console talks to them through the thread-safe
scheduler/coordinator methods and state.loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..maintenance import run_maintenance_loop

logger = logging.getLogger(__name__)


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal background stop (loop closed).", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _run_services(state: AppState, stop_event: asyncio.Event, ready: threading.Event) -> None:
    state.loop = asyncio.get_running_loop()
    maintenance: asyncio.Task[None] | None = None
    try:
        armed = state.scheduler.start()
        await state.sync.start()
        if getattr(state.settings, "maintenance_enabled", True):
            maintenance = asyncio.create_task(run_maintenance_loop(state.store))
        logger.info("Background services started (armed=%d).", armed)
    finally:
        ready.set()

    try:
        await stop_event.wait()
    finally:
        if maintenance is not None:
            maintenance.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await maintenance
        state.sync.stop()
        state.scheduler.stop()
        # Let the cancelled timers unwind before the loop closes.
        await asyncio.sleep(0)
        state.loop = None
        logger.info("Background services stopped.")


def start_background(state: AppState, *, timeout: float = 5.0) -> BackgroundRunner | None:
    """
    Start the scheduler, the sync coordinator and maintenance in a background thread.

    Returns once the services are armed (or `timeout` elapsed).
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event

        try:
            loop.run_until_complete(_run_services(state, stop_event, ready))
        except Exception:
            logger.exception("Background services crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    t = threading.Thread(target=runner, name="remindsync-background", daemon=True)
    t.start()

    ready.wait(timeout=timeout)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Background thread did not initialize properly.")
        return None

    logger.info("Background thread started.")
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
