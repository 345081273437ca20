# src/remindsync/maintenance.py

"""
Periodic store housekeeping: cleanup hourly, optimize every six hours.

Runs as a plain asyncio loop; cancel the coroutine to stop it.
"""

from __future__ import annotations

import asyncio
import logging
import time

from .errors import StoreError
from .reminders.store import ReminderStore

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 60 * 60
OPTIMIZE_INTERVAL_SECONDS = 6 * 60 * 60


def run_maintenance_once(store: ReminderStore, *, optimize: bool = False) -> dict[str, int]:
    removed = store.cleanup_data()
    if any(removed.values()):
        logger.info("Maintenance cleanup removed=%s", removed)
    if optimize:
        store.optimize()
        logger.info("Maintenance optimize done")
    return removed


async def run_maintenance_loop(
    store: ReminderStore,
    *,
    cleanup_interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
    optimize_interval_seconds: float = OPTIMIZE_INTERVAL_SECONDS,
) -> None:
    cleanup_s = max(1.0, float(cleanup_interval_seconds))
    optimize_s = max(cleanup_s, float(optimize_interval_seconds))
    last_optimize = time.monotonic()

    while True:
        await asyncio.sleep(cleanup_s)

        now = time.monotonic()
        do_optimize = now - last_optimize >= optimize_s
        try:
            await asyncio.to_thread(run_maintenance_once, store, optimize=do_optimize)
        except StoreError:
            logger.exception("Maintenance pass failed")
        if do_optimize:
            last_optimize = now
