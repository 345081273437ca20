# src/remindsync/core/loop.py

from __future__ import annotations

import asyncio
from collections.abc import Callable


def call_in_loop(loop: asyncio.AbstractEventLoop | None, fn: Callable[..., object], *args: object) -> None:
    """
    Run `fn(*args)` on `loop`.

    Inline when already on that loop's thread, otherwise handed over with
    call_soon_threadsafe (fire-and-forget).
    """
    if loop is None:
        raise RuntimeError("event loop is not bound yet (start() was not called)")
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        fn(*args)
    else:
        loop.call_soon_threadsafe(fn, *args)
