# src/remindsync/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..reminders.models import NotificationPayload

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def format_notification(payload: NotificationPayload) -> str:
    return (
        f"[REMINDER] {payload.description}  "
        f"(/ack to dismiss, /snooze for {payload.snooze_minutes} min; record {payload.record_id[:8]})"
    )


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    lock = state.lock

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g. /sync)
        _print_ts(text)

    # Fired reminders arrive on the background thread.
    unsubscribe = state.notifications.subscribe(lambda p: _print_ts(format_notification(p)))
    pending = state.notifications.snapshot()
    if pending is not None:
        _print_ts(format_notification(pending))

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                with lock:
                    cmd_response = command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is None:
                cmd_response = "Commands start with '/'. Use /help to list them."
            _print_ts(cmd_response)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
