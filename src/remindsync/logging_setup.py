# src/remindsync/logging_setup.py

"""
Two log destinations for the remindsync process.

stderr shares the terminal with the REPL prompt, so it only gets what a user
should see while typing commands. The log file under the data directory gets
every record at DEBUG.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "remindsync.log"

# Own loggers that still run on the background thread: terminal shows WARNING+.
_BACKGROUND_PREFIXES = ("remindsync.sync.", "remindsync.maintenance")

# HTTP request lines from the WebDAV transport.
_TRANSPORT_LOGGERS = ("httpx", "httpcore")


class _ConsoleNoiseFilter(logging.Filter):
    """Terminal policy: own loggers pass, background ones need WARNING, everyone else ERROR."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("remindsync"):
            # Third-party libraries and captured py.warnings.
            return record.levelno >= logging.ERROR
        if name.startswith(_BACKGROUND_PREFIXES):
            return record.levelno >= logging.WARNING
        return True


def _formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(
    *,
    log_dir: str | Path = ".local/remindsync",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Replace the root logger's handlers with the terminal and file pair.

    Meant to run once from main() before any component logs. Returns the
    path of the log file.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = _formatter()

    terminal = logging.StreamHandler(sys.stderr)
    terminal.setLevel(console_level)
    terminal.setFormatter(fmt)
    terminal.addFilter(_ConsoleNoiseFilter())
    root.addHandler(terminal)

    logfile = logging.FileHandler(str(log_file), encoding="utf-8")
    logfile.setLevel(file_level)
    logfile.setFormatter(fmt)
    root.addHandler(logfile)

    logging.captureWarnings(True)

    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
