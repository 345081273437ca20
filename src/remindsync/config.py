# src/remindsync/config.py

"""Process-level settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process.
- No secrets here: WebDAV credentials and sync status live in the store's
  settings row, edited at runtime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "REMINDSYNC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    maintenance_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Timeouts ----
    http_connect_timeout_seconds: float
    http_read_timeout_seconds: float
    db_busy_timeout_seconds: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "remindsync").strip() or "remindsync"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        maintenance_enabled = _env_bool(_k("MAINTENANCE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/remindsync"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "reminders.sqlite3")

        # Network calls must never hang a sync attempt forever.
        connect_timeout = max(0.5, _env_float(_k("HTTP_CONNECT_TIMEOUT_SECONDS"), 5.0))
        read_timeout = max(1.0, _env_float(_k("HTTP_READ_TIMEOUT_SECONDS"), 30.0))
        busy_timeout = max(1.0, float(_env_int(_k("DB_BUSY_TIMEOUT_SECONDS"), 30)))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            maintenance_enabled=maintenance_enabled,
            data_dir=data_dir,
            db_path=db_path,
            http_connect_timeout_seconds=connect_timeout,
            http_read_timeout_seconds=read_timeout,
            db_busy_timeout_seconds=busy_timeout,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load .env (without overriding real env vars) once and return the cached Settings."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
