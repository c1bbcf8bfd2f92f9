# src/studytrack/config.py

"""Process settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process (paths, logging, background loops).
- User-tunable study preferences live in core.user_settings, not here.
- Nothing is required at import time; every field has a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "STUDYTRACK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    export_dir: Path

    # ---- Background loops ----
    autosave_seconds: float
    archive_check_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "studytrack") or "studytrack"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/studytrack"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "studytrack.sqlite3")
        export_dir = _env_path(_k("EXPORT_DIR"), data_dir / "exports")

        # 0 means write-through: flush after every command.
        autosave_seconds = max(0.0, _env_float(_k("AUTOSAVE_SECONDS"), 5.0))
        archive_check_seconds = max(1.0, _env_float(_k("ARCHIVE_CHECK_SECONDS"), 3600.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            db_path=db_path,
            export_dir=export_dir,
            autosave_seconds=autosave_seconds,
            archive_check_seconds=archive_check_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
