# src/studytrack/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the SQLite store and the system clock into a StudyEngine,
- loads the stored state.
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.clock import SystemClock
from ..core.engine import StudyEngine
from ..storage.state_store import SqliteStateStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.export_dir.mkdir(parents=True, exist_ok=True)


def create_engine(*, settings: Settings | None = None) -> StudyEngine:
    """
    Create and load a StudyEngine from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    engine = StudyEngine(
        clock=SystemClock(),
        repo=SqliteStateStore(settings.db_path),
        write_through=settings.autosave_seconds <= 0,
    )
    engine.load()
    return engine
