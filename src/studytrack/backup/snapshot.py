# src/studytrack/backup/snapshot.py

"""
Snapshot documents.

The same versioned document describes both a portable backup and the durable
on-device state. It only carries canonical state (tasks, sessions, settings,
achievement unlocks) plus a schema tag; Stats and StreakState are never
written and are always re-derived after a load or an import.

parse_document() validates the whole document before anything is returned,
so the caller can replace its state in one step or not at all.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..achievements.engine import AchievementState
from ..archive.policy import ArchiveResult
from ..core.timeutil import from_iso, to_iso
from ..core.user_settings import UserSettings
from ..errors import PersistenceError, UnsupportedVersionError, ValidationError
from ..sessions import StudySession
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "studytrack.snapshot"
SCHEMA_VERSION = 1
SUPPORTED_VERSIONS = (1, SCHEMA_VERSION)
ARCHIVE_LOG_LIMIT = 10


@dataclass(frozen=True, slots=True)
class CanonicalState:
    tasks: tuple[Task, ...] = ()
    sessions: tuple[StudySession, ...] = ()
    settings: UserSettings = field(default_factory=UserSettings)
    achievements: AchievementState = field(default_factory=AchievementState)
    # Device-local bookkeeping; persisted but not exported.
    last_backup_at: datetime | None = None
    archive_log: tuple[ArchiveResult, ...] = ()


def build_document(
    state: CanonicalState,
    *,
    now: datetime,
    portable: bool,
) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "format": SNAPSHOT_FORMAT,
        "schemaVersion": SCHEMA_VERSION,
        "tasks": [t.to_dict() for t in state.tasks],
        "sessions": [s.to_dict() for s in state.sessions],
        "settings": state.settings.to_dict(),
        "achievementState": state.achievements.to_dict(),
    }
    if portable:
        doc["exportedAt"] = to_iso(now)
        # Enough to reproduce export-time Stats from this document alone.
        doc["recomputeSeed"] = {"referenceTime": to_iso(now), "weekStartsOn": "sunday"}
    else:
        doc["savedAt"] = to_iso(now)
        doc["lastBackupAt"] = to_iso(state.last_backup_at)
        doc["archiveLog"] = [r.to_dict() for r in state.archive_log[-ARCHIVE_LOG_LIMIT:]]
    return doc


def check_version(doc: Any) -> int:
    if not isinstance(doc, dict):
        raise ValidationError("snapshot must be a JSON object")
    fmt = doc.get("format", SNAPSHOT_FORMAT)
    if fmt != SNAPSHOT_FORMAT:
        raise ValidationError(f"not a {SNAPSHOT_FORMAT} document (format={fmt!r})")
    version = doc.get("schemaVersion")
    lo, hi = SUPPORTED_VERSIONS
    if isinstance(version, bool) or not isinstance(version, int) or not lo <= version <= hi:
        raise UnsupportedVersionError(version, SUPPORTED_VERSIONS)
    return version


def _list_of(doc: dict[str, Any], key: str) -> list[Any]:
    raw = doc.get(key) or []
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list")
    return raw


def parse_document(doc: Any) -> CanonicalState:
    check_version(doc)

    tasks = tuple(Task.from_dict(item) for item in _list_of(doc, "tasks"))
    task_ids = [t.id for t in tasks]
    if len(task_ids) != len(set(task_ids)):
        raise ValidationError("duplicate task ids in snapshot")

    sessions = tuple(StudySession.from_dict(item) for item in _list_of(doc, "sessions"))
    session_ids = [s.id for s in sessions]
    if len(session_ids) != len(set(session_ids)):
        raise ValidationError("duplicate session ids in snapshot")

    settings_raw = doc.get("settings")
    settings = UserSettings.from_dict(settings_raw) if settings_raw is not None else UserSettings()

    archive_log = tuple(ArchiveResult.from_dict(item) for item in _list_of(doc, "archiveLog"))

    return CanonicalState(
        tasks=tasks,
        sessions=sessions,
        settings=settings,
        achievements=AchievementState.from_dict(doc.get("achievementState")),
        last_backup_at=from_iso(doc.get("lastBackupAt"), field="lastBackupAt"),
        archive_log=archive_log[-ARCHIVE_LOG_LIMIT:],
    )


def seed_reference_time(doc: dict[str, Any]) -> datetime | None:
    seed = doc.get("recomputeSeed") or {}
    if not isinstance(seed, dict):
        return None
    return from_iso(seed.get("referenceTime"), field="recomputeSeed.referenceTime")


def dumps(doc: dict[str, Any]) -> str:
    return json.dumps(doc, ensure_ascii=False, indent=2)


def loads(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"snapshot is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("snapshot must be a JSON object")
    return data


def write_snapshot_file(path: str | Path, doc: dict[str, Any]) -> Path:
    """Write atomically (tmp file + os.replace) and keep the file private."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(dumps(doc), "utf-8")
        os.replace(tmp, path)
    except OSError as e:
        raise PersistenceError(f"failed to write snapshot {path}: {e}") from e
    with contextlib.suppress(OSError):
        os.chmod(path, 0o600)
    logger.info("Snapshot written: %s (tasks=%d)", path, len(doc.get("tasks") or []))
    return path


def read_snapshot_file(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    try:
        text = path.read_text("utf-8")
    except OSError as e:
        raise PersistenceError(f"failed to read snapshot {path}: {e}") from e
    return loads(text)
