# src/studytrack/core/engine.py

from __future__ import annotations

"""
StudyEngine: the single owner of canonical and derived state.

Canonical state (persisted):
- tasks (TaskStore), sessions (SessionLog), user settings (SettingsStore)
- the achievement unlock set
- device-local bookkeeping: last backup time, recent archive runs

Derived state (never persisted, rebuilt after every mutation and on load):
- Stats -> StreakState -> AchievementState progress, in that order

Every public method runs under one re-entrant lock, so a command, an archive
run or an import is never observed half-applied. Commands validate first and
mutate second; a raised StudyTrackError leaves everything untouched.

Durability is decoupled from commands: mutations mark the engine dirty and
flush() writes the canonical document through the StateRepo port. Write
failures are logged and kept in `last_persistence_error`; in-memory state is
not rolled back for them.
"""

import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..achievements.engine import AchievementState, evaluate_achievements
from ..achievements.rules import DEFAULT_RULES, AchievementRule
from ..archive.policy import ArchiveResult, run_archive_policy, tasks_archiving_soon
from ..backup import snapshot
from ..errors import PersistenceError, ValidationError
from ..sessions import SessionLog, StudySession, validate_duration
from ..stats.aggregator import Stats, compute_stats
from ..stats.streaks import StreakState, active_day_keys, compute_streaks
from ..tasks.task_filters import TaskFilter, filter_tasks
from ..tasks.task_models import FALLBACK_SUBJECT, Priority, Task, canonical_subject
from ..tasks.task_store import TaskStore
from .ports import Clock, StateRepo
from .timeutil import ensure_aware, from_iso
from .user_settings import SettingsStore, UserSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ImportSummary:
    tasks: int
    sessions: int
    newly_unlocked: tuple[str, ...] = ()
    # Reference time the exporting device used for its derived stats.
    exported_at: datetime | None = None


def _new_session_id() -> str:
    return uuid.uuid4().hex


class StudyEngine:
    def __init__(
        self,
        *,
        clock: Clock,
        repo: StateRepo | None = None,
        rules: Iterable[AchievementRule] = DEFAULT_RULES,
        write_through: bool = True,
        task_id_factory: Callable[[], str] | None = None,
        session_id_factory: Callable[[], str] = _new_session_id,
    ) -> None:
        self._lock = threading.RLock()
        self._clock = clock
        self._repo = repo
        self._rules = tuple(rules)
        self._write_through = write_through
        self._session_id_factory = session_id_factory

        store_kwargs: dict[str, Any] = {}
        if task_id_factory is not None:
            store_kwargs["id_factory"] = task_id_factory
        self._tasks = TaskStore(clock, **store_kwargs)
        self._sessions = SessionLog()
        self._settings = SettingsStore()
        self._achievements = AchievementState()
        self._last_backup_at: datetime | None = None
        self._archive_log: list[ArchiveResult] = []

        self._dirty = False
        self.last_persistence_error: PersistenceError | None = None
        self.last_unlocked: tuple[str, ...] = ()

        self._stats: Stats
        self._streaks: StreakState
        self._recompute()

    # ---- lifecycle ----

    def load(self) -> bool:
        """Replace in-memory state with the stored document. Returns False for an empty store."""
        if self._repo is None:
            return False
        with self._lock:
            try:
                doc = self._repo.load()
            except Exception as e:
                logger.exception("State load failed")
                raise PersistenceError(f"failed to load state: {e}") from e
            if doc is None:
                logger.info("No stored state; starting fresh")
                return False

            state = snapshot.parse_document(doc)
            self._apply_canonical(state, keep_local=False)
            self._recompute()
            # A load can unlock achievements under new rules; persist those.
            self._dirty = bool(self.last_unlocked)
            logger.info(
                "State loaded: tasks=%d sessions=%d unlocked=%d",
                self._tasks.count_tasks(),
                len(self._sessions),
                len(self._achievements.unlocked),
            )
            return True

    @property
    def dirty(self) -> bool:
        return self._dirty

    def flush(self, *, raise_errors: bool = False) -> bool:
        """Write canonical state if it changed. Returns True when nothing is left unsaved."""
        with self._lock:
            if self._repo is None or not self._dirty:
                return True
            doc = snapshot.build_document(self._canonical(), now=self._clock.now(), portable=False)
            try:
                self._repo.save(doc)
            except Exception as e:
                logger.exception("State save failed")
                self.last_persistence_error = PersistenceError(f"failed to save state: {e}")
                if raise_errors:
                    raise self.last_persistence_error from e
                return False
            self._dirty = False
            self.last_persistence_error = None
            logger.debug("State flushed")
            return True

    # ---- queries ----

    def now(self) -> datetime:
        return self._clock.now()

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return self._tasks.get(task_id)

    def tasks(self, flt: TaskFilter | str | None = None) -> list[Task]:
        """Current non-deleted tasks; with a filter, the filtered list view."""
        with self._lock:
            items = self._tasks.list_tasks()
            if flt is None:
                return items
            return filter_tasks(items, flt, self._clock.now())

    def sessions(self) -> list[StudySession]:
        with self._lock:
            return self._sessions.list_sessions()

    def stats(self) -> Stats:
        with self._lock:
            return self._stats

    def streaks(self) -> StreakState:
        with self._lock:
            return self._streaks

    def achievements(self) -> AchievementState:
        with self._lock:
            return self._achievements

    def achievement_rules(self) -> tuple[AchievementRule, ...]:
        return self._rules

    def settings(self) -> UserSettings:
        with self._lock:
            return self._settings.current

    def last_backup_at(self) -> datetime | None:
        with self._lock:
            return self._last_backup_at

    def archive_log(self) -> list[ArchiveResult]:
        with self._lock:
            return list(self._archive_log)

    def available_filters(self) -> list[TaskFilter]:
        with self._lock:
            enabled = self._settings.current.enabled_filters.enabled()
        return [TaskFilter.ALL, *(TaskFilter(name) for name in enabled)]

    def archiving_soon(self) -> list[str]:
        with self._lock:
            return tasks_archiving_soon(
                self._tasks.list_tasks(),
                self._clock.now(),
                archive_days=self._settings.current.archive_days,
            )

    def refresh(self) -> None:
        """Rebuild derived state against the current time (e.g. after midnight)."""
        with self._lock:
            self._recompute()
            if self.last_unlocked:
                self._mark_dirty()

    # ---- task commands ----

    def create_task(
        self,
        *,
        title: str,
        description: str = "",
        subject: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
        due_date: datetime | str | None = None,
        progress: int = 0,
    ) -> Task:
        with self._lock:
            task = self._tasks.create_task(
                title=title,
                description=description,
                subject=subject,
                priority=priority,
                due_date=due_date,
                progress=progress,
            )
            self._after_mutation("create_task")
            logger.info("Task created: %s (%s)", task.title, task.id)
            return task

    def update_task(self, task_id: str, patch: dict[str, Any]) -> Task:
        with self._lock:
            task = self._tasks.update_task(task_id, patch)
            self._after_mutation("update_task")
            return task

    def archive_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.archive_task(task_id)
            self._after_mutation("archive_task")
            return task

    def restore_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.restore_task(task_id)
            self._after_mutation("restore_task")
            return task

    def delete_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.delete_task(task_id)
            self._after_mutation("delete_task")
            logger.info("Task deleted: %s (%s)", task.title, task.id)
            return task

    # ---- settings ----

    def update_settings(self, patch: dict[str, Any]) -> UserSettings:
        with self._lock:
            fresh = self._settings.preview(patch)
            self._settings.replace(fresh)
            self._after_mutation("update_settings")
            logger.info("Settings updated: %s", ", ".join(sorted(patch)))
            return fresh

    # ---- sessions ----

    def log_session(
        self,
        *,
        duration_minutes: int,
        task_id: str | None = None,
        subject: str | None = None,
        start_time: datetime | str | None = None,
        completed: bool = True,
    ) -> StudySession:
        with self._lock:
            minutes = validate_duration(duration_minutes)
            task = self._tasks.get(task_id) if task_id else None
            if start_time is None:
                started = self._clock.now()
            elif isinstance(start_time, datetime):
                started = ensure_aware(start_time)
            else:
                started = from_iso(start_time, field="start_time")
                if started is None:
                    raise ValidationError("start_time is required")
            if not isinstance(completed, bool):
                raise ValidationError("completed must be a boolean")

            clean_subject = canonical_subject(subject or (task.subject if task else FALLBACK_SUBJECT))
            session = StudySession(
                id=self._session_id_factory(),
                task_id=task.id if task else None,
                subject=clean_subject,
                start_time=started,
                duration_minutes=minutes,
                completed=completed,
            )
            self._sessions.append(session)
            if task is not None:
                self._tasks.add_study_minutes(task.id, minutes)
            self._after_mutation("log_session")
            return session

    # ---- archive policy ----

    def archive_old_tasks_now(self) -> ArchiveResult:
        """Manual archive run; ignores the auto_archive toggle."""
        with self._lock:
            return self._run_archive(manual=True)

    def run_scheduled_archive(self) -> ArchiveResult | None:
        with self._lock:
            if not self._settings.current.auto_archive:
                # Still roll derived state over to the new day.
                self.refresh()
                return None
            return self._run_archive(manual=False)

    def _run_archive(self, *, manual: bool) -> ArchiveResult:
        s = self._settings.current
        kept, result = run_archive_policy(
            self._tasks.list_tasks(),
            self._clock.now(),
            archive_days=s.archive_days,
            retention_weeks=s.task_retention_weeks,
            archive_past_due=s.archive_past_due,
            manual=manual,
        )
        if result.changed:
            self._tasks.replace_all(kept)
        if result.changed or manual:
            self._archive_log = [*self._archive_log, result][-snapshot.ARCHIVE_LOG_LIMIT :]
            self._after_mutation("archive")
        else:
            self._recompute()
        logger.info(
            "Archive run (%s): archived=%d deleted=%d",
            "manual" if manual else "scheduled",
            len(result.archived_ids),
            len(result.deleted_ids),
        )
        return result

    # ---- backup ----

    def export_data(self, path: str | Path | None = None) -> dict[str, Any]:
        """Build a portable snapshot; with a path, also write it to disk atomically."""
        with self._lock:
            now = self._clock.now()
            doc = snapshot.build_document(self._canonical(), now=now, portable=True)
            if path is not None:
                snapshot.write_snapshot_file(path, doc)
            self._last_backup_at = now
            self._mark_dirty()
            logger.info("Export done: tasks=%d sessions=%d", len(doc["tasks"]), len(doc["sessions"]))
            return doc

    def import_data(self, source: dict[str, Any] | str | Path) -> ImportSummary:
        """
        Replace canonical state with a snapshot (dict, JSON text, or file path).

        The document is fully parsed and validated before anything is swapped in;
        on any error the previous state is retained.
        """
        if isinstance(source, dict):
            doc = source
        elif isinstance(source, str) and source.lstrip().startswith("{"):
            doc = snapshot.loads(source)
        else:
            doc = snapshot.read_snapshot_file(source)

        with self._lock:
            state = snapshot.parse_document(doc)
            exported_at = snapshot.seed_reference_time(doc)
            self._apply_canonical(state, keep_local=True)
            self._after_mutation("import_data")
            summary = ImportSummary(
                tasks=len(state.tasks),
                sessions=len(state.sessions),
                newly_unlocked=self.last_unlocked,
                exported_at=exported_at,
            )
            logger.info("Import done: tasks=%d sessions=%d", summary.tasks, summary.sessions)
            return summary

    # ---- internals ----

    def _canonical(self) -> snapshot.CanonicalState:
        return snapshot.CanonicalState(
            tasks=tuple(self._tasks.list_tasks()),
            sessions=tuple(self._sessions.list_sessions()),
            settings=self._settings.current,
            achievements=self._achievements,
            last_backup_at=self._last_backup_at,
            archive_log=tuple(self._archive_log),
        )

    def _apply_canonical(self, state: snapshot.CanonicalState, *, keep_local: bool) -> None:
        self._tasks.replace_all(state.tasks)
        self._sessions.replace_all(state.sessions)
        self._settings.replace(state.settings)
        self._achievements = state.achievements
        if not keep_local:
            self._last_backup_at = state.last_backup_at
            self._archive_log = list(state.archive_log)

    def _recompute(self) -> None:
        now = self._clock.now()
        tasks = self._tasks.list_tasks()
        sessions = self._sessions.list_sessions()

        stats = compute_stats(tasks, sessions, now, self._settings.current)
        streaks = compute_streaks(active_day_keys(sessions), now.date())
        achievements, newly = evaluate_achievements(self._rules, stats, streaks, self._achievements, now)

        self._stats = stats
        self._streaks = streaks
        self._achievements = achievements
        self.last_unlocked = tuple(newly)

    def _mark_dirty(self) -> None:
        self._dirty = True
        if self._write_through:
            self.flush()

    def _after_mutation(self, command: str) -> None:
        self._recompute()
        self._mark_dirty()
        logger.debug("Command applied: %s", command)

