# src/studytrack/tasks/task_store.py

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from ..core.ports import Clock
from ..core.timeutil import ensure_aware, from_iso
from ..errors import InvalidStateError, NotFoundError, ValidationError
from .task_models import Priority, Task, canonical_subject, check_invariants, coerce_minutes, coerce_progress

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "subject",
        "priority",
        "due_date",
        "progress",
        "completed",
        "completed_at",
        "study_minutes",
    }
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _clean_title(raw: object) -> str:
    title = str(raw or "").strip()
    if not title:
        raise ValidationError("title is required")
    return title


def _clean_dt(raw: object, field: str) -> datetime | None:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return ensure_aware(raw)
    return from_iso(raw, field=field)


class TaskStore:
    """
    In-memory canonical mapping task id -> Task.

    The store is the only writer of Task records. Every mutation validates the
    complete resulting record first and only then swaps it into the mapping, so
    a raised error never leaves a half-applied change behind.

    Durable persistence is not done here: the engine serializes the store into
    its state document (see storage.state_store).
    """

    def __init__(
        self,
        clock: Clock,
        *,
        id_factory: Callable[[], str] = _new_id,
        tasks: Iterable[Task] = (),
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._tasks: dict[str, Task] = {}
        self.replace_all(tasks)

    # ---- queries ----

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def list_tasks(self, *, include_archived: bool = True) -> list[Task]:
        """Tasks in creation order (ties broken by id)."""
        items = sorted(self._tasks.values(), key=lambda t: (t.created_at, t.id))
        if include_archived:
            return items
        return [t for t in items if not t.archived]

    def count_tasks(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # ---- commands ----

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
        now = self._clock.now()
        clean_progress = coerce_progress(progress)
        completed = clean_progress == 100

        task_id = self._id_factory()
        if task_id in self._tasks:
            raise InvalidStateError(f"id factory produced a duplicate id: {task_id}")

        task = Task(
            id=task_id,
            title=_clean_title(title),
            description=str(description or ""),
            subject=canonical_subject(subject),
            priority=Priority.parse(priority),
            due_date=_clean_dt(due_date, "due_date"),
            progress=clean_progress,
            completed=completed,
            archived=False,
            created_at=now,
            completed_at=now if completed else None,
            last_modified=now,
        )
        check_invariants(task)
        self._tasks[task.id] = task
        logger.debug("Task created id=%s subject=%s priority=%s", task.id, task.subject, task.priority)
        return task

    def update_task(self, task_id: str, patch: dict[str, Any]) -> Task:
        current = self.get(task_id)
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update field(s): {', '.join(sorted(unknown))}")

        now = self._clock.now()
        changes: dict[str, Any] = {}

        if "title" in patch:
            changes["title"] = _clean_title(patch["title"])
        if "description" in patch:
            changes["description"] = str(patch["description"] or "")
        if "subject" in patch:
            changes["subject"] = canonical_subject(patch["subject"])
        if "priority" in patch:
            changes["priority"] = Priority.parse(patch["priority"])
        if "due_date" in patch:
            changes["due_date"] = _clean_dt(patch["due_date"], "due_date")
        if "study_minutes" in patch:
            changes["study_minutes"] = coerce_minutes(patch["study_minutes"])
        if "progress" in patch:
            changes["progress"] = coerce_progress(patch["progress"])

        explicit_completed_at = _clean_dt(patch.get("completed_at"), "completed_at")
        completed = current.completed
        completed_at = current.completed_at

        if "completed" in patch:
            if not isinstance(patch["completed"], bool):
                raise ValidationError("completed must be a boolean")
            completed = patch["completed"]
            if completed:
                completed_at = explicit_completed_at or current.completed_at or now
            else:
                completed_at = None
                changes["archived"] = False
                changes["archived_at"] = None
        elif explicit_completed_at is not None:
            completed_at = explicit_completed_at

        # Reaching 100% completes the task. The reverse is not implied:
        # completing a task leaves its progress where it was.
        if changes.get("progress") == 100 and not completed:
            completed = True
            completed_at = explicit_completed_at or now

        if completed_at is not None and not completed:
            raise ValidationError("completed_at requires a completed task")

        progress = changes.get("progress", current.progress)
        if progress == 100 and not completed:
            raise InvalidStateError("a task at 100% progress cannot be reopened; lower its progress as well")

        changes["completed"] = completed
        changes["completed_at"] = completed_at

        updated = current.with_change(now, ",".join(sorted(patch)), **changes)
        check_invariants(updated)
        self._tasks[task_id] = updated
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(patch))
        return updated

    def archive_task(self, task_id: str) -> Task:
        current = self.get(task_id)
        if not current.completed:
            raise InvalidStateError(f"task {task_id} is not completed and cannot be archived")
        if current.archived:
            return current
        now = self._clock.now()
        updated = current.with_change(now, "archived", archived=True, archived_at=now)
        self._tasks[task_id] = updated
        logger.debug("Task archived id=%s", task_id)
        return updated

    def restore_task(self, task_id: str) -> Task:
        current = self.get(task_id)
        if not current.archived:
            return current
        updated = current.with_change(self._clock.now(), "restored", archived=False, archived_at=None)
        self._tasks[task_id] = updated
        logger.debug("Task restored id=%s", task_id)
        return updated

    def delete_task(self, task_id: str) -> Task:
        task = self.get(task_id)
        del self._tasks[task_id]
        logger.debug("Task deleted id=%s", task_id)
        return task

    def add_study_minutes(self, task_id: str, minutes: int) -> Task:
        current = self.get(task_id)
        updated = current.with_change(
            self._clock.now(),
            "study_session",
            study_minutes=current.study_minutes + max(0, int(minutes)),
        )
        self._tasks[task_id] = updated
        return updated

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Swap in a complete task set (import, archive policy). Validates before swapping."""
        fresh: dict[str, Task] = {}
        for task in tasks:
            check_invariants(task)
            if task.id in fresh:
                raise ValidationError(f"duplicate task id: {task.id}")
            fresh[task.id] = task
        self._tasks = fresh
