# src/studytrack/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.numbers import strict_bool, whole_number
from ..core.timeutil import from_iso, to_iso
from ..errors import ValidationError

DEFAULT_SUBJECTS = ("Math", "Science", "History", "English", "Computer Science", "Foreign Language", "Other")
FALLBACK_SUBJECT = "Other"
HISTORY_LIMIT = 10

_SUBJECT_LOOKUP = {name.lower(): name for name in DEFAULT_SUBJECTS}


def canonical_subject(raw: object) -> str:
    """Map a built-in subject to its canonical spelling ("math" -> "Math"); free text passes through."""
    subject = str(raw or "").strip()
    if not subject:
        return FALLBACK_SUBJECT
    return _SUBJECT_LOOKUP.get(subject.lower(), subject)


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, raw: object) -> Priority:
        if isinstance(raw, Priority):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(f"priority must be one of low, medium, high (got {raw!r})") from None


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One line of a task's change history ("progress,completed", "study_session", ...)."""

    timestamp: datetime
    changes: str
    progress: int | None = None
    completed: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"timestamp": to_iso(self.timestamp), "changes": self.changes}
        if self.progress is not None:
            data["progress"] = self.progress
        if self.completed is not None:
            data["completed"] = self.completed
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        if not isinstance(data, dict):
            raise ValidationError("history entry must be an object")
        timestamp = from_iso(data.get("timestamp"), field="history.timestamp")
        if timestamp is None:
            raise ValidationError("history entry requires a timestamp")
        progress = data.get("progress")
        completed = data.get("completed")
        return cls(
            timestamp=timestamp,
            changes=str(data.get("changes") or ""),
            progress=None if progress is None else coerce_progress(progress),
            completed=None if completed is None else strict_bool(completed, field="history.completed", default=False),
        )


@dataclass(frozen=True, slots=True)
class Task:
    """
    Canonical task record.

    Lifecycle invariants (enforced by TaskStore):
    - archived implies completed
    - completed_at is set iff completed
    - archived_at is set iff archived
    - progress == 100 implies completed
    """

    id: str
    title: str
    description: str
    subject: str
    priority: Priority
    due_date: datetime | None
    progress: int
    completed: bool
    archived: bool
    created_at: datetime
    completed_at: datetime | None = None
    archived_at: datetime | None = None
    study_minutes: int = 0
    last_modified: datetime | None = None
    history: tuple[HistoryEntry, ...] = ()

    def with_change(self, now: datetime, changes: str, **fields: Any) -> Task:
        """Apply `fields`, stamp last_modified and append a history entry (newest HISTORY_LIMIT kept)."""
        updated = replace(self, **fields)
        entry = HistoryEntry(
            timestamp=now,
            changes=changes,
            progress=updated.progress,
            completed=updated.completed,
        )
        return replace(updated, last_modified=now, history=(*self.history, entry)[-HISTORY_LIMIT:])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "subject": self.subject,
            "priority": self.priority.value,
            "dueDate": to_iso(self.due_date),
            "progress": self.progress,
            "completed": self.completed,
            "archived": self.archived,
            "createdAt": to_iso(self.created_at),
            "completedAt": to_iso(self.completed_at),
            "archivedAt": to_iso(self.archived_at),
            "studyMinutes": self.study_minutes,
            "lastModified": to_iso(self.last_modified),
            "history": [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        if not isinstance(data, dict):
            raise ValidationError("task must be an object")
        task_id = str(data.get("id") or "").strip()
        if not task_id:
            raise ValidationError("task id is required")
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValidationError(f"task {task_id}: title is required")

        created_at = from_iso(data.get("createdAt"), field="createdAt")
        if created_at is None:
            raise ValidationError(f"task {task_id}: createdAt is required")

        completed_at = from_iso(data.get("completedAt"), field="completedAt")
        archived = strict_bool(data.get("archived"), field=f"task {task_id}: archived", default=False)
        archived_at = from_iso(data.get("archivedAt"), field="archivedAt")
        if archived and archived_at is None:
            # Older records predate archivedAt; retention then counts from completion.
            archived_at = completed_at

        task = cls(
            id=task_id,
            title=title,
            description=str(data.get("description") or ""),
            subject=str(data.get("subject") or FALLBACK_SUBJECT),
            priority=Priority.parse(data.get("priority") or Priority.MEDIUM),
            due_date=from_iso(data.get("dueDate"), field="dueDate"),
            progress=coerce_progress(data.get("progress", 0)),
            completed=strict_bool(data.get("completed"), field=f"task {task_id}: completed", default=False),
            archived=archived,
            created_at=created_at,
            completed_at=completed_at,
            archived_at=archived_at,
            study_minutes=coerce_minutes(data.get("studyMinutes") or 0),
            last_modified=from_iso(data.get("lastModified"), field="lastModified"),
            history=_history_from(data.get("history"), task_id),
        )
        check_invariants(task)
        return task


def _history_from(raw: object, task_id: str) -> tuple[HistoryEntry, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValidationError(f"task {task_id}: history must be a list")
    return tuple(HistoryEntry.from_dict(item) for item in raw)[-HISTORY_LIMIT:]


def coerce_progress(raw: object) -> int:
    value = whole_number(raw, field="progress")
    if not 0 <= value <= 100:
        raise ValidationError(f"progress must be within 0..100 (got {value})")
    return value


def coerce_minutes(raw: object) -> int:
    return max(0, whole_number(raw, field="studyMinutes"))


def check_invariants(task: Task) -> None:
    if task.archived and not task.completed:
        raise ValidationError(f"task {task.id}: archived task must be completed")
    if task.completed != (task.completed_at is not None):
        raise ValidationError(f"task {task.id}: completedAt must be set iff completed")
    if task.archived != (task.archived_at is not None):
        raise ValidationError(f"task {task.id}: archivedAt must be set iff archived")
    if task.progress == 100 and not task.completed:
        raise ValidationError(f"task {task.id}: progress 100 requires completed")
