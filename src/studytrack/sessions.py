# src/studytrack/sessions.py

"""
Study session log.

Sessions are recorded by the pomodoro timer (an external collaborator) and are
immutable once logged. The engine only appends to and reads from the log.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .core.numbers import strict_bool, whole_number
from .core.timeutil import day_key, from_iso, to_iso
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StudySession:
    id: str
    task_id: str | None
    subject: str
    start_time: datetime
    duration_minutes: int
    completed: bool = True

    @property
    def day_key(self) -> str:
        return day_key(self.start_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "subject": self.subject,
            "startTime": to_iso(self.start_time),
            "durationMinutes": self.duration_minutes,
            "dayKey": self.day_key,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudySession:
        if not isinstance(data, dict):
            raise ValidationError("session must be an object")
        session_id = str(data.get("id") or "").strip()
        if not session_id:
            raise ValidationError("session id is required")
        start_time = from_iso(data.get("startTime"), field="startTime")
        if start_time is None:
            raise ValidationError(f"session {session_id}: startTime is required")
        task_id = data.get("taskId")
        # dayKey in the document is informational; it is always re-derived from startTime.
        return cls(
            id=session_id,
            task_id=str(task_id) if task_id else None,
            subject=str(data.get("subject") or "Other"),
            start_time=start_time,
            duration_minutes=validate_duration(data.get("durationMinutes")),
            completed=strict_bool(data.get("completed"), field=f"session {session_id}: completed", default=True),
        )


def validate_duration(raw: object) -> int:
    if isinstance(raw, str):
        raise ValidationError(f"duration_minutes must be a number (got {raw!r})")
    minutes = whole_number(raw, field="duration_minutes")
    if minutes <= 0:
        raise ValidationError("duration_minutes must be > 0")
    return minutes


class SessionLog:
    """Append-only, id-unique list of sessions kept in start-time order."""

    def __init__(self, sessions: Iterable[StudySession] = ()) -> None:
        self._sessions: list[StudySession] = []
        self.replace_all(sessions)

    def append(self, session: StudySession) -> None:
        if any(s.id == session.id for s in self._sessions):
            raise ValidationError(f"duplicate session id: {session.id}")
        self._sessions.append(session)
        self._sessions.sort(key=lambda s: (s.start_time, s.id))
        logger.debug(
            "Session logged id=%s minutes=%s day=%s", session.id, session.duration_minutes, session.day_key
        )

    def list_sessions(self) -> list[StudySession]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def replace_all(self, sessions: Iterable[StudySession]) -> None:
        fresh = sorted(sessions, key=lambda s: (s.start_time, s.id))
        ids = [s.id for s in fresh]
        if len(ids) != len(set(ids)):
            raise ValidationError("duplicate session ids")
        self._sessions = fresh
