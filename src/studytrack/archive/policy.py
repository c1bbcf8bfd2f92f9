# src/studytrack/archive/policy.py

"""
Time-based retention policy.

One run:
1. archive every completed, non-archived task completed more than
   `archive_days` ago (and, with `archive_past_due`, completed tasks whose due
   date has passed once they have been done for a full day);
2. permanently delete every archived task archived more than
   `retention_weeks` * 7 days ago.

Tasks archived in step 1 carry archived_at == now, so step 2 of the same run
and of any later run with the same "now" leaves them alone: runs are idempotent.
Manual and scheduled invocations share run_archive_policy(); only "now" and
the thresholds differ.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from ..core.numbers import strict_bool
from ..core.timeutil import from_iso, to_iso
from ..errors import ValidationError
from ..tasks.task_models import Task

PAST_DUE_GRACE = timedelta(days=1)


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    ran_at: datetime
    archived_ids: tuple[str, ...] = ()
    deleted_ids: tuple[str, ...] = ()
    manual: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.archived_ids or self.deleted_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ranAt": to_iso(self.ran_at),
            "archived": list(self.archived_ids),
            "deleted": list(self.deleted_ids),
            "manual": self.manual,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArchiveResult:
        if not isinstance(data, dict):
            raise ValidationError("archive log entry must be an object")
        ran_at = from_iso(data.get("ranAt"), field="ranAt")
        if ran_at is None:
            raise ValidationError("archive log entry: ranAt is required")
        return cls(
            ran_at=ran_at,
            archived_ids=tuple(str(x) for x in data.get("archived") or ()),
            deleted_ids=tuple(str(x) for x in data.get("deleted") or ()),
            manual=strict_bool(data.get("manual"), field="archive log entry: manual", default=False),
        )


def _should_archive(task: Task, now: datetime, archive_cutoff: datetime, archive_past_due: bool) -> bool:
    if not task.completed or task.archived or task.completed_at is None:
        return False
    if task.completed_at < archive_cutoff:
        return True
    if archive_past_due and task.due_date is not None and task.due_date <= now:
        return task.completed_at < now - PAST_DUE_GRACE
    return False


def run_archive_policy(
    tasks: Iterable[Task],
    now: datetime,
    *,
    archive_days: int,
    retention_weeks: int,
    archive_past_due: bool = False,
    manual: bool = False,
) -> tuple[list[Task], ArchiveResult]:
    """Return the task set after one policy run and what changed."""
    if archive_days < 1 or retention_weeks < 1:
        raise ValidationError("archive_days and retention_weeks must be >= 1")

    archive_cutoff = now - timedelta(days=archive_days)
    retention_cutoff = now - timedelta(weeks=retention_weeks)

    archived_ids: list[str] = []
    staged: list[Task] = []
    for task in tasks:
        if _should_archive(task, now, archive_cutoff, archive_past_due):
            task = task.with_change(now, "auto_archived", archived=True, archived_at=now)
            archived_ids.append(task.id)
        staged.append(task)

    kept: list[Task] = []
    deleted_ids: list[str] = []
    for task in staged:
        if task.archived and task.archived_at is not None and task.archived_at < retention_cutoff:
            deleted_ids.append(task.id)
            continue
        kept.append(task)

    result = ArchiveResult(
        ran_at=now,
        archived_ids=tuple(archived_ids),
        deleted_ids=tuple(deleted_ids),
        manual=manual,
    )
    return kept, result


def tasks_archiving_soon(
    tasks: Iterable[Task],
    now: datetime,
    *,
    archive_days: int,
    within: timedelta = timedelta(hours=24),
) -> list[str]:
    """Ids of tasks the next runs will archive within `within` from now."""
    out: list[str] = []
    for task in tasks:
        if not task.completed or task.archived or task.completed_at is None:
            continue
        due = task.completed_at + timedelta(days=archive_days)
        if now < due <= now + within:
            out.append(task.id)
    return out
