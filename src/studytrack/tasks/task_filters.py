# src/studytrack/tasks/task_filters.py

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, time, timedelta
from enum import StrEnum

from ..core.timeutil import week_start
from ..errors import ValidationError
from .task_models import Priority, Task


class TaskFilter(StrEnum):
    ALL = "all"
    TODAY = "today"
    UPCOMING = "upcoming"
    OVERDUE = "overdue"
    ONGOING = "ongoing"
    THIS_WEEK = "this_week"
    PRIORITY = "priority"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, raw: object) -> TaskFilter:
        if isinstance(raw, TaskFilter):
            return raw
        key = str(raw or "all").strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            names = ", ".join(f.value for f in cls)
            raise ValidationError(f"unknown filter {raw!r} (expected one of {names})") from None


# Filters that still list tasks without a due date.
_UNDATED_OK = frozenset(
    {TaskFilter.ALL, TaskFilter.ARCHIVED, TaskFilter.COMPLETED, TaskFilter.ONGOING, TaskFilter.PRIORITY}
)


def _matches(task: Task, flt: TaskFilter, now: datetime) -> bool:
    if task.archived:
        return flt is TaskFilter.ARCHIVED
    if flt is TaskFilter.ARCHIVED:
        return False

    if flt is TaskFilter.ALL:
        return True
    if flt is TaskFilter.COMPLETED:
        return task.completed
    if flt is TaskFilter.ONGOING:
        return not task.completed and 0 < task.progress < 100
    if flt is TaskFilter.PRIORITY:
        return not task.completed and task.priority is Priority.HIGH

    due = task.due_date
    if due is None or task.completed:
        return False
    # Compare calendar days in the caller's offset.
    due_local = due.astimezone(now.tzinfo)
    today = now.date()

    if flt is TaskFilter.TODAY:
        return due_local.date() == today
    if flt is TaskFilter.UPCOMING:
        return due_local > now and due_local.date() != today
    if flt is TaskFilter.OVERDUE:
        return due_local < now and due_local.date() != today
    if flt is TaskFilter.THIS_WEEK:
        week_end = datetime.combine(week_start(today) + timedelta(days=6), time.max, tzinfo=now.tzinfo)
        return now <= due_local <= week_end
    return False


def filter_tasks(tasks: Iterable[Task], flt: TaskFilter | str, now: datetime) -> list[Task]:
    """
    Select tasks for a list view.

    Archived tasks only appear under the "archived" filter. Date-based filters
    (today, upcoming, overdue, this_week) skip completed and undated tasks.
    """
    flt = TaskFilter.parse(flt)
    return [t for t in tasks if _matches(t, flt, now)]


def sort_for_display(tasks: Iterable[Task], now: datetime, *, prioritize_overdue: bool = False) -> list[Task]:
    """Open tasks first, then by due date (undated last); overdue ones lead when asked to."""
    rank = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}

    def key(t: Task) -> tuple:
        overdue = t.due_date is not None and t.due_date < now and not t.completed
        return (
            t.completed,
            not overdue if prioritize_overdue else False,
            t.due_date is None,
            t.due_date or now,
            rank[t.priority],
            t.created_at,
            t.id,
        )

    return sorted(tasks, key=key)
