# src/studytrack/stats/aggregator.py

"""
Stats aggregation.

compute_stats() rebuilds every metric from scratch on each call instead of
patching counters, so repeated recomputation cannot drift. Its only inputs are
the task set, the session log, the user's goal targets and an injected "now";
identical inputs give equal Stats.

Time bucketing uses each session's own recorded offset: the hour histogram
reads start_time.hour and day buckets read the session's dayKey.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..core.timeutil import week_start, weekday_index
from ..core.user_settings import UserSettings
from ..sessions import StudySession
from ..tasks.task_models import Task

RECENT_SESSIONS_LIMIT = 30


def _percent(value: int, goal: int) -> int:
    if goal <= 0:
        return 100
    return min(100, round(value * 100 / goal))


@dataclass(frozen=True, slots=True)
class GoalProgress:
    week_start: str
    weekly_study_time: int = 0
    weekly_tasks_completed: int = 0
    daily_study_time: int = 0
    weekly_study_goal: int = 0
    weekly_task_goal: int = 0
    daily_goal: int = 0

    @property
    def weekly_study_percent(self) -> int:
        return _percent(self.weekly_study_time, self.weekly_study_goal)

    @property
    def weekly_tasks_percent(self) -> int:
        return _percent(self.weekly_tasks_completed, self.weekly_task_goal)

    @property
    def daily_percent(self) -> int:
        return _percent(self.daily_study_time, self.daily_goal)


@dataclass(frozen=True, slots=True)
class Stats:
    total_study_time: int
    tasks_completed: int
    tasks_created: int
    sessions_completed: int
    subject_distribution: dict[str, int]
    productivity_by_hour: dict[int, int]
    weekly_study_time: tuple[int, ...]  # Sun..Sat
    goal_progress: GoalProgress
    daily_average: float = 0.0
    pomodoros_completed: int = 0
    study_days: dict[str, int] = field(default_factory=dict)
    daily_session_count: dict[str, int] = field(default_factory=dict)
    recent_session_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Read-only view for UI collaborators. Never persisted."""
        gp = self.goal_progress
        return {
            "totalStudyTime": self.total_study_time,
            "tasksCompleted": self.tasks_completed,
            "tasksCreated": self.tasks_created,
            "sessionsCompleted": self.sessions_completed,
            "subjectDistribution": dict(self.subject_distribution),
            "productivityByHour": {str(h): m for h, m in self.productivity_by_hour.items()},
            "weeklyStudyTime": list(self.weekly_study_time),
            "goalProgress": {
                "weekStart": gp.week_start,
                "weeklyStudyTime": gp.weekly_study_time,
                "weeklyTasksCompleted": gp.weekly_tasks_completed,
                "dailyStudyTime": gp.daily_study_time,
            },
            "dailyAverage": self.daily_average,
            "pomodorosCompleted": self.pomodoros_completed,
        }


def compute_stats(
    tasks: Iterable[Task],
    sessions: Iterable[StudySession],
    now: datetime,
    settings: UserSettings,
) -> Stats:
    tasks = list(tasks)
    sessions = list(sessions)

    today = now.date()
    today_key = today.isoformat()
    week_first = week_start(today)
    week_end = week_first + timedelta(days=7)

    subjects: Counter[str] = Counter()
    hours = {h: 0 for h in range(24)}
    weekly = [0] * 7
    study_days: Counter[str] = Counter()
    day_counts: Counter[str] = Counter()
    total = 0
    completed_sessions = 0

    for s in sessions:
        minutes = s.duration_minutes
        total += minutes
        subjects[s.subject] += minutes
        hours[s.start_time.hour] += minutes
        study_days[s.day_key] += minutes
        day_counts[s.day_key] += 1
        if s.completed:
            completed_sessions += 1

        day = s.start_time.date()
        if week_first <= day < week_end:
            weekly[weekday_index(day)] += minutes

    # Archived tasks still count toward lifetime totals.
    tasks_completed = 0
    weekly_tasks = 0
    for t in tasks:
        if not t.completed:
            continue
        tasks_completed += 1
        if t.completed_at is not None and week_first <= t.completed_at.date() <= today:
            weekly_tasks += 1

    active_days = len(study_days)
    daily_average = round(total / active_days, 2) if active_days else 0.0

    recent = sorted(sessions, key=lambda s: (s.start_time, s.id), reverse=True)[:RECENT_SESSIONS_LIMIT]

    goal = GoalProgress(
        week_start=week_first.isoformat(),
        weekly_study_time=sum(weekly),
        weekly_tasks_completed=weekly_tasks,
        daily_study_time=study_days.get(today_key, 0),
        weekly_study_goal=settings.weekly_study_goal_minutes,
        weekly_task_goal=settings.weekly_task_goal,
        daily_goal=settings.daily_goal_minutes,
    )

    return Stats(
        total_study_time=total,
        tasks_completed=tasks_completed,
        tasks_created=len(tasks),
        sessions_completed=completed_sessions,
        subject_distribution=dict(sorted(subjects.items())),
        productivity_by_hour=hours,
        weekly_study_time=tuple(weekly),
        goal_progress=goal,
        daily_average=daily_average,
        pomodoros_completed=len(sessions),
        study_days=dict(sorted(study_days.items())),
        daily_session_count=dict(sorted(day_counts.items())),
        recent_session_ids=tuple(s.id for s in recent),
    )
