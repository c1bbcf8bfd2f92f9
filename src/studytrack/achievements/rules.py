# src/studytrack/achievements/rules.py

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from ..stats.aggregator import Stats
from ..stats.streaks import StreakState

MetricSelector = Callable[[Stats, StreakState], int]


class AchievementCategory(StrEnum):
    STREAK = "streak"
    STUDY_TIME = "study_time"
    TASKS = "tasks"
    SESSIONS = "sessions"


@dataclass(frozen=True, slots=True)
class AchievementRule:
    id: str
    title: str
    category: AchievementCategory
    threshold: int
    metric: MetricSelector


def _current_streak(stats: Stats, streaks: StreakState) -> int:
    return streaks.current_streak


def _total_study_time(stats: Stats, streaks: StreakState) -> int:
    return stats.total_study_time


def _tasks_completed(stats: Stats, streaks: StreakState) -> int:
    return stats.tasks_completed


def _sessions_completed(stats: Stats, streaks: StreakState) -> int:
    return stats.sessions_completed


DEFAULT_RULES: tuple[AchievementRule, ...] = (
    AchievementRule("streak_3", "3-Day Streak", AchievementCategory.STREAK, 3, _current_streak),
    AchievementRule("streak_7", "7-Day Streak", AchievementCategory.STREAK, 7, _current_streak),
    AchievementRule("streak_14", "14-Day Streak", AchievementCategory.STREAK, 14, _current_streak),
    AchievementRule("streak_30", "30-Day Streak", AchievementCategory.STREAK, 30, _current_streak),
    AchievementRule("study_time_10h", "10 Hours of Study", AchievementCategory.STUDY_TIME, 600, _total_study_time),
    AchievementRule("study_time_50h", "50 Hours of Study", AchievementCategory.STUDY_TIME, 3000, _total_study_time),
    AchievementRule("tasks_completed_50", "50 Tasks Completed", AchievementCategory.TASKS, 50, _tasks_completed),
    AchievementRule("tasks_completed_100", "100 Tasks Completed", AchievementCategory.TASKS, 100, _tasks_completed),
    AchievementRule(
        "sessions_completed_20", "20 Focus Sessions", AchievementCategory.SESSIONS, 20, _sessions_completed
    ),
    AchievementRule(
        "sessions_completed_50", "50 Focus Sessions", AchievementCategory.SESSIONS, 50, _sessions_completed
    ),
)
