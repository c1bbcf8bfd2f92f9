# src/studytrack/stats/streaks.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from ..core.timeutil import parse_day_key
from ..sessions import StudySession


@dataclass(frozen=True, slots=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_active_day: date | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastActiveDay": self.last_active_day.isoformat() if self.last_active_day else None,
        }


def active_day_keys(sessions: Iterable[StudySession]) -> list[str]:
    """Distinct dayKeys with at least one completed session, ascending."""
    return sorted({s.day_key for s in sessions if s.completed})


def compute_streaks(day_keys: Iterable[str], today: date) -> StreakState:
    """
    Walk the sorted distinct days and split them into runs of consecutive dates.

    current_streak is the run ending today, or ending yesterday when today has no
    session yet (one day of grace). longest_streak is the longest run overall.
    """
    days = sorted({parse_day_key(k) for k in day_keys})
    if not days:
        return StreakState()

    longest = 0
    run = 0
    prev: date | None = None
    # Length of the run up to and including each day.
    run_length_at: dict[date, int] = {}

    for d in days:
        run = run + 1 if prev is not None and d - prev == timedelta(days=1) else 1
        run_length_at[d] = run
        longest = max(longest, run)
        prev = d

    yesterday = today - timedelta(days=1)
    if today in run_length_at:
        current = run_length_at[today]
    elif yesterday in run_length_at:
        current = run_length_at[yesterday]
    else:
        current = 0

    past_days = [d for d in days if d <= today]
    return StreakState(
        current_streak=current,
        longest_streak=longest,
        last_active_day=past_days[-1] if past_days else None,
    )
