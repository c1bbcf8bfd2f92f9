# src/studytrack/achievements/engine.py

"""
Achievement evaluation.

Rules are evaluated in lexical id order against finished Stats/StreakState.
The unlocked list is append-only: a metric that later regresses never
re-locks anything, and evaluating twice with the same inputs changes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.numbers import whole_number
from ..core.timeutil import from_iso, to_iso
from ..errors import ValidationError
from ..stats.aggregator import Stats
from ..stats.streaks import StreakState
from .rules import AchievementRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AchievementState:
    progress: dict[str, int] = field(default_factory=dict)
    unlocked: tuple[str, ...] = ()  # in unlock order
    unlocked_at: dict[str, str] = field(default_factory=dict)

    def is_unlocked(self, rule_id: str) -> bool:
        return rule_id in self.unlocked

    def to_dict(self) -> dict[str, Any]:
        return {
            "progress": dict(self.progress),
            "unlocked": list(self.unlocked),
            "unlockedAt": dict(self.unlocked_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AchievementState:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError("achievementState must be an object")
        unlocked_raw = data.get("unlocked") or []
        if not isinstance(unlocked_raw, list) or not all(isinstance(x, str) for x in unlocked_raw):
            raise ValidationError("achievementState.unlocked must be a list of ids")
        progress_raw = data.get("progress") or {}
        if not isinstance(progress_raw, dict):
            raise ValidationError("achievementState.progress must be an object")
        unlocked_at_raw = data.get("unlockedAt") or {}
        if not isinstance(unlocked_at_raw, dict):
            raise ValidationError("achievementState.unlockedAt must be an object")
        for rule_id, ts in unlocked_at_raw.items():
            from_iso(ts, field=f"unlockedAt.{rule_id}")

        # dict.fromkeys keeps first-seen order while dropping duplicates.
        unlocked = tuple(dict.fromkeys(unlocked_raw))
        progress = {
            str(k): whole_number(v, field=f"achievementState.progress.{k}") for k, v in progress_raw.items()
        }
        return cls(
            progress=progress,
            unlocked=unlocked,
            unlocked_at={str(k): str(v) for k, v in unlocked_at_raw.items() if k in unlocked},
        )


def evaluate_achievements(
    rules: Iterable[AchievementRule],
    stats: Stats,
    streaks: StreakState,
    previous: AchievementState,
    now: datetime,
) -> tuple[AchievementState, list[str]]:
    """Return the new state and the ids unlocked by this evaluation (in order)."""
    progress = dict(previous.progress)
    unlocked = list(previous.unlocked)
    unlocked_at = dict(previous.unlocked_at)
    newly: list[str] = []

    for rule in sorted(rules, key=lambda r: r.id):
        value = int(rule.metric(stats, streaks))
        progress[rule.id] = value
        if value >= rule.threshold and rule.id not in unlocked:
            unlocked.append(rule.id)
            unlocked_at[rule.id] = to_iso(now) or ""
            newly.append(rule.id)
            logger.info("Achievement unlocked: %s (%s >= %s)", rule.id, value, rule.threshold)

    state = AchievementState(
        progress=dict(sorted(progress.items())),
        unlocked=tuple(unlocked),
        unlocked_at=unlocked_at,
    )
    return state, newly
