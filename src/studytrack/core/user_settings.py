# src/studytrack/core/user_settings.py

"""
User-tunable study preferences (the SettingsStore).

Every field is enumerated here with its default and validated on construction,
so a stored document with missing or bogus keys is either repaired with defaults
(missing) or rejected (bogus) at load time instead of leaking into stats.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any

from ..errors import ValidationError

logger = logging.getLogger(__name__)

THEMES = ("light", "dark", "system")

# Field groups used by validation.
_POSITIVE_INTS = (
    "pomodoro_length",
    "short_break_length",
    "long_break_length",
    "long_break_interval",
    "archive_days",
    "task_retention_weeks",
)
_NON_NEGATIVE_INTS = ("daily_goal_minutes", "weekly_task_goal", "weekly_study_goal_minutes")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


@dataclass(frozen=True, slots=True)
class EnabledFilters:
    today: bool = True
    upcoming: bool = True
    overdue: bool = True
    ongoing: bool = True
    this_week: bool = True
    priority: bool = True
    completed: bool = True
    archived: bool = False

    def enabled(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]

    def merged(self, patch: dict[str, Any]) -> EnabledFilters:
        known = {f.name for f in fields(self)}
        unknown = set(patch) - known
        if unknown:
            raise ValidationError(f"unknown filter(s): {', '.join(sorted(unknown))}")
        for k, v in patch.items():
            if not isinstance(v, bool):
                raise ValidationError(f"enabled_filters.{k} must be a boolean")
        return replace(self, **patch)


@dataclass(frozen=True, slots=True)
class UserSettings:
    pomodoro_length: int = 25
    short_break_length: int = 5
    long_break_length: int = 15
    long_break_interval: int = 4
    daily_goal_minutes: int = 120
    weekly_task_goal: int = 15
    weekly_study_goal_minutes: int = 840
    notifications: bool = True
    theme: str = "system"
    focus_mode: bool = False
    auto_archive: bool = False
    archive_days: int = 30
    task_retention_weeks: int = 12
    archive_past_due: bool = False
    privacy_lock: bool = False
    prioritize_overdue: bool = False
    enabled_filters: EnabledFilters = field(default_factory=EnabledFilters)

    def __post_init__(self) -> None:
        for name in _POSITIVE_INTS + _NON_NEGATIVE_INTS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer")
            floor = 1 if name in _POSITIVE_INTS else 0
            if value < floor:
                raise ValidationError(f"{name} must be >= {floor}")
        for f in fields(self):
            if f.type in ("bool", bool) and not isinstance(getattr(self, f.name), bool):
                raise ValidationError(f"{f.name} must be a boolean")
        if self.theme not in THEMES:
            raise ValidationError(f"theme must be one of {', '.join(THEMES)}")
        if not isinstance(self.enabled_filters, EnabledFilters):
            raise ValidationError("enabled_filters must be an EnabledFilters")

    def merged(self, patch: dict[str, Any]) -> UserSettings:
        """Return a validated copy with patch applied; enabled_filters merges per key."""
        known = {f.name for f in fields(self)}
        unknown = set(patch) - known
        if unknown:
            raise ValidationError(f"unknown setting(s): {', '.join(sorted(unknown))}")
        changes = dict(patch)
        if "enabled_filters" in changes:
            ef = changes["enabled_filters"]
            if isinstance(ef, dict):
                changes["enabled_filters"] = self.enabled_filters.merged(ef)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name, value in asdict(self).items():
            if name == "enabled_filters":
                value = {_camel(k): v for k, v in value.items()}
            out[_camel(name)] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserSettings:
        if not isinstance(data, dict):
            raise ValidationError("settings must be an object")
        by_camel = {_camel(f.name): f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = by_camel.get(key)
            if name is None:
                # Legacy documents carried derived counters in settings; drop them.
                logger.debug("Ignoring unknown settings key %s", key)
                continue
            kwargs[name] = value

        raw_filters = kwargs.pop("enabled_filters", None)
        if raw_filters is not None:
            if not isinstance(raw_filters, dict):
                raise ValidationError("enabledFilters must be an object")
            filter_names = {_camel(f.name): f.name for f in fields(EnabledFilters)}
            kwargs["enabled_filters"] = EnabledFilters().merged(
                {filter_names[k]: v for k, v in raw_filters.items() if k in filter_names}
            )
        return cls(**kwargs)


class SettingsStore:
    """Holds the current UserSettings value. No derived computation."""

    def __init__(self, initial: UserSettings | None = None) -> None:
        self._current = initial or UserSettings()

    @property
    def current(self) -> UserSettings:
        return self._current

    def preview(self, patch: dict[str, Any]) -> UserSettings:
        return self._current.merged(patch)

    def replace(self, settings: UserSettings) -> None:
        self._current = settings
