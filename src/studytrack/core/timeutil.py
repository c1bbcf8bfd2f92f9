# src/studytrack/core/timeutil.py

from __future__ import annotations

from datetime import date, datetime, timedelta

from ..errors import ValidationError


def ensure_aware(dt: datetime) -> datetime:
    # Naive values are interpreted as local wall-clock time.
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return ensure_aware(dt).isoformat()


def from_iso(raw: object, *, field: str = "datetime") -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_aware(raw)
    if not isinstance(raw, str):
        raise ValidationError(f"{field}: expected ISO string, got {type(raw).__name__}")
    try:
        # Accept the trailing "Z" that JavaScript's toISOString() produces.
        text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError as e:
        raise ValidationError(f"{field}: invalid ISO datetime {raw!r}") from e


def day_key(dt: datetime) -> str:
    """Calendar date (YYYY-MM-DD) of dt in its own offset."""
    return dt.date().isoformat()


def parse_day_key(key: str) -> date:
    try:
        return date.fromisoformat(key)
    except ValueError as e:
        raise ValidationError(f"invalid dayKey {key!r}") from e


def weekday_index(d: date) -> int:
    """Sunday=0 ... Saturday=6."""
    return (d.weekday() + 1) % 7


def week_start(d: date) -> date:
    """Most recent Sunday on or before d."""
    return d - timedelta(days=weekday_index(d))
