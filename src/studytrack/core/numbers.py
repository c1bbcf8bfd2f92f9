# src/studytrack/core/numbers.py

from __future__ import annotations

import math

from ..errors import ValidationError


def whole_number(raw: object, *, field: str) -> int:
    """
    Coerce JSON / CLI input into an int.

    Accepts ints, integral floats (25.0) and decimal strings ("25").
    Booleans, NaN/Infinity and fractional values are rejected.
    """
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a number (got {raw!r})")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise ValidationError(f"{field} must be a finite number (got {raw!r})")
        if not raw.is_integer():
            raise ValidationError(f"{field} must be a whole number (got {raw!r})")
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a whole number (got {raw!r})") from None
    raise ValidationError(f"{field} must be a number (got {raw!r})")


def strict_bool(raw: object, *, field: str, default: bool) -> bool:
    if raw is None:
        return default
    if not isinstance(raw, bool):
        raise ValidationError(f"{field} must be a boolean (got {raw!r})")
    return raw
