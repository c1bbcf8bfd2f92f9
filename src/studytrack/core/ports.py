# src/studytrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The engine depends on Protocols instead of concrete implementations.
This keeps the wall clock and the durable store swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Protocol

StateDocument = dict[str, Any]
# Logical persisted layout: {"schemaVersion", "tasks", "sessions", "settings", "achievementState", ...}.


class Clock(Protocol):
    """Source of "now". Always returns a timezone-aware datetime."""
    def now(self) -> datetime: ...


class StateRepo(Protocol):
    """
    Durable store for the canonical state document.

    save() replaces the whole document; load() returns None for an empty store.
    Implementations raise on I/O failure; the engine turns that into PersistenceError.
    """

    def load(self) -> StateDocument | None: ...
    def save(self, document: StateDocument) -> None: ...
