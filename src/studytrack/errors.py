# src/studytrack/errors.py

"""
Error taxonomy shared by the engine and its collaborators.

Everything except PersistenceError is raised before canonical state is touched,
so callers can surface the message and carry on with the previous state.
"""

from __future__ import annotations


class StudyTrackError(Exception):
    """Base class for all engine errors."""


class ValidationError(StudyTrackError):
    """Bad user input (empty title, out-of-range value, unknown field...)."""


class NotFoundError(StudyTrackError):
    """Unknown task id (or other referenced record)."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class InvalidStateError(StudyTrackError):
    """Illegal lifecycle transition, e.g. archiving an incomplete task."""


class UnsupportedVersionError(StudyTrackError):
    """Snapshot schema version outside the supported range."""

    def __init__(self, version: object, supported: tuple[int, int]) -> None:
        lo, hi = supported
        super().__init__(f"unsupported snapshot schema version {version!r} (supported: {lo}..{hi})")
        self.version = version
        self.supported = supported


class PersistenceError(StudyTrackError):
    """Durable write/read failure. In-memory state is never rolled back for it."""
