# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from studytrack.core.engine import StudyEngine
from studytrack.tasks.task_store import TaskStore

from .fakes import FakeClock, InMemoryStateRepo, sequential_ids

# Wednesday; the week started on Sunday 2024-03-10.
T0 = datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture()
def repo() -> InMemoryStateRepo:
    return InMemoryStateRepo()


@pytest.fixture()
def task_store(clock: FakeClock) -> TaskStore:
    return TaskStore(clock, id_factory=sequential_ids("t"))


@pytest.fixture()
def engine(clock: FakeClock, repo: InMemoryStateRepo) -> StudyEngine:
    """
    Engine wired with deterministic fakes (fixed clock, sequential ids, in-memory repo).

    Write-through is on, so every successful command is saved immediately.
    """
    return StudyEngine(
        clock=clock,
        repo=repo,
        task_id_factory=sequential_ids("t"),
        session_id_factory=sequential_ids("s"),
    )
