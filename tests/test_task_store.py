# tests/test_task_store.py

from __future__ import annotations

from datetime import timedelta

import pytest

from studytrack.errors import InvalidStateError, NotFoundError, ValidationError
from studytrack.tasks.task_models import DEFAULT_SUBJECTS, HISTORY_LIMIT, Priority, Task, canonical_subject
from studytrack.tasks.task_store import TaskStore

from .conftest import T0
from .fakes import FakeClock


def test_create_task_defaults(task_store: TaskStore) -> None:
    t = task_store.create_task(title="  Read Ch.1  ", subject="History")

    assert t.id == "t1"
    assert t.title == "Read Ch.1"
    assert t.subject == "History"
    assert t.priority is Priority.MEDIUM
    assert t.progress == 0
    assert t.completed is False
    assert t.archived is False
    assert t.created_at == T0
    assert t.completed_at is None
    assert t.due_date is None


def test_create_task_rejects_blank_title(task_store: TaskStore) -> None:
    with pytest.raises(ValidationError):
        task_store.create_task(title="   ")
    assert task_store.count_tasks() == 0


def test_create_task_without_subject_uses_fallback(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x", subject="")
    assert t.subject == "Other"


def test_create_task_at_full_progress_is_completed(task_store: TaskStore) -> None:
    t = task_store.create_task(title="done already", progress=100)
    assert t.completed is True
    assert t.completed_at == T0


def test_complete_does_not_force_progress(task_store: TaskStore, clock: FakeClock) -> None:
    t1 = task_store.create_task(title="Read Ch.1", subject="History")
    assert t1.completed is False

    now = clock.advance(hours=1)
    t1 = task_store.update_task(t1.id, {"completed": True})

    assert t1.completed is True
    assert t1.completed_at == now
    # Only progress -> completed is forced, never the reverse.
    assert t1.progress == 0


def test_progress_100_forces_completed(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x", progress=40)
    t = task_store.update_task(t.id, {"progress": 100})
    assert t.completed is True
    assert t.completed_at == T0


def test_uncomplete_clears_completed_at_and_archive(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x")
    task_store.update_task(t.id, {"completed": True})
    task_store.archive_task(t.id)

    t = task_store.update_task(t.id, {"completed": False})
    assert t.completed is False
    assert t.completed_at is None
    assert t.archived is False
    assert t.archived_at is None


def test_reopen_at_full_progress_is_rejected(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x", progress=100)
    with pytest.raises(InvalidStateError):
        task_store.update_task(t.id, {"completed": False})
    assert task_store.get(t.id).completed is True

    t = task_store.update_task(t.id, {"completed": False, "progress": 50})
    assert t.completed is False
    assert t.progress == 50


def test_update_unknown_id(task_store: TaskStore) -> None:
    with pytest.raises(NotFoundError):
        task_store.update_task("nope", {"title": "y"})


def test_update_rejects_unknown_field_without_change(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x")
    with pytest.raises(ValidationError):
        task_store.update_task(t.id, {"title": "y", "archived": True})
    assert task_store.get(t.id).title == "x"


def test_update_validation_is_all_or_nothing(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x", progress=10)
    with pytest.raises(ValidationError):
        task_store.update_task(t.id, {"title": "y", "progress": 150})
    after = task_store.get(t.id)
    assert after.title == "x"
    assert after.progress == 10


def test_update_parses_due_date_and_priority(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x")
    t = task_store.update_task(t.id, {"due_date": "2024-03-15T09:00:00+00:00", "priority": "HIGH"})
    assert t.due_date is not None and t.due_date.day == 15
    assert t.priority is Priority.HIGH

    with pytest.raises(ValidationError):
        task_store.update_task(t.id, {"due_date": "tomorrow"})


def test_archive_requires_completed(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x")
    with pytest.raises(InvalidStateError):
        task_store.archive_task(t.id)
    assert task_store.get(t.id).archived is False


def test_archive_and_restore(task_store: TaskStore, clock: FakeClock) -> None:
    t = task_store.create_task(title="x")
    task_store.update_task(t.id, {"completed": True})
    now = clock.advance(days=2)

    archived = task_store.archive_task(t.id)
    assert archived.archived is True
    assert archived.archived_at == now

    restored = task_store.restore_task(t.id)
    assert restored.archived is False
    assert restored.archived_at is None
    assert restored.completed is True


def test_delete_is_permanent(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x")
    task_store.delete_task(t.id)
    assert t.id not in task_store
    with pytest.raises(NotFoundError):
        task_store.get(t.id)


def test_list_tasks_in_creation_order(task_store: TaskStore, clock: FakeClock) -> None:
    a = task_store.create_task(title="a")
    clock.advance(minutes=1)
    b = task_store.create_task(title="b")
    task_store.update_task(a.id, {"completed": True})
    task_store.archive_task(a.id)

    assert [t.id for t in task_store.list_tasks()] == [a.id, b.id]
    assert [t.id for t in task_store.list_tasks(include_archived=False)] == [b.id]


def test_archived_always_implies_completed(task_store: TaskStore) -> None:
    ids = [task_store.create_task(title=f"task {i}").id for i in range(4)]
    task_store.update_task(ids[0], {"completed": True})
    task_store.archive_task(ids[0])
    task_store.update_task(ids[1], {"progress": 100})
    task_store.archive_task(ids[1])
    task_store.update_task(ids[1], {"completed": False, "progress": 20})
    with pytest.raises(InvalidStateError):
        task_store.archive_task(ids[2])

    for t in task_store.list_tasks():
        assert not t.archived or t.completed


def test_mutations_record_history(task_store: TaskStore, clock: FakeClock) -> None:
    t = task_store.create_task(title="x")
    assert t.last_modified == T0
    assert t.history == ()

    later = clock.advance(hours=1)
    task_store.update_task(t.id, {"progress": 100})
    task_store.add_study_minutes(t.id, 25)
    task_store.archive_task(t.id)
    restored = task_store.restore_task(t.id)

    assert [e.changes for e in restored.history] == ["progress", "study_session", "archived", "restored"]
    assert restored.history[0].progress == 100
    assert restored.history[0].completed is True
    assert restored.last_modified == later


def test_history_keeps_newest_entries(task_store: TaskStore, clock: FakeClock) -> None:
    t = task_store.create_task(title="x")
    for minutes in range(1, HISTORY_LIMIT + 4):
        clock.advance(minutes=1)
        task_store.add_study_minutes(t.id, minutes)

    history = task_store.get(t.id).history
    assert len(history) == HISTORY_LIMIT
    assert history[-1].timestamp == clock.now()
    assert history[0].timestamp == T0 + timedelta(minutes=4)


def test_history_round_trips_through_dict(task_store: TaskStore) -> None:
    t = task_store.create_task(title="x", progress=30)
    task_store.update_task(t.id, {"title": "y", "progress": 60})
    task_store.update_task(t.id, {"completed": True})
    current = task_store.get(t.id)

    data = current.to_dict()
    assert data["history"][0] == {
        "timestamp": T0.isoformat(),
        "changes": "progress,title",
        "progress": 60,
        "completed": False,
    }
    assert Task.from_dict(data) == current


def test_built_in_subjects_are_canonicalized(task_store: TaskStore) -> None:
    assert task_store.create_task(title="a", subject="computer science").subject == "Computer Science"
    assert task_store.create_task(title="b", subject="Astronomy").subject == "Astronomy"
    for name in DEFAULT_SUBJECTS:
        assert canonical_subject(name.upper()) == name
    assert canonical_subject("   ") == "Other"
