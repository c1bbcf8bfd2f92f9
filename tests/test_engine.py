# tests/test_engine.py

from __future__ import annotations

from datetime import timedelta

import pytest

from studytrack.core.engine import StudyEngine
from studytrack.errors import InvalidStateError, NotFoundError, PersistenceError, ValidationError
from studytrack.tasks.task_filters import TaskFilter

from .conftest import T0
from .fakes import FailingStateRepo, FakeClock, InMemoryStateRepo, sequential_ids


def _snapshot(engine: StudyEngine):
    return (engine.tasks(), engine.sessions(), engine.settings(), engine.stats(), engine.streaks(), engine.achievements())


def test_commands_recompute_derived_state(engine: StudyEngine) -> None:
    task = engine.create_task(title="Essay", subject="English")
    assert engine.stats().tasks_created == 1
    assert engine.stats().tasks_completed == 0

    engine.update_task(task.id, {"completed": True})
    assert engine.stats().tasks_completed == 1
    assert engine.stats().goal_progress.weekly_tasks_completed == 1


def test_log_session_feeds_stats_streaks_and_task(engine: StudyEngine, clock: FakeClock) -> None:
    task = engine.create_task(title="Problem set", subject="Math")
    engine.log_session(duration_minutes=25, task_id=task.id, start_time=T0 - timedelta(days=1))
    s = engine.log_session(duration_minutes=30, task_id=task.id)

    assert s.subject == "Math"
    assert s.start_time == T0
    assert engine.get_task(task.id).study_minutes == 55
    assert engine.stats().total_study_time == 55
    assert engine.stats().subject_distribution == {"Math": 55}
    assert engine.streaks().current_streak == 2


def test_free_session_defaults_to_other(engine: StudyEngine) -> None:
    s = engine.log_session(duration_minutes=10)
    assert s.task_id is None
    assert s.subject == "Other"


@pytest.mark.parametrize("minutes", [0.9, 25.7, float("nan"), float("inf"), "25"])
def test_log_session_requires_whole_positive_minutes(engine: StudyEngine, minutes: object) -> None:
    with pytest.raises(ValidationError, match="duration_minutes"):
        engine.log_session(duration_minutes=minutes)
    assert engine.sessions() == []


def test_log_session_canonicalizes_subject(engine: StudyEngine) -> None:
    assert engine.log_session(duration_minutes=10, subject="math").subject == "Math"


def test_failed_commands_leave_everything_unchanged(engine: StudyEngine, repo: InMemoryStateRepo) -> None:
    task = engine.create_task(title="x", progress=30)
    engine.log_session(duration_minutes=25, task_id=task.id)
    before = _snapshot(engine)
    saves = repo.saves

    with pytest.raises(ValidationError):
        engine.create_task(title=" ")
    with pytest.raises(NotFoundError):
        engine.update_task("missing", {"title": "y"})
    with pytest.raises(InvalidStateError):
        engine.archive_task(task.id)
    with pytest.raises(ValidationError):
        engine.update_settings({"daily_goal_minutes": -5})
    with pytest.raises(ValidationError):
        engine.update_settings({"no_such_setting": 1})
    with pytest.raises(ValidationError):
        engine.log_session(duration_minutes=0)
    with pytest.raises(NotFoundError):
        engine.log_session(duration_minutes=25, task_id="missing")

    assert _snapshot(engine) == before
    assert repo.saves == saves


def test_write_through_saves_every_command(engine: StudyEngine, repo: InMemoryStateRepo) -> None:
    engine.create_task(title="a")
    engine.create_task(title="b")
    assert repo.saves == 2
    assert [t["title"] for t in repo.document["tasks"]] == ["a", "b"]
    assert "stats" not in repo.document
    assert not engine.dirty


def test_deferred_writes_wait_for_flush(clock: FakeClock) -> None:
    repo = InMemoryStateRepo()
    engine = StudyEngine(clock=clock, repo=repo, write_through=False)
    engine.create_task(title="a")

    assert engine.dirty
    assert repo.saves == 0
    assert engine.flush() is True
    assert repo.saves == 1
    assert engine.flush() is True
    assert repo.saves == 1


def test_persistence_failure_keeps_memory_state(clock: FakeClock) -> None:
    repo = FailingStateRepo()
    engine = StudyEngine(clock=clock, repo=repo)

    task = engine.create_task(title="kept in memory")
    assert engine.get_task(task.id).title == "kept in memory"
    assert isinstance(engine.last_persistence_error, PersistenceError)
    assert engine.dirty

    with pytest.raises(PersistenceError):
        engine.flush(raise_errors=True)

    repo.failing = False
    assert engine.flush() is True
    assert engine.last_persistence_error is None
    assert repo.document is not None
    assert repo.document["tasks"][0]["title"] == "kept in memory"


def test_load_rederives_stats(clock: FakeClock) -> None:
    repo = InMemoryStateRepo()
    first = StudyEngine(clock=clock, repo=repo, task_id_factory=sequential_ids("t"))
    first.create_task(title="a", progress=100)
    first.log_session(duration_minutes=40)

    # Hand-edited backing store: stale numbers must not be trusted.
    repo.document["stats"] = {"totalStudyTime": 9999}

    second = StudyEngine(clock=clock, repo=repo)
    assert second.load() is True
    assert second.stats().total_study_time == 40
    assert second.stats().tasks_completed == 1


def test_load_empty_repo(clock: FakeClock) -> None:
    engine = StudyEngine(clock=clock, repo=InMemoryStateRepo())
    assert engine.load() is False
    assert engine.tasks() == []


def test_settings_goals_flow_into_stats(engine: StudyEngine) -> None:
    engine.log_session(duration_minutes=60)
    engine.update_settings({"daily_goal_minutes": 60})
    assert engine.stats().goal_progress.daily_percent == 100
    assert engine.settings().daily_goal_minutes == 60


def test_manual_archive_ignores_auto_archive_toggle(engine: StudyEngine, clock: FakeClock) -> None:
    task = engine.create_task(title="old", progress=100)
    clock.advance(days=31)

    assert engine.run_scheduled_archive() is None
    assert engine.get_task(task.id).archived is False

    result = engine.archive_old_tasks_now()
    assert result.archived_ids == (task.id,)
    assert result.manual is True
    assert engine.get_task(task.id).archived is True
    assert engine.archive_log()[-1] == result


def test_scheduled_archive_runs_when_enabled(engine: StudyEngine, clock: FakeClock) -> None:
    engine.update_settings({"auto_archive": True, "archive_days": 7, "task_retention_weeks": 1})
    task = engine.create_task(title="old", progress=100)

    clock.advance(days=8)
    result = engine.run_scheduled_archive()
    assert result is not None and result.archived_ids == (task.id,)

    clock.advance(days=8)
    result = engine.run_scheduled_archive()
    assert result is not None and result.deleted_ids == (task.id,)
    assert engine.tasks() == []
    # Lifetime totals are recomputed from what is left.
    assert engine.stats().tasks_completed == 0


def test_archive_log_is_bounded(engine: StudyEngine) -> None:
    for _ in range(12):
        engine.archive_old_tasks_now()
    assert len(engine.archive_log()) == 10


def test_filters_and_available_filters(engine: StudyEngine, clock: FakeClock) -> None:
    engine.create_task(title="due today", due_date=T0 + timedelta(hours=3))
    engine.create_task(title="urgent", priority="high")
    assert [t.title for t in engine.tasks(TaskFilter.TODAY)] == ["due today"]
    assert [t.title for t in engine.tasks("priority")] == ["urgent"]

    assert TaskFilter.ARCHIVED not in engine.available_filters()
    engine.update_settings({"enabled_filters": {"archived": True, "today": False}})
    filters = engine.available_filters()
    assert TaskFilter.ARCHIVED in filters
    assert TaskFilter.TODAY not in filters
    assert filters[0] is TaskFilter.ALL


def test_export_sets_last_backup(engine: StudyEngine, repo: InMemoryStateRepo, clock: FakeClock) -> None:
    assert engine.last_backup_at() is None
    now = clock.advance(hours=2)
    engine.export_data()
    assert engine.last_backup_at() == now
    assert repo.document["lastBackupAt"] == now.isoformat()


def test_refresh_rolls_streak_over_midnight(engine: StudyEngine, clock: FakeClock) -> None:
    engine.log_session(duration_minutes=25)
    assert engine.streaks().current_streak == 1

    clock.advance(days=2)
    engine.refresh()
    assert engine.streaks().current_streak == 0
    assert engine.streaks().longest_streak == 1
