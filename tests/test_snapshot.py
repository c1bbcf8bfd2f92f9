# tests/test_snapshot.py

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from studytrack.backup import snapshot
from studytrack.core.engine import StudyEngine
from studytrack.errors import UnsupportedVersionError, ValidationError
from studytrack.stats.aggregator import compute_stats

from .conftest import T0
from .fakes import FakeClock, InMemoryStateRepo, sequential_ids


def _populated(engine: StudyEngine) -> StudyEngine:
    t1 = engine.create_task(title="Read Ch.1", subject="History", due_date="2024-03-14T12:00:00+00:00")
    t2 = engine.create_task(title="Problem set", subject="Math", priority="high", progress=40)
    engine.update_task(t1.id, {"completed": True})
    engine.log_session(duration_minutes=25, task_id=t2.id)
    engine.log_session(duration_minutes=50, subject="Science", start_time="2024-03-12T20:00:00+00:00")
    engine.update_settings({"daily_goal_minutes": 90, "theme": "dark"})
    return engine


def test_export_document_shape(engine: StudyEngine) -> None:
    doc = _populated(engine).export_data()

    assert doc["format"] == "studytrack.snapshot"
    assert doc["schemaVersion"] == 1
    assert doc["exportedAt"] == T0.isoformat()
    assert doc["recomputeSeed"] == {"referenceTime": T0.isoformat(), "weekStartsOn": "sunday"}
    assert {"tasks", "sessions", "settings", "achievementState"} <= set(doc)
    # Derived state is never exported.
    assert "stats" not in doc
    assert "streaks" not in doc
    assert doc["settings"]["dailyGoalMinutes"] == 90
    # Portable documents carry no device-local bookkeeping.
    assert "lastBackupAt" not in doc
    assert "archiveLog" not in doc
    json.dumps(doc)


def test_round_trip_reproduces_state_and_stats(engine: StudyEngine) -> None:
    source = _populated(engine)
    doc = source.export_data()

    target = StudyEngine(clock=FakeClock(T0), repo=InMemoryStateRepo(), task_id_factory=sequential_ids("x"))
    summary = target.import_data(doc)

    assert summary.tasks == 2
    assert summary.sessions == 2
    assert target.tasks() == source.tasks()
    assert target.sessions() == source.sessions()
    assert target.settings() == source.settings()
    assert target.achievements() == source.achievements()
    assert target.stats() == source.stats()
    assert target.streaks() == source.streaks()


def test_unsupported_version_keeps_prior_state(engine: StudyEngine) -> None:
    _populated(engine)
    before = engine.tasks()
    doc = engine.export_data()
    doc["schemaVersion"] = 99

    with pytest.raises(UnsupportedVersionError) as exc:
        engine.import_data(doc)
    assert exc.value.version == 99
    assert engine.tasks() == before


def test_missing_version_is_unsupported() -> None:
    with pytest.raises(UnsupportedVersionError):
        snapshot.parse_document({"tasks": []})


def test_invalid_record_aborts_whole_import(engine: StudyEngine) -> None:
    _populated(engine)
    before_tasks = engine.tasks()
    before_stats = engine.stats()
    doc = engine.export_data()
    doc["tasks"].append({"id": "bad", "title": "", "createdAt": T0.isoformat()})

    with pytest.raises(ValidationError):
        engine.import_data(doc)
    assert engine.tasks() == before_tasks
    assert engine.stats() == before_stats


def test_import_rejects_broken_invariants() -> None:
    doc = {
        "schemaVersion": 1,
        "tasks": [
            {"id": "a", "title": "a", "createdAt": T0.isoformat(), "archived": True, "completed": False},
        ],
    }
    with pytest.raises(ValidationError):
        snapshot.parse_document(doc)


def test_file_export_and_import(engine: StudyEngine, tmp_path: Path) -> None:
    _populated(engine)
    path = tmp_path / "backups" / "snap.json"

    engine.export_data(path)
    assert path.exists()
    assert not path.with_suffix(".json.tmp").exists()
    assert engine.last_backup_at() == T0

    fresh = StudyEngine(clock=FakeClock(T0))
    fresh.import_data(path)
    assert [t.title for t in fresh.tasks()] == ["Read Ch.1", "Problem set"]

    again = StudyEngine(clock=FakeClock(T0))
    again.import_data(path.read_text("utf-8"))
    assert again.tasks() == fresh.tasks()


def test_loads_rejects_non_json() -> None:
    with pytest.raises(ValidationError):
        snapshot.loads("{not json")


def test_legacy_settings_keys_are_ignored() -> None:
    doc = {
        "schemaVersion": 1,
        "settings": {"pomodoroLength": 30, "totalStudyTime": 1234, "streak": 9},
    }
    state = snapshot.parse_document(doc)
    assert state.settings.pomodoro_length == 30


_SESSION = '{"id": "s1", "startTime": "2024-03-10T09:00:00+00:00", "durationMinutes": %s}'
_TASK = '{"id": "a", "title": "a", "createdAt": "2024-03-10T09:00:00+00:00", "progress": %s}'


@pytest.mark.parametrize(
    "text",
    [
        '{"schemaVersion": 1, "sessions": [%s]}' % (_SESSION % "NaN"),
        '{"schemaVersion": 1, "sessions": [%s]}' % (_SESSION % "Infinity"),
        '{"schemaVersion": 1, "sessions": [%s]}' % (_SESSION % "25.7"),
        '{"schemaVersion": 1, "tasks": [%s]}' % (_TASK % "Infinity"),
        '{"schemaVersion": 1, "tasks": [%s]}' % (_TASK % "NaN"),
        '{"schemaVersion": 1, "achievementState": {"progress": {"streak_3": Infinity}}}',
        '{"schemaVersion": 1, "achievementState": {"progress": {"streak_3": NaN}}}',
    ],
)
def test_non_finite_and_fractional_numbers_are_rejected(engine: StudyEngine, text: str) -> None:
    _populated(engine)
    before = engine.tasks()

    with pytest.raises(ValidationError):
        engine.import_data(text)
    assert engine.tasks() == before


def test_integral_floats_are_accepted() -> None:
    doc = snapshot.loads('{"schemaVersion": 1, "sessions": [%s]}' % (_SESSION % "25.0"))
    state = snapshot.parse_document(doc)
    assert state.sessions[0].duration_minutes == 25


@pytest.mark.parametrize("record_key", ["tasks", "sessions"])
def test_string_booleans_are_rejected(record_key: str) -> None:
    record = {"id": "a", "title": "a", "createdAt": T0.isoformat(), "startTime": T0.isoformat(), "durationMinutes": 5}
    record["completed"] = "false"

    with pytest.raises(ValidationError, match="completed must be a boolean"):
        snapshot.parse_document({"schemaVersion": 1, record_key: [record]})


def test_import_reports_export_reference_time(engine: StudyEngine) -> None:
    source = _populated(engine)
    doc = source.export_data()

    # The importing device is nine days later, in a different week.
    target = StudyEngine(clock=FakeClock(T0 + timedelta(days=9)))
    summary = target.import_data(doc)

    assert summary.exported_at == T0
    assert target.stats() != source.stats()
    replayed = compute_stats(target.tasks(), target.sessions(), summary.exported_at, target.settings())
    assert replayed == source.stats()


def test_task_history_survives_round_trip(engine: StudyEngine) -> None:
    source = _populated(engine)
    doc = source.export_data()
    (problem_set,) = [t for t in doc["tasks"] if t["title"] == "Problem set"]
    assert problem_set["history"][-1]["changes"] == "study_session"
    assert problem_set["lastModified"] == T0.isoformat()

    target = StudyEngine(clock=FakeClock(T0))
    target.import_data(doc)
    assert [t.history for t in target.tasks()] == [t.history for t in source.tasks()]
