import datetime
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.session_decomposer import MultiClientSession
from db import AsyncKeyValueRepository
from fitness_store import FitnessStore
from models import Exercise, WorkoutExercise, WorkoutSet
from stats_service import StatisticsService
from sync_service import LocalNamespaceSink, SyncDispatcher
from workout_service import DEFAULT_REST_SECONDS, WorkoutService

BENCH = Exercise(id="1", name="Bench Press", category="chest")
SQUAT = Exercise(id="12", name="Back Squat", category="legs")


@pytest.fixture
def store(tmp_path):
    storage = AsyncKeyValueRepository(str(tmp_path / "workouts.db"))
    return FitnessStore(
        storage,
        SyncDispatcher(LocalNamespaceSink(storage)),
        default_exercises=[BENCH, SQUAT],
        clock=lambda: datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc),
    )


@pytest.fixture
def service(store):
    return WorkoutService(store)


def bench_sets(*pairs):
    return [WorkoutSet(id=f"s{i}", reps=r, weight=w) for i, (r, w) in enumerate(pairs)]


def test_save_workout_computes_volume(store, service):
    client = store.add_client({"name": "Alice"})
    exercises = [
        WorkoutExercise(id="e1", exercise_id="1", exercise=BENCH, sets=bench_sets((5, 100), (5, 105))),
        WorkoutExercise(id="e2", exercise_id="12", exercise=SQUAT, sets=bench_sets((3, 140))),
    ]
    workout = service.save_workout(client.id, " Push Day ", "2024-05-01", exercises, duration=60)
    assert workout.id
    assert workout.name == "Push Day"
    assert workout.total_volume == 500 + 525 + 420
    assert workout.client.name == "Alice"
    assert store.get_client_workouts(client.id) == [workout]


def test_complete_set_reports_clients_with_records(store, service):
    first = service.complete_set("w1", "1", {"a": WorkoutSet(reps=5, weight=50), "b": WorkoutSet(reps=5, weight=60)})
    assert first == ["a", "b"]
    second = service.complete_set(
        "w2",
        "1",
        {
            "a": WorkoutSet(reps=4, weight=55, video_uri="file://a.mp4"),
            "b": WorkoutSet(reps=5, weight=60),
        },
    )
    assert second == ["a"]
    records = {r.type: r for r in store.get_client_personal_records("a")}
    assert records["max_weight"].value == 55
    assert records["max_weight"].video_uri == "file://a.mp4"
    assert records["max_volume"].value == 250


def test_record_set_video(store, service):
    video = service.record_set_video("a", "1", "w1", "s1", "file://clip.mp4", 100, 3)
    assert video.id
    assert video.date == "2024-05-01T00:00:00.000Z"
    assert store.get_client_video_records("a", "1") == [video]


def test_exercises_from_template_defaults(store, service):
    template = store.add_workout_template(
        {
            "name": "Full body",
            "exercises": [
                {
                    "id": "t1",
                    "exercise_id": "12",
                    "sets": [{"reps": 5, "weight": 100, "rest_time": 120}, {"reps": 8}],
                }
            ],
        }
    )
    assert template.created_at == "2024-05-01T00:00:00.000Z"
    (exercise,) = service.exercises_from_template(template)
    assert exercise.exercise.name == "Back Squat"
    assert exercise.id != "t1"
    assert [(s.weight, s.rest_time) for s in exercise.sets] == [(100, 120), (0, DEFAULT_REST_SECONDS)]
    assert len({s.id for s in exercise.sets}) == 2


def test_multi_client_session(store, service):
    alice = store.add_client({"name": "Alice"})
    bob = store.add_client({"name": "Bob"})
    session = MultiClientSession(
        name="Leg Day",
        date="2024-05-01",
        client_ids=[alice.id, bob.id],
        exercises=[
            WorkoutExercise(
                id="e1",
                exercise_id="12",
                exercise=SQUAT,
                client_sets={alice.id: bench_sets((5, 100), (5, 110)), bob.id: []},
            )
        ],
    )
    result = service.save_multi_client_session(session)
    assert result.all_saved
    assert len(result.workout_ids) == 2
    workouts = store.workouts
    assert [w.name for w in workouts] == ["Alice's Leg Day", "Bob's Leg Day"]
    assert workouts[0].total_volume == 1050
    assert workouts[1].exercises == []
    assert sum(w.total_volume for w in workouts) == 1050


def test_multi_client_session_partial_failure(store, service, caplog, monkeypatch):
    alice = store.add_client({"name": "Alice"})
    bob = store.add_client({"name": "Bob"})
    original = store.add_workout

    def flaky_add(workout):
        if workout.client_id == bob.id:
            raise RuntimeError("disk full")
        return original(workout)

    monkeypatch.setattr(store, "add_workout", flaky_add)
    session = MultiClientSession(
        name="Circuit",
        date="2024-05-01",
        client_ids=[alice.id, bob.id],
        exercises=[],
    )
    result = service.save_multi_client_session(session)
    assert not result.all_saved
    assert result.failed == [bob.id]
    assert [o.error for o in result.outcomes] == [None, "disk full"]
    assert len(store.workouts) == 1
    assert "Saving 'Circuit' for client" in caplog.text


def test_client_overview(store, service):
    client = store.add_client({"name": "Alice"})
    store.add_body_weight(client.id, {"weight": 82, "date": "2024-01-01"})
    store.add_body_weight(client.id, {"weight": 80, "date": "2024-04-01"})
    for date, weight in (("2024-04-01", 100), ("2024-04-08", 110)):
        sets = bench_sets((5, weight))
        workout = service.save_workout(
            client.id, "Push", date, [WorkoutExercise(id="e", exercise_id="1", sets=sets)]
        )
        service.complete_set(workout.id, "1", {client.id: sets[0]})

    stats = StatisticsService(store)
    overview = stats.client_overview(client.id)
    assert overview["client"] == "Alice"
    assert overview["total_workouts"] == 2
    assert overview["last_workout"] == "2024-04-08"
    assert overview["total_volume"] == 1050
    assert overview["personal_records"] == 2
    assert {r["exercise"] for r in overview["recent_records"]} == {"Bench Press"}
    assert overview["latest_body_weight"] == 80
    assert stats.best_estimated_1rm(client.id, "1") == round(110 * (1 + 0.0333 * 5), 2)
    assert stats.best_estimated_1rm(client.id, "12") is None


def test_overview_of_unknown_client(store):
    overview = StatisticsService(store).client_overview("ghost")
    assert overview["client"] == "Unknown Client"
    assert overview["total_workouts"] == 0
    assert overview["last_workout"] is None
    assert overview["latest_body_weight"] is None
