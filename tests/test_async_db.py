import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    COLLECTION_KEYS,
    AsyncKeyValueRepository,
    KeyValueRepository,
    load_default_exercises,
    storage_key,
    user_keys,
)


def test_storage_keys():
    assert storage_key("fitness_clients") == "fitness_clients"
    assert storage_key("fitness_clients", "u1") == "user_u1_fitness_clients"
    assert user_keys("u1")[-1] == "user_u1_fitness_measurement_settings"
    assert len(COLLECTION_KEYS) == 7


def test_key_value_repository(tmp_path):
    repo = KeyValueRepository(str(tmp_path / "kv.db"))
    assert repo.get_item("fitness_clients") is None
    repo.set_item("fitness_clients", "[1]")
    assert repo.get_item("fitness_clients") == "[1]"
    repo.set_item("fitness_clients", "[2]")
    assert repo.get_item("fitness_clients") == "[2]"
    repo.remove_items(["fitness_clients"])
    assert repo.get_item("fitness_clients") is None


def test_stale_revision_is_ignored(tmp_path):
    repo = KeyValueRepository(str(tmp_path / "kv.db"))
    repo.set_item("fitness_workouts", "newer", revision=20)
    repo.set_item("fitness_workouts", "older", revision=10)
    assert repo.get_item("fitness_workouts") == "newer"
    assert repo.get_revision("fitness_workouts") == 20


def test_keys_prefix_is_literal(tmp_path):
    repo = KeyValueRepository(str(tmp_path / "kv.db"))
    repo.set_item("user_1_fitness_clients", "[]")
    repo.set_item("userX1Xfitness_clients", "[]")
    repo.set_item("fitness_clients", "[]")
    assert repo.keys("user_1_") == ["user_1_fitness_clients"]
    assert len(repo.keys()) == 3


def test_default_exercise_catalog():
    rows = load_default_exercises()
    assert len(rows) == 20
    names = {r["name"] for r in rows}
    assert "Bench Press" in names
    burpee = next(r for r in rows if r["name"] == "Burpee")
    assert burpee["category"] == "full-body"
    assert burpee["instructions"].startswith("Squat, kick back")
    running = next(r for r in rows if r["name"] == "Running")
    assert running["equipment"] is None


def test_missing_catalog_returns_empty(tmp_path):
    assert load_default_exercises(str(tmp_path / "missing.csv")) == []


@pytest.mark.asyncio
async def test_async_key_value_repository(tmp_path):
    repo = AsyncKeyValueRepository(str(tmp_path / "kv.db"))
    await repo.set_item("user_u1_fitness_clients", '[{"id": "a"}]', revision=5)
    assert await repo.get_item("user_u1_fitness_clients") == '[{"id": "a"}]'
    await repo.set_item("user_u1_fitness_clients", "[]", revision=4)
    assert await repo.get_item("user_u1_fitness_clients") == '[{"id": "a"}]'
    assert await repo.get_revision("user_u1_fitness_clients") == 5
    assert await repo.keys("user_u1_") == ["user_u1_fitness_clients"]
    await repo.remove_items(["user_u1_fitness_clients"])
    assert await repo.get_item("user_u1_fitness_clients") is None
