"""In-memory entity store backed by key/value snapshots.

Every mutator updates the in-memory collections synchronously, then writes the
full collection to local storage and mirrors it to the sync sink when a user
is signed in. The write is scheduled as an :class:`asyncio.Task` when an event
loop is running (``store.last_write`` / ``await store.flush()``); without a
running loop it completes before the mutator returns.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import time
from typing import Any, Callable, Coroutine, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from algorithms.record_detection import detect_records
from db import (
    CLIENTS_KEY,
    COLLECTION_KEYS,
    EXERCISES_KEY,
    PERSONAL_RECORDS_KEY,
    SETTINGS_KEY,
    TEMPLATES_KEY,
    VIDEO_RECORDS_KEY,
    WORKOUTS_KEY,
    AsyncKeyValueRepository,
    load_default_exercises,
    storage_key,
)
from models import (
    UNKNOWN_CLIENT,
    UNKNOWN_EXERCISE,
    BodyWeight,
    Client,
    ClientPhoto,
    Entity,
    Exercise,
    MeasurementSettings,
    NameLookup,
    PersonalRecord,
    VideoRecord,
    Workout,
    WorkoutTemplate,
    isoformat,
    new_id,
    parse_timestamp,
    utc_now,
)
from sync_service import SyncDispatcher

logger = logging.getLogger("coachlog.store")

E = TypeVar("E", bound=Entity)
Data = Union[Mapping[str, Any], BaseModel]

_COLLECTIONS: dict[str, tuple[str, Type[Entity]]] = {
    CLIENTS_KEY: ("clients", Client),
    EXERCISES_KEY: ("exercises", Exercise),
    WORKOUTS_KEY: ("workouts", Workout),
    PERSONAL_RECORDS_KEY: ("personal_records", PersonalRecord),
    TEMPLATES_KEY: ("workout_templates", WorkoutTemplate),
    VIDEO_RECORDS_KEY: ("video_records", VideoRecord),
}


def _as_dict(data: Data) -> dict:
    # only explicitly set fields, so a model behaves like a partial update
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True)
    return dict(data)


def _merge(entity: E, updates: Data) -> E:
    """Shallow-merge ``updates`` into ``entity``; the id never changes."""
    fields = {k: v for k, v in _as_dict(updates).items() if k != "id"}
    return type(entity).model_validate({**entity.model_dump(), **fields})


def dedupe_by_id(items: list[E]) -> list[E]:
    """Last-write-wins: a later entry replaces an earlier one with the same id.

    The surviving entry keeps the position of the first occurrence.
    """
    merged: dict[str, E] = {}
    for item in items:
        merged[item.id] = item
    return list(merged.values())


def _sorted_weights(weights: list[BodyWeight]) -> list[BodyWeight]:
    return sorted(weights, key=lambda w: parse_timestamp(w.date))


class FitnessStore:
    """Entity repository and load/merge manager for one signed-in user."""

    def __init__(
        self,
        storage: AsyncKeyValueRepository,
        dispatcher: SyncDispatcher,
        *,
        default_exercises: Optional[list[Exercise]] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.storage = storage
        self.dispatcher = dispatcher
        self.clock = clock or utc_now
        if default_exercises is None:
            default_exercises = [
                Exercise.model_validate(row) for row in load_default_exercises()
            ]
        self.default_exercises = default_exercises
        self.current_user_id: Optional[str] = None
        self.is_loading = True
        self.last_write: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self._last_revision = 0
        self._reset()

    # ------------------------------------------------------------------ state

    def _reset(self) -> None:
        self.clients: list[Client] = []
        self.exercises: list[Exercise] = list(self.default_exercises)
        self.workouts: list[Workout] = []
        self.personal_records: list[PersonalRecord] = []
        self.workout_templates: list[WorkoutTemplate] = []
        self.video_records: list[VideoRecord] = []
        self.measurement_settings = MeasurementSettings()

    def _default_for(self, key: str) -> Any:
        if key == EXERCISES_KEY:
            return list(self.default_exercises)
        if key == SETTINGS_KEY:
            return MeasurementSettings()
        return []

    def _snapshot(self, key: str) -> Any:
        if key == SETTINGS_KEY:
            return self.measurement_settings.model_dump(mode="json")
        attr, _cls = _COLLECTIONS[key]
        return [
            item.model_dump(mode="json", exclude_none=True)
            for item in getattr(self, attr)
        ]

    def _now_iso(self) -> str:
        return isoformat(self.clock())

    def _next_id(self, taken: set[str]) -> str:
        ident = new_id()
        while ident in taken:
            ident = new_id()
        return ident

    # ------------------------------------------------------------ persistence

    def _next_revision(self) -> int:
        self._last_revision = max(time.time_ns(), self._last_revision + 1)
        return self._last_revision

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            self.last_write = None
            return None
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self.last_write = task
        return task

    async def _write(
        self, key: str, snapshot: Any, revision: int, user_id: Optional[str]
    ) -> None:
        try:
            await self.storage.set_item(key, json.dumps(snapshot), revision)
        except Exception:
            logger.exception("Error persisting %s", key)
        if user_id:
            await self.dispatcher.sync_collection(user_id, snapshot, key, revision)

    def _persist(self, key: str) -> Optional[asyncio.Task]:
        """Write the full ``key`` collection and mirror it for the active user."""
        return self._schedule(
            self._write(
                key, self._snapshot(key), self._next_revision(), self.current_user_id
            )
        )

    async def flush(self) -> None:
        """Wait for every scheduled write and sync to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ------------------------------------------------------- generic mutators

    def _add(self, key: str, data: Data, **defaults: Any) -> Entity:
        attr, cls = _COLLECTIONS[key]
        items: list[Entity] = getattr(self, attr)
        payload = _as_dict(data)
        taken = {i.id for i in items}
        if not payload.get("id") or payload["id"] in taken:
            payload["id"] = self._next_id(taken)
        for field, value in defaults.items():
            if not payload.get(field):
                payload[field] = value
        entity = cls.model_validate(payload)
        setattr(self, attr, [*items, entity])
        self._persist(key)
        return entity

    def _update(self, key: str, entity_id: str, updates: Data) -> bool:
        attr, _cls = _COLLECTIONS[key]
        items: list[Entity] = getattr(self, attr)
        if not any(i.id == entity_id for i in items):
            return False
        setattr(
            self,
            attr,
            [_merge(i, updates) if i.id == entity_id else i for i in items],
        )
        self._persist(key)
        return True

    def _delete(self, key: str, entity_id: str) -> bool:
        attr, _cls = _COLLECTIONS[key]
        items: list[Entity] = getattr(self, attr)
        remaining = [i for i in items if i.id != entity_id]
        if len(remaining) == len(items):
            return False
        setattr(self, attr, remaining)
        self._persist(key)
        return True

    def _replace_client(self, client_id: str, build: Callable[[Client], Client]) -> bool:
        if not any(c.id == client_id for c in self.clients):
            return False
        self.clients = [build(c) if c.id == client_id else c for c in self.clients]
        self._persist(CLIENTS_KEY)
        return True

    # ---------------------------------------------------------------- clients

    def add_client(self, data: Data) -> Client:
        return self._add(CLIENTS_KEY, data, created_at=self._now_iso())

    def update_client(self, client_id: str, updates: Data) -> bool:
        return self._update(CLIENTS_KEY, client_id, updates)

    def delete_client(self, client_id: str) -> bool:
        """Remove the client only; workouts and records keep the dangling id."""
        return self._delete(CLIENTS_KEY, client_id)

    def find_client(self, client_id: str) -> Optional[Client]:
        return next((c for c in self.clients if c.id == client_id), None)

    def client_name(self, client_id: str) -> NameLookup:
        client = self.find_client(client_id)
        if client is None:
            return NameLookup(UNKNOWN_CLIENT, False)
        return NameLookup(client.name, True)

    def add_client_photo(self, client_id: str, data: Data) -> Optional[ClientPhoto]:
        client = self.find_client(client_id)
        if client is None:
            return None
        payload = _as_dict(data)
        payload["id"] = self._next_id({p.id for p in client.photos})
        photo = ClientPhoto.model_validate(payload)
        self._replace_client(
            client_id, lambda c: c.model_copy(update={"photos": [*c.photos, photo]})
        )
        return photo

    def delete_client_photo(self, client_id: str, photo_id: str) -> bool:
        client = self.find_client(client_id)
        if client is None or not any(p.id == photo_id for p in client.photos):
            return False
        return self._replace_client(
            client_id,
            lambda c: c.model_copy(
                update={"photos": [p for p in c.photos if p.id != photo_id]}
            ),
        )

    def add_body_weight(self, client_id: str, data: Data) -> Optional[BodyWeight]:
        client = self.find_client(client_id)
        if client is None:
            return None
        payload = _as_dict(data)
        payload["id"] = self._next_id({w.id for w in client.body_weights})
        entry = BodyWeight.model_validate(payload)
        self._replace_client(
            client_id,
            lambda c: c.model_copy(
                update={"body_weights": _sorted_weights([*c.body_weights, entry])}
            ),
        )
        return entry

    def update_body_weight(self, client_id: str, weight_id: str, updates: Data) -> bool:
        client = self.find_client(client_id)
        if client is None or not any(w.id == weight_id for w in client.body_weights):
            return False
        weights = [
            _merge(w, updates) if w.id == weight_id else w for w in client.body_weights
        ]
        return self._replace_client(
            client_id,
            lambda c: c.model_copy(update={"body_weights": _sorted_weights(weights)}),
        )

    def delete_body_weight(self, client_id: str, weight_id: str) -> bool:
        client = self.find_client(client_id)
        if client is None or not any(w.id == weight_id for w in client.body_weights):
            return False
        return self._replace_client(
            client_id,
            lambda c: c.model_copy(
                update={
                    "body_weights": [w for w in c.body_weights if w.id != weight_id]
                }
            ),
        )

    # -------------------------------------------------------------- exercises

    def add_exercise(self, data: Data) -> Exercise:
        return self._add(EXERCISES_KEY, data)

    def update_exercise(self, exercise_id: str, updates: Data) -> bool:
        return self._update(EXERCISES_KEY, exercise_id, updates)

    def delete_exercise(self, exercise_id: str) -> bool:
        return self._delete(EXERCISES_KEY, exercise_id)

    def find_exercise(self, exercise_id: str) -> Optional[Exercise]:
        return next((e for e in self.exercises if e.id == exercise_id), None)

    def exercise_name(self, exercise_id: str) -> NameLookup:
        exercise = self.find_exercise(exercise_id)
        if exercise is None:
            return NameLookup(UNKNOWN_EXERCISE, False)
        return NameLookup(exercise.name, True)

    # --------------------------------------------------------------- workouts

    def add_workout(self, data: Data) -> Workout:
        return self._add(WORKOUTS_KEY, data)

    def update_workout(self, workout_id: str, updates: Data) -> bool:
        return self._update(WORKOUTS_KEY, workout_id, updates)

    def delete_workout(self, workout_id: str) -> bool:
        return self._delete(WORKOUTS_KEY, workout_id)

    def find_workout(self, workout_id: str) -> Optional[Workout]:
        return next((w for w in self.workouts if w.id == workout_id), None)

    def get_client_workouts(self, client_id: str) -> list[Workout]:
        return [w for w in self.workouts if w.client_id == client_id]

    # -------------------------------------------------------------- templates

    def add_workout_template(self, data: Data) -> WorkoutTemplate:
        return self._add(TEMPLATES_KEY, data, created_at=self._now_iso())

    def update_workout_template(self, template_id: str, updates: Data) -> bool:
        return self._update(TEMPLATES_KEY, template_id, updates)

    def delete_workout_template(self, template_id: str) -> bool:
        return self._delete(TEMPLATES_KEY, template_id)

    # ------------------------------------------------------- personal records

    def check_and_add_personal_record(
        self,
        client_id: str,
        exercise_id: str,
        weight: float,
        volume: float,
        workout_id: str,
        video_uri: Optional[str] = None,
    ) -> bool:
        """Record new max-weight and/or max-volume bests; ``True`` if any was set."""
        update = detect_records(
            self.personal_records,
            client_id,
            exercise_id,
            weight,
            volume,
            workout_id,
            video_uri,
            now=self.clock(),
        )
        if not update.improved:
            return False
        self.personal_records = update.records
        self._persist(PERSONAL_RECORDS_KEY)
        return True

    def get_client_personal_records(self, client_id: str) -> list[PersonalRecord]:
        return [r for r in self.personal_records if r.client_id == client_id]

    def delete_personal_record(self, record_id: str) -> bool:
        logger.debug("Deleting personal record %s", record_id)
        return self._delete(PERSONAL_RECORDS_KEY, record_id)

    # ---------------------------------------------------------- video records

    def add_video_record(self, data: Data) -> VideoRecord:
        return self._add(VIDEO_RECORDS_KEY, data, date=self._now_iso())

    def get_client_video_records(
        self, client_id: str, exercise_id: Optional[str] = None
    ) -> list[VideoRecord]:
        return [
            v
            for v in self.video_records
            if v.client_id == client_id and (not exercise_id or v.exercise_id == exercise_id)
        ]

    def delete_video_record(self, record_id: str) -> bool:
        return self._delete(VIDEO_RECORDS_KEY, record_id)

    # --------------------------------------------------------------- settings

    def update_measurement_settings(self, updates: Data) -> MeasurementSettings:
        """Merge unit choices; an unknown unit raises ``ValueError``."""
        merged = {**self.measurement_settings.model_dump(), **_as_dict(updates)}
        self.measurement_settings = MeasurementSettings.model_validate(merged)
        self._persist(SETTINGS_KEY)
        return self.measurement_settings

    # ----------------------------------------------------------- load / sync

    async def _read_local(self, key: str) -> Any:
        try:
            raw = await self.storage.get_item(key)
            return json.loads(raw) if raw else None
        except Exception:
            logger.exception("Error reading %s from local storage", key)
            return None

    def _parse(self, key: str, raw: Any) -> Any:
        if raw is None:
            return self._default_for(key)
        if key == SETTINGS_KEY:
            try:
                return MeasurementSettings.model_validate(raw)
            except ValidationError:
                logger.error("Invalid measurement settings %r, using defaults", raw)
                return MeasurementSettings()
        _attr, cls = _COLLECTIONS[key]
        if not isinstance(raw, list):
            logger.error("Expected a list for %s, got %s", key, type(raw).__name__)
            return self._default_for(key)
        items = []
        for entry in raw:
            try:
                items.append(cls.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid %s entry: %s", key, e)
        taken = {i.id for i in items if i.id}
        for index, item in enumerate(items):
            if not item.id:
                ident = self._next_id(taken)
                taken.add(ident)
                items[index] = item.model_copy(update={"id": ident})
        return dedupe_by_id(items)

    async def load(self, user_id: Optional[str] = None) -> None:
        """Populate every collection for ``user_id`` (or the current user).

        Each collection prefers the remote snapshot, then the legacy local
        snapshot, then its empty or default seed. Without a user the store is
        reset to the signed-out baseline.
        """
        user = user_id or self.current_user_id
        if not user:
            self._reset()
            self.is_loading = False
            return
        try:
            remote = await asyncio.gather(
                *(self.dispatcher.load_collection(user, key) for key in COLLECTION_KEYS)
            )
            local = await asyncio.gather(*(self._read_local(key) for key in COLLECTION_KEYS))
            for key, cloud_data, local_data in zip(COLLECTION_KEYS, remote, local):
                value = self._parse(key, cloud_data if cloud_data is not None else local_data)
                if key == SETTINGS_KEY:
                    self.measurement_settings = value
                else:
                    setattr(self, _COLLECTIONS[key][0], value)
            logger.info("Loaded data for user %s", user)
        except Exception:
            logger.exception("Error loading fitness data for user %s", user)
        finally:
            self.is_loading = False

    async def set_current_user(self, user_id: Optional[str]) -> None:
        """Switch the active user and reload; ``None`` resets to signed-out."""
        self.current_user_id = user_id
        await self.load(user_id)

    async def sync_all(self) -> list[bool]:
        if not self.current_user_id:
            return []
        revision = self._next_revision()
        return list(
            await asyncio.gather(
                *(
                    self.dispatcher.sync_collection(
                        self.current_user_id, self._snapshot(key), key, revision
                    )
                    for key in COLLECTION_KEYS
                )
            )
        )

    async def clear_local_data(self, user_id: Optional[str] = None) -> None:
        """Remove the legacy keys and, when given, ``user_id``'s namespaced keys."""
        keys = list(COLLECTION_KEYS)
        if user_id:
            keys += [storage_key(key, user_id) for key in COLLECTION_KEYS]
        try:
            await self.storage.remove_items(keys)
        except Exception:
            logger.exception("Error clearing local data")
