"""Entity models shared by the store, the services and the REST layer."""

from __future__ import annotations

import datetime
import random
import string
from typing import Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

ExerciseCategory = Literal[
    "chest",
    "back",
    "shoulders",
    "arms",
    "legs",
    "core",
    "cardio",
    "full-body",
]
PhotoCategory = Literal["before", "after", "progress"]
RecordType = Literal["max_weight", "max_volume"]
MeasurementUnit = Literal["metric", "imperial"]

UNKNOWN_CLIENT = "Unknown Client"
UNKNOWN_EXERCISE = "Unknown Exercise"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def isoformat(moment: datetime.datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime.datetime:
    """Parse an ISO date or timestamp, treating naive values as UTC."""
    moment = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment


def new_id(suffix: str | None = None, now_ms: int | None = None) -> str:
    """Return ``<epoch ms>_<9 random base36 chars>`` with an optional suffix."""
    if now_ms is None:
        now_ms = int(utc_now().timestamp() * 1000)
    token = "".join(random.choices(_ID_ALPHABET, k=9))
    ident = f"{now_ms}_{token}"
    return f"{ident}_{suffix}" if suffix else ident


class Entity(BaseModel):
    """Base for stored entities; an empty ``id`` is filled in on add."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = ""


class ClientPhoto(Entity):
    uri: str
    type: PhotoCategory = "progress"
    date: str
    notes: Optional[str] = None


class BodyWeight(Entity):
    weight: float
    date: str
    body_fat: Optional[float] = None
    notes: Optional[str] = None


class Client(Entity):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    avatar: Optional[str] = None
    created_at: str = ""
    photos: list[ClientPhoto] = Field(default_factory=list)
    body_weights: list[BodyWeight] = Field(default_factory=list)


class Exercise(Entity):
    name: str
    category: ExerciseCategory
    muscle_groups: list[str] = Field(default_factory=list)
    equipment: Optional[str] = None
    instructions: Optional[str] = None
    is_custom: bool = False


class WorkoutSet(Entity):
    reps: int = 0
    weight: float = 0.0
    rest_time: Optional[int] = None
    notes: Optional[str] = None
    is_personal_record: Optional[bool] = None
    video_uri: Optional[str] = None

    @property
    def volume(self) -> float:
        return self.weight * self.reps


class WorkoutExercise(Entity):
    exercise_id: str
    exercise: Optional[Exercise] = None
    sets: list[WorkoutSet] = Field(default_factory=list)
    # multi-client sessions only: client id -> that client's sets
    client_sets: Optional[dict[str, list[WorkoutSet]]] = None
    notes: Optional[str] = None
    comments: Optional[str] = None


class Workout(Entity):
    client_id: str
    client: Optional[Client] = None
    name: str
    date: str
    exercises: list[WorkoutExercise] = Field(default_factory=list)
    duration: Optional[int] = None
    notes: Optional[str] = None
    total_volume: float = 0.0
    is_multi_client: bool = False
    clients: list[Client] = Field(default_factory=list)


class PersonalRecord(Entity):
    client_id: str
    exercise_id: str
    type: RecordType
    value: float
    date: str
    workout_id: str
    video_uri: Optional[str] = None


class VideoRecord(Entity):
    client_id: str
    exercise_id: str
    workout_id: str
    set_id: str
    video_uri: str
    date: str = ""
    weight: float = 0.0
    reps: int = 0
    notes: Optional[str] = None


class TemplateSet(Entity):
    reps: int = 0
    weight: Optional[float] = None
    rest_time: Optional[int] = None
    notes: Optional[str] = None


class TemplateExercise(Entity):
    exercise_id: str
    exercise: Optional[Exercise] = None
    sets: list[TemplateSet] = Field(default_factory=list)
    notes: Optional[str] = None


class WorkoutTemplate(Entity):
    name: str
    description: Optional[str] = None
    exercises: list[TemplateExercise] = Field(default_factory=list)
    created_at: str = ""
    is_default: bool = False


class MeasurementSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    weight_unit: MeasurementUnit = "metric"
    distance_unit: MeasurementUnit = "metric"


class NameLookup(NamedTuple):
    """Display name of a referenced entity and whether the reference resolved."""

    name: str
    found: bool
