"""Split one multi-client training session into per-client workouts."""

from __future__ import annotations

from typing import Iterable, Optional

from pydantic import BaseModel, Field

from models import UNKNOWN_CLIENT, Client, Workout, WorkoutExercise
from .math_tools import MathTools


class MultiClientSession(BaseModel):
    """A session authored once and performed by several clients.

    Each exercise carries its sets per participant in ``client_sets``.
    """

    name: str
    date: str
    client_ids: list[str]
    exercises: list[WorkoutExercise] = Field(default_factory=list)
    duration: Optional[int] = None
    notes: Optional[str] = None


def resolve_participants(client_ids: Iterable[str], roster: Iterable[Client]) -> list[Client]:
    """Map ids to clients in session order; unknown ids get a placeholder."""
    by_id = {c.id: c for c in roster}
    participants: list[Client] = []
    seen: set[str] = set()
    for cid in client_ids:
        if cid in seen:
            continue
        seen.add(cid)
        participants.append(by_id.get(cid) or Client(id=cid, name=UNKNOWN_CLIENT))
    return participants


def client_exercises(session: MultiClientSession, client_id: str) -> list[WorkoutExercise]:
    """Exercises of ``session`` reduced to ``client_id``'s own sets.

    An exercise the client has no sets for is left out entirely.
    """
    result: list[WorkoutExercise] = []
    for ex in session.exercises:
        sets = (ex.client_sets or {}).get(client_id) or []
        if not sets:
            continue
        result.append(
            ex.model_copy(
                update={
                    "sets": [s.model_copy() for s in sets],
                    "client_sets": None,
                }
            )
        )
    return result


def decompose_session(session: MultiClientSession, roster: Iterable[Client]) -> list[Workout]:
    """Return one unsaved workout per participating client."""
    participants = resolve_participants(session.client_ids, roster)
    workouts: list[Workout] = []
    for client in participants:
        exercises = client_exercises(session, client.id)
        workouts.append(
            Workout(
                client_id=client.id,
                client=client,
                name=f"{client.name}'s {session.name.strip()}",
                date=session.date,
                exercises=exercises,
                duration=session.duration,
                notes=session.notes,
                total_volume=MathTools.workout_volume(exercises),
                is_multi_client=True,
                clients=participants,
            )
        )
    return workouts
