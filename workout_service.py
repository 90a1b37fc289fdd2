from __future__ import annotations

import logging
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from algorithms.math_tools import MathTools
from algorithms.session_decomposer import MultiClientSession, decompose_session
from fitness_store import FitnessStore
from models import (
    VideoRecord,
    Workout,
    WorkoutExercise,
    WorkoutSet,
    WorkoutTemplate,
    new_id,
)

logger = logging.getLogger("coachlog.workouts")

DEFAULT_REST_SECONDS = 60


class ClientSaveOutcome(BaseModel):
    client_id: str
    workout_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.error is None


class SessionSaveResult(BaseModel):
    """Per-client outcome of saving a multi-client session.

    Saves are independent; a failure for one client leaves the others saved.
    """

    outcomes: list[ClientSaveOutcome] = Field(default_factory=list)

    @property
    def all_saved(self) -> bool:
        return all(o.saved for o in self.outcomes)

    @property
    def workout_ids(self) -> list[str]:
        return [o.workout_id for o in self.outcomes if o.workout_id]

    @property
    def failed(self) -> list[str]:
        return [o.client_id for o in self.outcomes if not o.saved]


class WorkoutService:
    """Workout logging flow on top of :class:`FitnessStore`."""

    def __init__(self, store: FitnessStore) -> None:
        self.store = store

    def complete_set(
        self,
        workout_id: str,
        exercise_id: str,
        client_sets: Mapping[str, WorkoutSet],
    ) -> list[str]:
        """Run the record check for each client's completed set.

        Returns the ids of clients who set at least one new record.
        """
        achieved: list[str] = []
        for client_id, completed in client_sets.items():
            if self.store.check_and_add_personal_record(
                client_id,
                exercise_id,
                completed.weight,
                completed.volume,
                workout_id,
                completed.video_uri,
            ):
                achieved.append(client_id)
        return achieved

    def record_set_video(
        self,
        client_id: str,
        exercise_id: str,
        workout_id: str,
        set_id: str,
        video_uri: str,
        weight: float,
        reps: int,
        notes: Optional[str] = None,
    ) -> VideoRecord:
        return self.store.add_video_record(
            {
                "client_id": client_id,
                "exercise_id": exercise_id,
                "workout_id": workout_id,
                "set_id": set_id,
                "video_uri": video_uri,
                "weight": weight,
                "reps": reps,
                "notes": notes,
            }
        )

    def exercises_from_template(self, template: WorkoutTemplate) -> list[WorkoutExercise]:
        """Expand a template into fresh workout exercises.

        Template weights are defaults; a missing weight becomes 0 and a missing
        rest time the standard 60 seconds.
        """
        exercises: list[WorkoutExercise] = []
        for template_ex in template.exercises:
            exercise = template_ex.exercise or self.store.find_exercise(
                template_ex.exercise_id
            )
            exercises.append(
                WorkoutExercise(
                    id=new_id(),
                    exercise_id=template_ex.exercise_id,
                    exercise=exercise,
                    notes=template_ex.notes,
                    sets=[
                        WorkoutSet(
                            id=new_id(),
                            reps=s.reps,
                            weight=s.weight or 0.0,
                            rest_time=s.rest_time or DEFAULT_REST_SECONDS,
                            notes=s.notes,
                        )
                        for s in template_ex.sets
                    ],
                )
            )
        return exercises

    def save_workout(
        self,
        client_id: str,
        name: str,
        date: str,
        exercises: list[WorkoutExercise],
        duration: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Workout:
        """Save a single-client workout with its derived total volume."""
        return self.store.add_workout(
            Workout(
                client_id=client_id,
                client=self.store.find_client(client_id),
                name=name.strip(),
                date=date,
                exercises=exercises,
                duration=duration,
                notes=notes,
                total_volume=MathTools.workout_volume(exercises),
            )
        )

    def save_multi_client_session(self, session: MultiClientSession) -> SessionSaveResult:
        """Decompose ``session`` and save one workout per participant."""
        result = SessionSaveResult()
        for workout in decompose_session(session, self.store.clients):
            try:
                saved = self.store.add_workout(workout)
            except Exception as e:
                logger.exception(
                    "Saving %r for client %s failed", session.name, workout.client_id
                )
                result.outcomes.append(
                    ClientSaveOutcome(client_id=workout.client_id, error=str(e))
                )
                continue
            result.outcomes.append(
                ClientSaveOutcome(client_id=workout.client_id, workout_id=saved.id)
            )
        return result
