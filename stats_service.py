from __future__ import annotations

from typing import Dict, List, Optional

from algorithms.math_tools import MathTools
from fitness_store import FitnessStore
from models import PersonalRecord, parse_timestamp


class StatisticsService:
    """Compute client statistics for display."""

    def __init__(self, store: FitnessStore) -> None:
        self.store = store

    def recent_personal_records(self, client_id: str, limit: int = 5) -> List[PersonalRecord]:
        records = self.store.get_client_personal_records(client_id)
        return sorted(records, key=lambda r: parse_timestamp(r.date), reverse=True)[:limit]

    def latest_body_weight(self, client_id: str) -> Optional[float]:
        """Return the most recent logged body weight if available."""
        client = self.store.find_client(client_id)
        if client is None or not client.body_weights:
            return None
        return client.body_weights[-1].weight

    def client_overview(self, client_id: str) -> Dict[str, object]:
        """Summarise workouts, volume and records for one client.

        Volume is recomputed from the stored sets rather than trusting each
        workout's ``total_volume``.
        """
        workouts = self.store.get_client_workouts(client_id)
        last = max(workouts, key=lambda w: parse_timestamp(w.date), default=None)
        volume = sum(MathTools.workout_volume(w.exercises) for w in workouts)
        return {
            "client": self.store.client_name(client_id).name,
            "total_workouts": len(workouts),
            "last_workout": last.date if last else None,
            "total_volume": round(volume, 2),
            "personal_records": len(self.store.get_client_personal_records(client_id)),
            "recent_records": [
                {
                    "exercise": self.store.exercise_name(r.exercise_id).name,
                    "type": r.type,
                    "value": r.value,
                    "date": r.date,
                }
                for r in self.recent_personal_records(client_id)
            ],
            "latest_body_weight": self.latest_body_weight(client_id),
        }

    def best_estimated_1rm(self, client_id: str, exercise_id: str) -> Optional[float]:
        """Highest Epley estimate over the client's logged sets of an exercise."""
        best: Optional[float] = None
        for workout in self.store.get_client_workouts(client_id):
            for ex in workout.exercises:
                if ex.exercise_id != exercise_id:
                    continue
                for s in ex.sets:
                    est = MathTools.epley_1rm(s.weight, s.reps)
                    if best is None or est > best:
                        best = est
        return round(best, 2) if best is not None else None
