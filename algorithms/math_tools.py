from typing import Iterable

from models import WorkoutExercise, WorkoutSet


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPL_COEFF: float = 0.0333

    @classmethod
    def epley_1rm(cls, weight: float, reps: int, factor: float = 1.0) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        rep_term = min(reps, 8)
        return weight * (1 + cls.EPL_COEFF * rep_term) * factor

    @staticmethod
    def volume(sets: Iterable[WorkoutSet]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for s in sets:
            vol += s.reps * s.weight
        return vol

    @classmethod
    def workout_volume(cls, exercises: Iterable[WorkoutExercise]) -> float:
        """Total volume over the flat set lists of ``exercises``."""
        return sum((cls.volume(ex.sets) for ex in exercises), 0.0)
