from typing import Iterable
import numpy as np

from exercise_catalog import ExerciseDefinition
from models import SetRecord


class MathTools:
    """Provides essential mathematical utilities for load calculations."""

    EPLEY_DIVISOR: float = 30.0
    DEFAULT_LOAD_FACTOR: float = 1.0
    WARMUP_START: float = 0.3
    WARMUP_END: float = 0.9

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError(f"empty range [{min_value}, {max_value}]")
        return max(min_value, min(value, max_value))

    @classmethod
    def estimated_max(cls, load: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula.

        Single reps (and empty sets) return ``load`` unchanged.
        """
        if reps <= 1:
            return load
        return load * (1 + reps / cls.EPLEY_DIVISOR)

    @classmethod
    def effective_load(
        cls, exercise: ExerciseDefinition, bodyweight: float, external_load: float
    ) -> float:
        """Return the load moved, counting bodyweight for bodyweight movements.

        ``external_load`` may be negative for assisted variants.
        """
        if not exercise.is_bodyweight:
            return external_load
        factor = exercise.load_factor
        if factor is None:
            factor = cls.DEFAULT_LOAD_FACTOR
        return bodyweight * factor + external_load

    @classmethod
    def volume(
        cls, exercise: ExerciseDefinition, bodyweight: float, sets: Iterable[SetRecord]
    ) -> float:
        """Sum reps times effective load over completed working sets."""
        return sum(
            s.reps * cls.effective_load(exercise, bodyweight, s.weight)
            for s in sets
            if s.completed and not s.warmup
        )

    @classmethod
    def warmup_plan(
        cls, target_weight: float, target_reps: int, sets: int = 3
    ) -> list[tuple[int, float]]:
        """Return ``(reps, weight)`` warm-ups ramping toward the working set.

        Loads climb linearly from 30% to 90% of ``target_weight`` while reps
        taper from ``target_reps + 2`` down to half the working reps.
        """
        if target_weight <= 0 or target_reps <= 0 or sets <= 0:
            raise ValueError("warm-up needs a positive weight, rep count and set count")
        fractions = np.linspace(cls.WARMUP_START, cls.WARMUP_END, sets)
        reps = np.linspace(target_reps + 2, max(1, target_reps // 2), sets)
        return [
            (int(round(r)), round(target_weight * float(f), 2))
            for r, f in zip(reps, fractions)
        ]
