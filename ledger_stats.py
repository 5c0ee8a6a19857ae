from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from algorithms import HistoricalLookup, MathTools
from exercise_catalog import ExerciseDefinition
from models import ExerciseLog


class StatisticsService:
    """Summaries of logged training computed on effective load."""

    @staticmethod
    def _working(log: ExerciseLog):
        return [s for s in log.sets if s.completed and not s.warmup]

    @classmethod
    def log_summary(
        cls, exercise: ExerciseDefinition, log: ExerciseLog, bodyweight: float
    ) -> Dict[str, object]:
        sets = cls._working(log)
        best_e1rm = 0.0
        top_set: Optional[Dict[str, float]] = None
        for s in sets:
            load = MathTools.effective_load(exercise, bodyweight, s.weight)
            e1rm = MathTools.estimated_max(load, s.reps)
            if top_set is None or e1rm > best_e1rm:
                best_e1rm = e1rm
                top_set = {"reps": s.reps, "weight": s.weight}
        volume = MathTools.volume(exercise, bodyweight, sets)
        return {
            "date": log.date,
            "sets": len(sets),
            "top_set": top_set,
            "est_1rm": round(best_e1rm, 2),
            "volume": round(volume, 2),
        }

    @classmethod
    def exercise_summary(
        cls,
        exercise: ExerciseDefinition,
        logs: Iterable[ExerciseLog],
        bodyweight: float,
    ) -> List[Dict[str, object]]:
        """Return per-date summaries of ``exercise`` oldest first."""
        own = [log for log in logs if log.exercise_id == exercise.id]
        own.sort(key=lambda log: (log.date, log.updated_at))
        return [cls.log_summary(exercise, log, bodyweight) for log in own]

    @classmethod
    def week_over_week(
        cls,
        exercise: ExerciseDefinition,
        logs: Iterable[ExerciseLog],
        date: str,
        bodyweight: float,
    ) -> Dict[str, object]:
        """Compare the log on or before ``date`` with the one a week earlier."""
        items = list(logs)
        current = HistoricalLookup.most_recent_log(exercise.id, items, date)
        previous = HistoricalLookup.prior_week_snapshot(exercise.id, items, date)
        cur = cls.log_summary(exercise, current, bodyweight) if current else None
        prev = cls.log_summary(exercise, previous, bodyweight) if previous else None
        change = None
        if cur and prev and prev["est_1rm"]:
            change = round(cur["est_1rm"] - prev["est_1rm"], 2)
        return {"current": cur, "previous": prev, "est_1rm_change": change}
