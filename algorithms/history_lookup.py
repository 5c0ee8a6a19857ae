import datetime
from typing import Iterable, Optional

from models import ExerciseLog


class HistoricalLookup:
    """Date-aware queries over exercise logs.

    Dates are canonical ``YYYY-MM-DD`` strings, so string comparison
    orders them chronologically.
    """

    PRIOR_WEEK_DAYS = 7

    @staticmethod
    def most_recent_log(
        exercise_id: str,
        logs: Iterable[ExerciseLog],
        on_or_before: Optional[str] = None,
    ) -> Optional[ExerciseLog]:
        """Return the latest log for ``exercise_id`` not after ``on_or_before``.

        Logs sharing a date are ordered by ``updated_at``; when that ties
        too, the one appearing later in ``logs`` wins.
        """
        best: Optional[ExerciseLog] = None
        for log in logs:
            if log.exercise_id != exercise_id:
                continue
            if on_or_before is not None and log.date > on_or_before:
                continue
            if best is None or (log.date, log.updated_at) >= (best.date, best.updated_at):
                best = log
        return best

    @staticmethod
    def shift_date(date: str, days: int) -> str:
        """Return ``date`` moved by ``days`` calendar days."""
        day = datetime.date.fromisoformat(date)
        return (day + datetime.timedelta(days=days)).isoformat()

    @classmethod
    def prior_week_snapshot(
        cls, exercise_id: str, logs: Iterable[ExerciseLog], date: str
    ) -> Optional[ExerciseLog]:
        """Return the log to compare against one week before ``date``."""
        cutoff = cls.shift_date(date, -cls.PRIOR_WEEK_DAYS)
        return cls.most_recent_log(exercise_id, logs, cutoff)
