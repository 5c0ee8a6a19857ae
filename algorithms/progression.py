import re
from typing import Iterable, List, Optional

from exercise_catalog import ExerciseDefinition
from models import Prescription, SetRecord, Suggestion
from .math_tools import MathTools


class ProgressionAdvisor:
    """Pure progression heuristics driven by reps in reserve (RIR)."""

    START_REPS = 8
    EASY_RIR = 3
    HARD_RIR = 1

    _SETS_RE = re.compile(r"(\d+)\s*[×xX*]")
    _RIR_RE = re.compile(r"@?\s*RIR\s*(\d+(?:\s*[-–—]\s*\d+)?)", re.IGNORECASE)
    _RANGE_RE = re.compile(r"(\d+)\s*[-–—]\s*(\d+)")
    _SINGLE_RE = re.compile(r"\d+")

    @staticmethod
    def chronological(sets: Iterable[SetRecord]) -> List[SetRecord]:
        """Return working sets oldest first by creation time."""
        working = [s for s in sets if not s.warmup]
        return sorted(working, key=lambda s: s.created_at)

    @classmethod
    def suggest_next(
        cls, exercise: ExerciseDefinition, recent_sets: Iterable[SetRecord]
    ) -> Suggestion:
        """Advise the next set from the newest working set in ``recent_sets``."""
        history = cls.chronological(recent_sets)
        if not history:
            return Suggestion(
                weight=None,
                reps=cls.START_REPS,
                message=f"No history yet. Start conservatively and aim for {cls.START_REPS} reps.",
            )
        last = history[-1]
        if not exercise.tracks_load:
            return Suggestion(
                weight=None,
                reps=last.reps + 1,
                message="Add one rep over last time.",
            )
        if last.rir >= cls.EASY_RIR:
            return Suggestion(
                weight=round(last.weight + exercise.increment, 2),
                reps=last.reps,
                message=f"Last set was easy (RIR {last.rir}). Add {exercise.increment:g} and keep the reps.",
            )
        if last.rir <= cls.HARD_RIR:
            return Suggestion(
                weight=last.weight,
                reps=last.reps + 1,
                message=f"Last set was near your limit (RIR {last.rir}). Keep the load and try one more rep.",
            )
        return Suggestion(
            weight=last.weight,
            reps=last.reps + 1,
            message="Solid set. Keep the load and add a rep.",
        )

    @staticmethod
    def warmup_sets(target_weight: float, target_reps: int, sets: int = 3) -> List[SetRecord]:
        """Return warm-up sets ramping toward the working weight."""
        return [
            SetRecord(reps=reps, weight=weight, rir=4, warmup=True)
            for reps, weight in MathTools.warmup_plan(target_weight, target_reps, sets)
        ]

    @classmethod
    def parse_prescription(cls, text: Optional[str]) -> Prescription:
        """Best-effort parse of strings like ``3×6–10 @ RIR2``.

        Missing pieces are left empty; reps fall back to ``AMRAP``.
        """
        text = (text or "").strip()
        rir_text = None
        rir_match = cls._RIR_RE.search(text)
        if rir_match:
            rir_text = "RIR " + re.sub(r"\s+", "", rir_match.group(1))
            text = (text[: rir_match.start()] + " " + text[rir_match.end():]).strip()

        sets = None
        rest = text
        sets_match = cls._SETS_RE.search(text)
        if sets_match:
            sets = int(sets_match.group(1))
            rest = text[sets_match.end():]

        range_match = cls._RANGE_RE.search(rest)
        if range_match:
            rep_text = f"{range_match.group(1)}–{range_match.group(2)}"
        else:
            single = cls._SINGLE_RE.search(rest)
            rep_text = single.group(0) if single else "AMRAP"
        return Prescription(sets=sets, rep_text=rep_text, rir_text=rir_text)
