from __future__ import annotations

import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class SetRecord(BaseModel):
    """One performed set."""

    reps: int = 0
    weight: float = 0.0
    rir: int = Field(default=2, ge=0, le=4)
    warmup: bool = False
    created_at: str = Field(default_factory=utc_timestamp)

    @property
    def completed(self) -> bool:
        return self.reps > 0


class ExerciseLog(BaseModel):
    """All sets of one exercise on one date."""

    date: str
    exercise_id: str
    day: str = ""
    exercise_name: str = ""
    sets: List[SetRecord] = Field(default_factory=list)
    updated_at: str = Field(default_factory=utc_timestamp)

    @property
    def key(self) -> tuple[str, str]:
        return (self.date, self.exercise_id)


class TemplateExercise(BaseModel):
    exercise_id: str
    prescription: str


class TemplateDay(BaseModel):
    """Goal prescriptions for one training day."""

    day: str
    exercises: List[TemplateExercise] = Field(default_factory=list)


class LedgerSnapshot(BaseModel):
    """Full persisted state of the date-snapshot ledger."""

    logs: List[ExerciseLog] = Field(default_factory=list)
    bodyweight: float = 80.0
    templates: List[TemplateDay] = Field(default_factory=list)

    def find(self, date: str, exercise_id: str) -> Optional[ExerciseLog]:
        for log in self.logs:
            if log.date == date and log.exercise_id == exercise_id:
                return log
        return None


class Session(BaseModel):
    """A training session of the continuous ledger."""

    id: str
    date: str
    template_day: Optional[str] = None
    created_at: str = Field(default_factory=utc_timestamp)


class SessionSet(BaseModel):
    """A set attached to a session rather than to a per-day snapshot."""

    id: int
    session_id: str
    exercise_id: str
    reps: int
    weight: float
    rir: int = 2
    warmup: bool = False
    created_at: str = Field(default_factory=utc_timestamp)

    def as_record(self) -> SetRecord:
        return SetRecord(
            reps=self.reps,
            weight=self.weight,
            rir=self.rir,
            warmup=self.warmup,
            created_at=self.created_at,
        )


class Prescription(BaseModel):
    """Parsed form of a free-text prescription such as ``3×6–10 @ RIR2``."""

    sets: Optional[int] = None
    rep_text: str = "AMRAP"
    rir_text: Optional[str] = None


class Suggestion(BaseModel):
    weight: Optional[float] = None
    reps: int
    message: str


class RestTimerRequest(BaseModel):
    """What the rest-timer collaborator needs for one exercise."""

    exercise_id: str
    seconds: int
    notify: bool = True
