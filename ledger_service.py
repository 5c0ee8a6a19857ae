import datetime
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from algorithms import HistoricalLookup, ProgressionAdvisor
from db import (
    LedgerRepository,
    RestOverrideRepository,
    SessionRepository,
    SessionSetRepository,
)
from debounce import Debouncer
from exercise_catalog import ExerciseCatalog
from models import (
    ExerciseLog,
    LedgerSnapshot,
    RestTimerRequest,
    Session,
    SessionSet,
    SetRecord,
    Suggestion,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

LEDGER_CHANGED = "ledger"
OVERRIDES_CHANGED = "overrides"


class LedgerService:
    """In-memory holder of the ledger through which every mutation flows.

    Mutations are written to the local store synchronously and then
    announced to listeners (the sync engine mirrors them remotely).
    """

    def __init__(
        self,
        ledger_repo: LedgerRepository,
        overrides_repo: RestOverrideRepository,
        catalog: ExerciseCatalog,
        sessions: SessionRepository | None = None,
        session_sets: SessionSetRepository | None = None,
        debouncer: Debouncer | None = None,
        rest_notifications: bool = True,
    ) -> None:
        self.ledger_repo = ledger_repo
        self.overrides_repo = overrides_repo
        self.catalog = catalog
        self.sessions = sessions
        self.session_sets = session_sets
        self.debouncer = debouncer or Debouncer()
        self.rest_notifications = rest_notifications
        self._lock = threading.RLock()
        self._listeners: List[Callable[[str], None]] = []
        self._working: Dict[Tuple[str, str], List[SetRecord]] = {}
        self._snapshot = ledger_repo.load()
        self._overrides = overrides_repo.load()
        self._overrides_changed_at = ""

    def add_listener(self, callback: Callable[[str], None]) -> None:
        self._listeners.append(callback)

    def _notify(self, kind: str) -> None:
        for callback in list(self._listeners):
            callback(kind)

    @property
    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return self._snapshot.model_copy(deep=True)

    @property
    def overrides(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._overrides)

    def logs(self, exercise_id: Optional[str] = None) -> List[ExerciseLog]:
        with self._lock:
            logs = list(self._snapshot.logs)
        if exercise_id is not None:
            logs = [log for log in logs if log.exercise_id == exercise_id]
        return sorted(logs, key=lambda log: (log.date, log.exercise_id))

    def latest_log(
        self, exercise_id: str, on_or_before: Optional[str] = None
    ) -> Optional[ExerciseLog]:
        if on_or_before is not None:
            self.check_date(on_or_before)
        return HistoricalLookup.most_recent_log(exercise_id, self.logs(), on_or_before)

    def prior_week(self, exercise_id: str, date: str) -> Optional[ExerciseLog]:
        self.check_date(date)
        return HistoricalLookup.prior_week_snapshot(exercise_id, self.logs(), date)

    def history_sets(
        self, exercise_id: str, on_or_before: Optional[str] = None
    ) -> List[SetRecord]:
        """Return recent sets of ``exercise_id`` from both ledger variants."""
        sets: List[SetRecord] = []
        latest = self.latest_log(exercise_id, on_or_before)
        if latest is not None:
            sets.extend(latest.sets)
        if self.session_sets is not None:
            sets.extend(
                s.as_record()
                for s in self.session_sets.fetch_history(exercise_id, on_or_before)
            )
        return sets

    def advise(self, exercise_id: str, on_or_before: Optional[str] = None) -> Suggestion:
        exercise = self.catalog.get(exercise_id)
        return ProgressionAdvisor.suggest_next(
            exercise, self.history_sets(exercise_id, on_or_before)
        )

    def rest_seconds(self, exercise_id: str) -> int:
        with self._lock:
            override = self._overrides.get(exercise_id)
        if override is not None:
            return override
        return self.catalog.get(exercise_id).rest_seconds

    def rest_timer_request(self, exercise_id: str) -> RestTimerRequest:
        return RestTimerRequest(
            exercise_id=exercise_id,
            seconds=self.rest_seconds(exercise_id),
            notify=self.rest_notifications,
        )

    @staticmethod
    def check_date(date: str) -> None:
        try:
            parsed = datetime.date.fromisoformat(date)
        except (TypeError, ValueError):
            raise ValueError(f"invalid date {date!r}, expected YYYY-MM-DD") from None
        if parsed.isoformat() != date:
            raise ValueError(f"invalid date {date!r}, expected YYYY-MM-DD")

    @staticmethod
    def validate_sets(sets: Iterable[SetRecord], allow_negative: bool = False) -> List[SetRecord]:
        """Return ``sets`` as a list or raise ``ValueError`` with a corrective message."""
        items = list(sets)
        if not items:
            raise ValueError("Add at least one set before saving.")
        for idx, item in enumerate(items, start=1):
            if item.reps <= 0:
                raise ValueError(f"Set {idx}: reps must be greater than zero.")
            if item.weight < 0 and not allow_negative:
                raise ValueError(f"Set {idx}: weight cannot be negative.")
        return items

    def _commit(self, snapshot: LedgerSnapshot) -> None:
        self.ledger_repo.save(snapshot)
        self._snapshot = snapshot

    def save_log(
        self, date: str, exercise_id: str, sets: Iterable[SetRecord]
    ) -> ExerciseLog:
        """Store ``sets`` as the log of ``exercise_id`` on ``date``.

        An existing log for the same date and exercise is replaced.
        """
        self.check_date(date)
        exercise = self.catalog.get(exercise_id)
        items = self.validate_sets(sets)
        log = ExerciseLog(
            date=date,
            exercise_id=exercise_id,
            day=exercise.day,
            exercise_name=exercise.name,
            sets=items,
        )
        with self._lock:
            snapshot = self._snapshot.model_copy(deep=True)
            snapshot.logs = [item for item in snapshot.logs if item.key != log.key]
            snapshot.logs.append(log)
            self._commit(snapshot)
        logger.info("Saved %d sets for %s on %s", len(items), exercise_id, date)
        self._notify(LEDGER_CHANGED)
        return log

    def delete_log(self, date: str, exercise_id: str) -> None:
        with self._lock:
            snapshot = self._snapshot.model_copy(deep=True)
            remaining = [log for log in snapshot.logs if log.key != (date, exercise_id)]
            if len(remaining) == len(snapshot.logs):
                raise KeyError(f"no log for {exercise_id} on {date}")
            snapshot.logs = remaining
            self._commit(snapshot)
        self._notify(LEDGER_CHANGED)

    def set_bodyweight(self, value: float) -> None:
        if value <= 0:
            raise ValueError("Bodyweight must be positive.")
        with self._lock:
            snapshot = self._snapshot.model_copy(deep=True)
            snapshot.bodyweight = float(value)
            self._commit(snapshot)
        self._notify(LEDGER_CHANGED)

    def stage_sets(self, date: str, exercise_id: str, sets: Iterable[SetRecord]) -> None:
        """Record an in-progress edit; it is saved once edits go quiet."""
        self.check_date(date)
        self.catalog.get(exercise_id)
        key = (date, exercise_id)
        with self._lock:
            self._working[key] = list(sets)
        self.debouncer.schedule(key, lambda: self._commit_working(key))

    def _commit_working(self, key: Tuple[str, str]) -> None:
        with self._lock:
            sets = self._working.pop(key, None)
        if sets is None:
            return
        completed = [s for s in sets if s.completed]
        if not completed:
            logger.debug("Skipping commit of %s without completed sets", key)
            return
        try:
            self.save_log(key[0], key[1], completed)
        except ValueError as exc:
            logger.warning("Discarded working sets for %s: %s", key, exc)

    def working_sets(self, date: str, exercise_id: str) -> List[SetRecord]:
        with self._lock:
            return list(self._working.get((date, exercise_id), []))

    def flush(self) -> None:
        """Commit every pending working-set edit immediately."""
        self.debouncer.flush()

    def discard_pending(self) -> None:
        self.debouncer.cancel()
        with self._lock:
            self._working.clear()

    def set_rest_override(self, exercise_id: str, seconds: int) -> int:
        self.catalog.get(exercise_id)
        value = RestOverrideRepository.clamp(seconds)
        with self._lock:
            overrides = {**self._overrides, exercise_id: value}
            self.overrides_repo.save(overrides)
            self._overrides = overrides
            self._overrides_changed_at = utc_timestamp()
        self._notify(OVERRIDES_CHANGED)
        return value

    def clear_rest_override(self, exercise_id: str) -> None:
        with self._lock:
            if exercise_id not in self._overrides:
                return
            overrides = {k: v for k, v in self._overrides.items() if k != exercise_id}
            self.overrides_repo.save(overrides)
            self._overrides = overrides
            self._overrides_changed_at = utc_timestamp()
        self._notify(OVERRIDES_CHANGED)

    def apply_remote(
        self,
        logs: Optional[List[ExerciseLog]],
        overrides: Optional[Dict[str, int]],
        since: str = "",
    ) -> None:
        """Replace local data with a pulled remote copy.

        Empty or ``None`` inputs leave the matching local data alone. Local
        logs written after ``since`` survive the replacement, as do rest
        overrides edited after ``since``.
        """
        with self._lock:
            if logs:
                fresh = {
                    log.key: log
                    for log in self._snapshot.logs
                    if since and log.updated_at > since
                }
                merged = [log for log in logs if log.key not in fresh]
                merged.extend(fresh.values())
                snapshot = self._snapshot.model_copy(deep=True)
                snapshot.logs = merged
                self._commit(snapshot)
                logger.info(
                    "Replaced local ledger with %d remote logs (%d kept local)",
                    len(logs),
                    len(fresh),
                )
            if overrides:
                if since and self._overrides_changed_at > since:
                    logger.info("Keeping rest overrides edited during pull")
                else:
                    clean = {k: RestOverrideRepository.clamp(v) for k, v in overrides.items()}
                    self.overrides_repo.save(clean)
                    self._overrides = clean

    def _require_sessions(self) -> Tuple[SessionRepository, SessionSetRepository]:
        if self.sessions is None or self.session_sets is None:
            raise RuntimeError("session ledger is not available")
        return self.sessions, self.session_sets

    def start_session(self, date: str, template_day: Optional[str] = None) -> Session:
        self.check_date(date)
        sessions, _ = self._require_sessions()
        return sessions.fetch(sessions.create(date, template_day))

    def list_sessions(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[Session]:
        sessions, _ = self._require_sessions()
        return sessions.fetch_all_sessions(start_date, end_date)

    def add_session_set(
        self,
        session_id: str,
        exercise_id: str,
        reps: int,
        weight: float,
        rir: int = 2,
        warmup: bool = False,
    ) -> SessionSet:
        sessions, sets = self._require_sessions()
        sessions.fetch(session_id)
        exercise = self.catalog.get(exercise_id)
        record = SetRecord(reps=reps, weight=weight, rir=rir, warmup=warmup)
        self.validate_sets([record], allow_negative=exercise.is_bodyweight)
        set_id = sets.add(session_id, exercise_id, reps, weight, rir, warmup)
        return next(s for s in sets.fetch_for_session(session_id) if s.id == set_id)

    def session_sets_for(self, session_id: str) -> List[SessionSet]:
        sessions, sets = self._require_sessions()
        sessions.fetch(session_id)
        return sets.fetch_for_session(session_id)

    def remove_session_set(self, set_id: int) -> None:
        _, sets = self._require_sessions()
        sets.remove(set_id)

    def delete_session(self, session_id: str) -> None:
        sessions, _ = self._require_sessions()
        sessions.delete(session_id)
