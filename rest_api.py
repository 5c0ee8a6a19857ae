import os
from dataclasses import asdict
from typing import List, Optional

from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from algorithms import HistoricalLookup, ProgressionAdvisor
from app_context import AppContext
from ledger_stats import StatisticsService
from models import SetRecord
from remote_store import RemoteStore


class SetIn(BaseModel):
    reps: int
    weight: float = 0.0
    rir: int = 2
    warmup: bool = False

    def to_record(self) -> SetRecord:
        return SetRecord(reps=self.reps, weight=self.weight, rir=self.rir, warmup=self.warmup)


class LedgerAPI:
    """Provides REST endpoints for the training ledger."""

    SYNC_WAIT_SECONDS = 30.0

    def __init__(
        self,
        db_path: str = "ledger.db",
        yaml_path: str = "settings.yaml",
        *,
        remote: Optional[RemoteStore] = None,
        start_sync: bool = False,
    ) -> None:
        self.context = AppContext(db_path, yaml_path, remote=remote)
        self.service = self.context.service
        self.catalog = self.context.catalog
        self.sync = self.context.sync
        self.settings = self.context.settings
        self.app = FastAPI()
        self.setup_routes()
        if start_sync:
            self.context.start()

    def close(self) -> None:
        self.context.close()

    def _wait(self, future) -> bool:
        if future is None:
            return False
        return bool(future.result(timeout=self.SYNC_WAIT_SECONDS))

    def setup_routes(self) -> None:
        @self.app.exception_handler(KeyError)
        async def handle_missing(request: Request, exc: KeyError):
            detail = exc.args[0] if exc.args else "not found"
            return JSONResponse(status_code=404, content={"detail": str(detail)})

        @self.app.exception_handler(ValueError)
        async def handle_invalid(request: Request, exc: ValueError):
            return JSONResponse(status_code=400, content={"detail": str(exc)})

        @self.app.get("/health")
        def health():
            return {"status": "ok", "client_id": self.context.client_id}

        @self.app.get("/exercises")
        def list_exercises(day: Optional[str] = None):
            items = self.catalog.by_day(day) if day else self.catalog.all()
            return [asdict(e) for e in items]

        @self.app.get("/exercises/{exercise_id}")
        def get_exercise(exercise_id: str):
            return asdict(self.catalog.get(exercise_id))

        @self.app.get("/templates")
        def list_templates():
            return [t.model_dump() for t in self.service.snapshot.templates]

        @self.app.get("/logs")
        def list_logs(exercise_id: Optional[str] = None):
            return [log.model_dump() for log in self.service.logs(exercise_id)]

        @self.app.put("/logs/{date}/{exercise_id}")
        def save_log(date: str, exercise_id: str, sets: List[SetIn] = Body(...)):
            log = self.service.save_log(date, exercise_id, [s.to_record() for s in sets])
            return log.model_dump()

        @self.app.delete("/logs/{date}/{exercise_id}")
        def delete_log(date: str, exercise_id: str):
            self.service.delete_log(date, exercise_id)
            return {"status": "deleted"}

        @self.app.post("/logs/{date}/{exercise_id}/stage")
        def stage_sets(date: str, exercise_id: str, sets: List[SetIn] = Body(...)):
            self.service.stage_sets(date, exercise_id, [s.to_record() for s in sets])
            return {"status": "staged"}

        @self.app.post("/logs/flush")
        def flush_staged():
            self.service.flush()
            return {"status": "flushed"}

        @self.app.get("/exercises/{exercise_id}/latest")
        def latest_log(exercise_id: str, on_or_before: Optional[str] = None):
            self.catalog.get(exercise_id)
            log = self.service.latest_log(exercise_id, on_or_before)
            return log.model_dump() if log else None

        @self.app.get("/exercises/{exercise_id}/prior_week")
        def prior_week(exercise_id: str, date: str):
            self.catalog.get(exercise_id)
            log = self.service.prior_week(exercise_id, date)
            return {
                "cutoff": HistoricalLookup.shift_date(date, -HistoricalLookup.PRIOR_WEEK_DAYS),
                "log": log.model_dump() if log else None,
            }

        @self.app.get("/exercises/{exercise_id}/advice")
        def advice(exercise_id: str, on_or_before: Optional[str] = None):
            return self.service.advise(exercise_id, on_or_before).model_dump()

        @self.app.get("/exercises/{exercise_id}/warmup")
        def warmup(exercise_id: str, weight: float, reps: int, sets: int = 3):
            self.catalog.get(exercise_id)
            return [
                s.model_dump(exclude={"created_at"})
                for s in ProgressionAdvisor.warmup_sets(weight, reps, sets)
            ]

        @self.app.get("/exercises/{exercise_id}/stats")
        def exercise_stats(exercise_id: str):
            exercise = self.catalog.get(exercise_id)
            snapshot = self.service.snapshot
            return StatisticsService.exercise_summary(
                exercise, snapshot.logs, snapshot.bodyweight
            )

        @self.app.get("/exercises/{exercise_id}/week_over_week")
        def week_over_week(exercise_id: str, date: str):
            exercise = self.catalog.get(exercise_id)
            snapshot = self.service.snapshot
            self.service.check_date(date)
            return StatisticsService.week_over_week(
                exercise, snapshot.logs, date, snapshot.bodyweight
            )

        @self.app.get("/prescriptions/parse")
        def parse_prescription(text: str = ""):
            return ProgressionAdvisor.parse_prescription(text).model_dump()

        @self.app.get("/rest")
        def list_rest_overrides():
            return self.service.overrides

        @self.app.put("/rest/{exercise_id}")
        def set_rest_override(exercise_id: str, seconds: int):
            return {"seconds": self.service.set_rest_override(exercise_id, seconds)}

        @self.app.delete("/rest/{exercise_id}")
        def clear_rest_override(exercise_id: str):
            self.service.clear_rest_override(exercise_id)
            return {"seconds": self.service.rest_seconds(exercise_id)}

        @self.app.get("/rest/{exercise_id}/timer")
        def rest_timer(exercise_id: str):
            return self.service.rest_timer_request(exercise_id).model_dump()

        @self.app.get("/bodyweight")
        def get_bodyweight():
            return {"bodyweight": self.service.snapshot.bodyweight}

        @self.app.put("/bodyweight")
        def set_bodyweight(value: float):
            self.service.set_bodyweight(value)
            return {"bodyweight": value}

        @self.app.post("/sessions")
        def create_session(date: str, template_day: Optional[str] = None):
            return self.service.start_session(date, template_day).model_dump()

        @self.app.get("/sessions")
        def list_sessions(start_date: Optional[str] = None, end_date: Optional[str] = None):
            return [s.model_dump() for s in self.service.list_sessions(start_date, end_date)]

        @self.app.delete("/sessions/{session_id}")
        def delete_session(session_id: str):
            self.service.delete_session(session_id)
            return {"status": "deleted"}

        @self.app.get("/sessions/{session_id}/sets")
        def list_session_sets(session_id: str):
            return [s.model_dump() for s in self.service.session_sets_for(session_id)]

        @self.app.post("/sessions/{session_id}/sets")
        def add_session_set(
            session_id: str,
            exercise_id: str,
            reps: int,
            weight: float = 0.0,
            rir: int = 2,
            warmup: bool = False,
        ):
            item = self.service.add_session_set(
                session_id, exercise_id, reps, weight, rir, warmup
            )
            return item.model_dump()

        @self.app.delete("/sets/{set_id}")
        def remove_session_set(set_id: int):
            self.service.remove_session_set(set_id)
            return {"status": "deleted"}

        @self.app.get("/sync/status")
        def sync_status():
            status = self.sync.status
            return {
                "state": status.state,
                "message": status.message,
                "updated_at": status.updated_at,
                "configured": self.context.remote.is_configured(),
            }

        @self.app.get("/sync/ping")
        def sync_ping():
            reachable, message = self.sync.check_remote()
            return {
                "configured": self.context.remote.is_configured(),
                "reachable": reachable,
                "message": message,
            }

        @self.app.post("/sync/pull")
        def sync_pull():
            ok = self._wait(self.sync.pull())
            return {"ok": ok, "state": self.sync.status.state, "message": self.sync.status.message}

        @self.app.post("/sync/push")
        def sync_push():
            ok = self._wait(self.sync.push_logs())
            return {"ok": ok, "state": self.sync.status.state, "message": self.sync.status.message}


api = LedgerAPI(
    db_path=os.environ.get("LEDGER_DB", "ledger.db"),
    start_sync=os.environ.get("LEDGER_AUTOSYNC") == "1",
)
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
