import json
import logging
from typing import Dict, List, Optional, Tuple

import requests

from models import ExerciseLog, SetRecord

logger = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """Raised when the remote store rejects or fails a request."""


def log_to_row(client_id: str, log: ExerciseLog) -> dict:
    """Return the remote ledger row for ``log``."""
    return {
        "client_id": client_id,
        "date": log.date,
        "exercise_id": log.exercise_id,
        "day": log.day,
        "exercise_name": log.exercise_name,
        "sets": [s.model_dump() for s in log.sets],
        "updated_at": log.updated_at,
    }


def row_to_log(row: dict) -> ExerciseLog:
    """Build an :class:`ExerciseLog` from a remote ledger row."""
    if not isinstance(row, dict):
        raise RemoteStoreError(f"malformed remote ledger row: {row!r}")
    try:
        sets = row.get("sets") or []
        if isinstance(sets, str):
            sets = json.loads(sets)
        data = {
            "date": row["date"],
            "exercise_id": row["exercise_id"],
            "day": row.get("day") or "",
            "exercise_name": row.get("exercise_name") or "",
            "sets": [SetRecord.model_validate(s) for s in sets],
        }
        if row.get("updated_at"):
            data["updated_at"] = str(row["updated_at"])
        return ExerciseLog(**data)
    except (KeyError, TypeError, ValueError) as exc:
        raise RemoteStoreError(f"malformed remote ledger row: {exc}") from exc


class RemoteStore:
    """Interface of the remote mirror consumed by the sync engine."""

    def is_configured(self) -> bool:
        raise NotImplementedError

    def ping(self, client_id: str) -> None:
        """Raise :class:`RemoteStoreError` unless the store answers a read."""
        raise NotImplementedError

    def select_logs(self, client_id: str) -> List[dict]:
        raise NotImplementedError

    def upsert_logs(self, rows: List[dict]) -> None:
        raise NotImplementedError

    def select_overrides(self, client_id: str) -> List[dict]:
        raise NotImplementedError

    def delete_overrides(self, client_id: str) -> None:
        raise NotImplementedError

    def insert_overrides(self, rows: List[dict]) -> None:
        raise NotImplementedError


class RestRemoteStore(RemoteStore):
    """PostgREST style HTTP remote with ``ledger_rows`` and ``rest_overrides`` tables."""

    LOGS_TABLE = "ledger_rows"
    OVERRIDES_TABLE = "rest_overrides"
    LOGS_CONFLICT = "client_id,date,exercise_id"

    def __init__(
        self,
        url: str = "",
        key: str = "",
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = (url or "").rstrip("/")
        self.key = key or ""
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.url and self.key)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        payload=None,
        prefer: Optional[str] = None,
    ):
        if not self.is_configured():
            raise RemoteStoreError("remote store is not configured")
        endpoint = f"{self.url}/rest/v1/{table}"
        try:
            resp = self.session.request(
                method,
                endpoint,
                params=params,
                json=payload,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise RemoteStoreError(f"{method} {table} failed: {exc}") from exc
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteStoreError(f"{method} {table} returned invalid JSON") from exc

    @staticmethod
    def _rows(data, table: str) -> List[dict]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteStoreError(f"GET {table} returned {type(data).__name__}, expected rows")
        return data

    def ping(self, client_id: str) -> None:
        data = self._request(
            "GET",
            self.LOGS_TABLE,
            params={"client_id": f"eq.{client_id}", "select": "date", "limit": "1"},
        )
        self._rows(data, self.LOGS_TABLE)

    def select_logs(self, client_id: str) -> List[dict]:
        data = self._request(
            "GET",
            self.LOGS_TABLE,
            params={"client_id": f"eq.{client_id}", "select": "*", "order": "date.asc"},
        )
        return self._rows(data, self.LOGS_TABLE)

    def upsert_logs(self, rows: List[dict]) -> None:
        if not rows:
            return
        self._request(
            "POST",
            self.LOGS_TABLE,
            params={"on_conflict": self.LOGS_CONFLICT},
            payload=rows,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def select_overrides(self, client_id: str) -> List[dict]:
        data = self._request(
            "GET",
            self.OVERRIDES_TABLE,
            params={"client_id": f"eq.{client_id}", "select": "*"},
        )
        return self._rows(data, self.OVERRIDES_TABLE)

    def delete_overrides(self, client_id: str) -> None:
        self._request(
            "DELETE",
            self.OVERRIDES_TABLE,
            params={"client_id": f"eq.{client_id}"},
        )

    def insert_overrides(self, rows: List[dict]) -> None:
        if not rows:
            return
        self._request(
            "POST",
            self.OVERRIDES_TABLE,
            payload=rows,
            prefer="return=minimal",
        )


class MemoryRemoteStore(RemoteStore):
    """In-process remote store used for demos and tests.

    ``fail_on`` names operations that should raise :class:`RemoteStoreError`.
    """

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.logs: Dict[Tuple[str, str, str], dict] = {}
        self.overrides: Dict[Tuple[str, str], dict] = {}
        self.fail_on: set[str] = set()
        self.calls: List[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise RemoteStoreError(f"{op} failed")

    def is_configured(self) -> bool:
        return self.configured

    def ping(self, client_id: str) -> None:
        self._check("ping")

    def select_logs(self, client_id: str) -> List[dict]:
        self._check("select_logs")
        rows = [dict(r) for k, r in self.logs.items() if k[0] == client_id]
        return sorted(rows, key=lambda r: r["date"])

    def upsert_logs(self, rows: List[dict]) -> None:
        self._check("upsert_logs")
        for row in rows:
            self.logs[(row["client_id"], row["date"], row["exercise_id"])] = dict(row)

    def select_overrides(self, client_id: str) -> List[dict]:
        self._check("select_overrides")
        return [dict(r) for k, r in self.overrides.items() if k[0] == client_id]

    def delete_overrides(self, client_id: str) -> None:
        self._check("delete_overrides")
        for key in [k for k in self.overrides if k[0] == client_id]:
            del self.overrides[key]

    def insert_overrides(self, rows: List[dict]) -> None:
        self._check("insert_overrides")
        for row in rows:
            self.overrides[(row["client_id"], row["exercise_id"])] = dict(row)
