import functools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import requests

from ledger_service import LEDGER_CHANGED, OVERRIDES_CHANGED, LedgerService
from models import utc_timestamp
from remote_store import RemoteStore, RemoteStoreError, log_to_row, row_to_log

logger = logging.getLogger(__name__)

IDLE = "idle"
SYNCING = "syncing"
SYNCED = "synced"
ERROR = "error"


@dataclass(frozen=True)
class SyncStatus:
    state: str = IDLE
    message: Optional[str] = None
    updated_at: str = field(default_factory=utc_timestamp)


class SyncEngine:
    """Mirror the local ledger to a remote store.

    Remote work runs on one background worker so pulls and pushes never
    overlap. Each pull remembers the generation and the time it was
    queued; :meth:`cancel` bumps the generation so results of older pulls
    are dropped instead of applied, and local edits made after a pull was
    queued survive its replacement. Pushes are never cancelled: they send
    the local state as it is when they run.

    Rest overrides are mirrored by deleting every remote row for the
    client and inserting the current set. A failure between the two
    steps leaves the remote empty; the overrides stay marked dirty and
    are pushed again after the next successful remote call.
    """

    def __init__(
        self,
        service: LedgerService,
        remote: RemoteStore,
        client_id: str,
        *,
        auto_push: bool = True,
    ) -> None:
        self.service = service
        self.remote = remote
        self.client_id = client_id
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledger-sync")
        self._lock = threading.Lock()
        self._generation = 0
        self._pulled = False
        self._closed = False
        self._overrides_dirty = False
        self._status = SyncStatus()
        self._status_listeners: List[Callable[[SyncStatus], None]] = []
        if auto_push:
            service.add_listener(self._on_local_change)

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return self._status

    def add_status_listener(self, callback: Callable[[SyncStatus], None]) -> None:
        self._status_listeners.append(callback)

    def _set_status(self, state: str, message: Optional[str] = None) -> None:
        status = SyncStatus(state=state, message=message)
        with self._lock:
            self._status = status
        for callback in list(self._status_listeners):
            callback(status)

    @property
    def overrides_dirty(self) -> bool:
        return self._overrides_dirty

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def cancel(self) -> None:
        """Discard the results of every pull queued so far."""
        with self._lock:
            self._generation += 1
            generation = self._generation
        logger.debug("Sync generation bumped to %d", generation)

    def close(self, wait: bool = True) -> None:
        """Stop accepting jobs; queued jobs finish when ``wait`` is true."""
        with self._lock:
            self._closed = True
        if not wait:
            self.cancel()
        self._executor.shutdown(wait=wait)

    def start(self) -> Optional[Future]:
        """Run the startup pull once per engine lifetime."""
        with self._lock:
            if self._pulled:
                return None
            self._pulled = True
        return self.pull()

    def pull(self) -> Optional[Future]:
        since = utc_timestamp()
        return self._submit(functools.partial(self._pull, since), "pull", cancellable=True)

    def push_logs(self) -> Optional[Future]:
        return self._submit(self._push_logs, "push logs")

    def push_overrides(self) -> Optional[Future]:
        self._overrides_dirty = True
        return self._submit(self._push_overrides, "push overrides")

    def check_remote(self) -> Tuple[bool, Optional[str]]:
        """Probe the remote directly; return ``(reachable, error message)``."""
        if not self.remote.is_configured():
            return False, "remote store is not configured"
        try:
            self.remote.ping(self.client_id)
        except (RemoteStoreError, requests.RequestException) as exc:
            logger.warning("Remote ping failed: %s", exc)
            return False, str(exc)
        return True, None

    def _on_local_change(self, kind: str) -> None:
        if kind == LEDGER_CHANGED:
            self.push_logs()
        elif kind == OVERRIDES_CHANGED:
            self.push_overrides()

    def _submit(
        self, job: Callable[[Optional[int]], None], name: str, cancellable: bool = False
    ) -> Optional[Future]:
        # Only pulls carry a generation; pushes always run.
        if not self.remote.is_configured():
            return None
        with self._lock:
            if self._closed:
                return None
            generation = self._generation if cancellable else None
            return self._executor.submit(self._run, job, generation, name)

    def _is_stale(self, generation: Optional[int]) -> bool:
        return generation is not None and not self._is_current(generation)

    def _run(
        self, job: Callable[[Optional[int]], None], generation: Optional[int], name: str
    ) -> bool:
        if self._is_stale(generation):
            logger.info("Skipping stale %s", name)
            return False
        if not self.remote.is_configured():
            return False
        self._set_status(SYNCING)
        try:
            job(generation)
        except (RemoteStoreError, requests.RequestException) as exc:
            logger.warning("Remote %s failed: %s", name, exc)
            if self._is_stale(generation):
                self._set_status(IDLE)
            else:
                self._set_status(ERROR, str(exc))
            return False
        if self._is_stale(generation):
            logger.info("Discarded result of cancelled %s", name)
            self._set_status(IDLE)
            return False
        self._set_status(SYNCED)
        return True

    def _pull(self, since: str, generation: Optional[int]) -> None:
        rows = self.remote.select_logs(self.client_id)
        override_rows = self.remote.select_overrides(self.client_id)
        logs = [row_to_log(row) for row in rows]
        overrides = {}
        for row in override_rows:
            try:
                overrides[str(row["exercise_id"])] = int(row["seconds"])
            except (KeyError, TypeError, ValueError) as exc:
                raise RemoteStoreError(f"malformed remote override row: {exc}") from exc
        if self._is_stale(generation):
            return
        if self._overrides_dirty:
            overrides = {}
        self.service.apply_remote(logs, overrides, since)
        logger.info("Pulled %d logs and %d overrides", len(logs), len(overrides))
        if self._overrides_dirty:
            self._push_overrides()

    def _push_logs(self, generation: Optional[int] = None) -> None:
        rows = [log_to_row(self.client_id, log) for log in self.service.snapshot.logs]
        if rows:
            self.remote.upsert_logs(rows)
            logger.info("Pushed %d ledger rows", len(rows))
        if self._overrides_dirty:
            self._push_overrides()

    def _push_overrides(self, generation: Optional[int] = None) -> None:
        self._overrides_dirty = True
        rows = [
            {"client_id": self.client_id, "exercise_id": exercise_id, "seconds": seconds}
            for exercise_id, seconds in sorted(self.service.overrides.items())
        ]
        self.remote.delete_overrides(self.client_id)
        self.remote.insert_overrides(rows)
        self._overrides_dirty = False
        logger.info("Pushed %d rest overrides", len(rows))
