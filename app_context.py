import logging
from typing import Optional

from config import remote_credentials
from db import (
    ClientIdentityRepository,
    LedgerRepository,
    RestOverrideRepository,
    SessionRepository,
    SessionSetRepository,
    SettingsRepository,
)
from debounce import Debouncer
from exercise_catalog import ExerciseCatalog
from ledger_service import LedgerService
from remote_store import RemoteStore, RestRemoteStore
from sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class AppContext:
    """Everything one running ledger needs, built once and closed once."""

    def __init__(
        self,
        db_path: str = "ledger.db",
        yaml_path: str = "settings.yaml",
        *,
        remote: Optional[RemoteStore] = None,
        catalog: Optional[ExerciseCatalog] = None,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.catalog = catalog or ExerciseCatalog()
        self.client_id = ClientIdentityRepository(db_path).get_or_create()
        self.ledger_repo = LedgerRepository(
            db_path,
            self.catalog,
            default_bodyweight=self.settings.get_float("default_bodyweight", 80.0),
        )
        self.debouncer = Debouncer(self.settings.get_int("debounce_ms", 400) / 1000.0)
        self.service = LedgerService(
            self.ledger_repo,
            RestOverrideRepository(db_path),
            self.catalog,
            sessions=SessionRepository(db_path),
            session_sets=SessionSetRepository(db_path),
            debouncer=self.debouncer,
            rest_notifications=self.settings.get_bool("rest_notifications", True),
        )
        if remote is None:
            url, key = remote_credentials(self.settings.all_settings())
            remote = RestRemoteStore(url, key)
        self.remote = remote
        self.sync = SyncEngine(self.service, self.remote, self.client_id)
        self._closed = False

    def start(self):
        """Kick off the startup pull; returns its future when a remote is configured."""
        future = self.sync.start()
        if future is None:
            logger.info("Remote store not configured, running local only")
        return future

    def close(self) -> None:
        """Commit pending edits, let queued pushes finish, stop the worker."""
        if self._closed:
            return
        self._closed = True
        self.service.flush()
        self.sync.close(wait=True)

    def __enter__(self) -> "AppContext":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
