import sqlite3
import json
import logging
import uuid
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from algorithms import MathTools
from config import YamlConfig
from exercise_catalog import ExerciseCatalog
from models import (
    ExerciseLog,
    LedgerSnapshot,
    Session,
    SessionSet,
    SetRecord,
    TemplateDay,
    TemplateExercise,
    utc_timestamp,
)
from settings_schema import validate_settings

logger = logging.getLogger(__name__)

REST_MIN_SECONDS = 10
REST_MAX_SECONDS = 999


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "state": (
            """CREATE TABLE state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT
                );""",
            ["key", "value", "updated_at"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "sessions": (
            """CREATE TABLE sessions (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    template_day TEXT,
                    created_at TEXT NOT NULL
                );""",
            ["id", "date", "template_day", "created_at"],
        ),
        "session_sets": (
            """CREATE TABLE session_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    rir INTEGER NOT NULL DEFAULT 2,
                    warmup INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "exercise_id",
                "reps",
                "weight",
                "rir",
                "warmup",
                "created_at",
            ],
        ),
    }

    def __init__(self, db_path: str = "ledger.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("Rebuilding table %s with columns %s", table, columns)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "rir":
                        return "2"
                    if col == "warmup":
                        return "0"
                    if col == "created_at":
                        return "''"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "weight_unit": "kg",
            "rest_notifications": "1",
            "debounce_ms": "400",
            "default_bodyweight": "80.0",
            "remote_url": "",
            "remote_key": "",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class StateRepository(BaseRepository):
    """Key/value blobs of locally persisted state."""

    def get(self, key: str) -> Optional[str]:
        rows = self.fetch_all("SELECT value FROM state WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    def put(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO state (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at;",
            (key, value, utc_timestamp()),
        )

    def delete(self, key: str) -> None:
        self.execute("DELETE FROM state WHERE key = ?;", (key,))

    def get_json(self, key: str):
        """Return the decoded blob under ``key`` or ``None`` when absent or unreadable."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed state blob %s", key)
            return None


class LedgerRepository(StateRepository):
    """Versioned persistence of the ledger snapshot.

    The current snapshot lives under ``ledger_v2``. A legacy ``ledger_v1``
    blob stores a single weight per exercise log; it is upgraded on load
    until a current snapshot exists and is never modified itself.
    """

    CURRENT_KEY = "ledger_v2"
    LEGACY_KEY = "ledger_v1"

    def __init__(
        self,
        db_path: str = "ledger.db",
        catalog: ExerciseCatalog | None = None,
        default_bodyweight: float = 80.0,
    ) -> None:
        super().__init__(db_path)
        self.catalog = catalog or ExerciseCatalog()
        self.default_bodyweight = default_bodyweight

    def default_snapshot(self) -> LedgerSnapshot:
        templates = [
            TemplateDay(
                day=day,
                exercises=[
                    TemplateExercise(exercise_id=e.id, prescription=e.prescription)
                    for e in self.catalog.by_day(day)
                ],
            )
            for day in self.catalog.days()
        ]
        return LedgerSnapshot(
            logs=[], bodyweight=self.default_bodyweight, templates=templates
        )

    def _load_current(self) -> Optional[LedgerSnapshot]:
        data = self.get_json(self.CURRENT_KEY)
        if data is None:
            return None
        try:
            return LedgerSnapshot.model_validate(data)
        except ValidationError:
            logger.warning("Current ledger snapshot failed validation")
            return None

    def load(self) -> LedgerSnapshot:
        current = self._load_current()
        if current is not None:
            return current
        migrated = self.migrate()
        if migrated is not None:
            return migrated
        return self.default_snapshot()

    def save(self, snapshot: LedgerSnapshot) -> None:
        self.put(self.CURRENT_KEY, snapshot.model_dump_json())

    def migrate(self) -> Optional[LedgerSnapshot]:
        """Upgrade a legacy blob into the current format.

        Returns the migrated snapshot, or ``None`` when there is nothing
        usable to migrate.
        """
        data = self.get_json(self.LEGACY_KEY)
        if not isinstance(data, list):
            return None
        try:
            logs = [self._migrate_entry(entry) for entry in data]
        except (KeyError, TypeError, ValueError):
            logger.warning("Legacy ledger blob could not be migrated")
            return None
        snapshot = self.default_snapshot()
        snapshot.logs = logs
        self.save(snapshot)
        logger.info("Migrated %d legacy ledger entries", len(logs))
        return snapshot

    @staticmethod
    def _migrate_entry(entry: dict) -> ExerciseLog:
        date = entry["date"]
        exercise_id = entry.get("exerciseId") or entry["exercise_id"]
        stamp = f"{date}T00:00:00+00:00"
        return ExerciseLog(
            date=date,
            exercise_id=exercise_id,
            day=entry.get("day") or "",
            exercise_name=entry.get("exerciseName") or entry.get("exercise_name") or "",
            sets=[SetRecord(reps=0, weight=float(entry["weight"]), created_at=stamp)],
            updated_at=stamp,
        )


class RestOverrideRepository(StateRepository):
    """Per-exercise rest duration overrides in seconds."""

    KEY = "rest_overrides"

    @staticmethod
    def clamp(seconds: int) -> int:
        return int(MathTools.clamp(int(seconds), REST_MIN_SECONDS, REST_MAX_SECONDS))

    def load(self) -> Dict[str, int]:
        data = self.get_json(self.KEY)
        if not isinstance(data, dict):
            return {}
        result: Dict[str, int] = {}
        for exercise_id, seconds in data.items():
            try:
                result[str(exercise_id)] = self.clamp(seconds)
            except (TypeError, ValueError):
                continue
        return result

    def save(self, overrides: Dict[str, int]) -> None:
        clean = {k: self.clamp(v) for k, v in overrides.items()}
        self.put(self.KEY, json.dumps(clean, sort_keys=True))


class ClientIdentityRepository(StateRepository):
    """Durable anonymous token identifying this installation."""

    KEY = "client_id"

    def get_or_create(self) -> str:
        existing = self.get(self.KEY)
        if existing:
            return existing
        token = str(uuid.uuid4())
        self.put(self.KEY, token)
        logger.info("Created client identity")
        return token


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    BOOL_KEYS = {"rest_notifications"}
    TEXT_KEYS = {"remote_url", "remote_key", "weight_unit"}

    def __init__(
        self, db_path: str = "ledger.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | bool] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            if k in self.TEXT_KEYS:
                result[k] = v
                continue
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                if value is None:
                    continue
                val = str(value)
                if key in self.BOOL_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def get_text(self, key: str, default: str) -> str:
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        data = {**self._raw_all_settings(), key: value}
        validate_settings(data)
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }


class SessionRepository(BaseRepository):
    """Repository for sessions of the continuous ledger."""

    def create(
        self, date: str, template_day: Optional[str] = None, session_id: Optional[str] = None
    ) -> str:
        sid = session_id or uuid.uuid4().hex
        self.execute(
            "INSERT INTO sessions (id, date, template_day, created_at) VALUES (?, ?, ?, ?);",
            (sid, date, template_day, utc_timestamp()),
        )
        return sid

    def fetch(self, session_id: str) -> Session:
        rows = self.fetch_all(
            "SELECT id, date, template_day, created_at FROM sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise KeyError(f"session not found: {session_id}")
        sid, date, day, created = rows[0]
        return Session(id=sid, date=date, template_day=day, created_at=created)

    def fetch_all_sessions(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[Session]:
        query = "SELECT id, date, template_day, created_at FROM sessions WHERE 1=1"
        params: list[str] = []
        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        query += " ORDER BY date, created_at;"
        return [
            Session(id=sid, date=date, template_day=day, created_at=created)
            for sid, date, day, created in self.fetch_all(query, tuple(params))
        ]

    def delete(self, session_id: str) -> None:
        rows = self.fetch_all("SELECT id FROM sessions WHERE id = ?;", (session_id,))
        if not rows:
            raise KeyError(f"session not found: {session_id}")
        self.execute("DELETE FROM sessions WHERE id = ?;", (session_id,))


class SessionSetRepository(BaseRepository):
    """Repository for sets recorded against a session."""

    _COLUMNS = "id, session_id, exercise_id, reps, weight, rir, warmup, created_at"

    @staticmethod
    def _row(row: Tuple) -> SessionSet:
        sid, session_id, exercise_id, reps, weight, rir, warmup, created = row
        return SessionSet(
            id=sid,
            session_id=session_id,
            exercise_id=exercise_id,
            reps=reps,
            weight=weight,
            rir=rir,
            warmup=bool(warmup),
            created_at=created,
        )

    def add(
        self,
        session_id: str,
        exercise_id: str,
        reps: int,
        weight: float,
        rir: int = 2,
        warmup: bool = False,
    ) -> int:
        return self.execute(
            "INSERT INTO session_sets (session_id, exercise_id, reps, weight, rir, warmup, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (session_id, exercise_id, reps, weight, rir, int(warmup), utc_timestamp()),
        )

    def remove(self, set_id: int) -> None:
        self.execute("DELETE FROM session_sets WHERE id = ?;", (set_id,))

    def fetch_for_session(self, session_id: str) -> List[SessionSet]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM session_sets WHERE session_id = ? ORDER BY id;",
            (session_id,),
        )
        return [self._row(r) for r in rows]

    def fetch_history(
        self, exercise_id: str, end_date: Optional[str] = None
    ) -> List[SessionSet]:
        """Return sets for ``exercise_id`` oldest first, optionally up to ``end_date``."""
        query = (
            "SELECT s.id, s.session_id, s.exercise_id, s.reps, s.weight, s.rir, s.warmup, s.created_at "
            "FROM session_sets s JOIN sessions w ON s.session_id = w.id "
            "WHERE s.exercise_id = ?"
        )
        params: list[str] = [exercise_id]
        if end_date:
            query += " AND w.date <= ?"
            params.append(end_date)
        query += " ORDER BY w.date, s.created_at, s.id;"
        return [self._row(r) for r in self.fetch_all(query, tuple(params))]
