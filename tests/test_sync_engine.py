import os
import sys
import threading
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import LedgerRepository, RestOverrideRepository
from debounce import Debouncer
from exercise_catalog import ExerciseCatalog
from ledger_service import LedgerService
from models import ExerciseLog, SetRecord
from remote_store import MemoryRemoteStore, log_to_row
from sync_engine import ERROR, IDLE, SYNCED, SYNCING, SyncEngine

CLIENT = "client-1"


class BlockingRemote(MemoryRemoteStore):
    """Remote whose log select waits until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def select_logs(self, client_id):
        self.entered.set()
        self.release.wait(5)
        return super().select_logs(client_id)


class BlockingPushRemote(MemoryRemoteStore):
    """Remote whose first log upsert waits until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def upsert_logs(self, rows):
        if not self.entered.is_set():
            self.entered.set()
            self.release.wait(5)
        super().upsert_logs(rows)


class GarbageRemote(MemoryRemoteStore):
    """Remote that answers log selects with something other than rows."""

    def select_logs(self, client_id):
        self._check("select_logs")
        return ["permission denied"]


class SyncEngineTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_sync.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.catalog = ExerciseCatalog()
        self.service = LedgerService(
            LedgerRepository(self.db_path, self.catalog),
            RestOverrideRepository(self.db_path),
            self.catalog,
            debouncer=Debouncer(0.05),
        )
        self.engines = []

    def tearDown(self) -> None:
        for engine in self.engines:
            engine.close()
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def make_engine(self, remote, auto_push=False) -> SyncEngine:
        engine = SyncEngine(self.service, remote, CLIENT, auto_push=auto_push)
        self.engines.append(engine)
        return engine

    def seed_remote(self, remote, count: int) -> None:
        rows = [
            log_to_row(
                CLIENT,
                ExerciseLog(
                    date=f"2024-02-0{i + 1}",
                    exercise_id="back_squat",
                    sets=[SetRecord(reps=5, weight=100.0 + i)],
                ),
            )
            for i in range(count)
        ]
        remote.upsert_logs(rows)

    def save_two_local(self) -> None:
        self.service.save_log("2024-01-01", "bench_press", [SetRecord(reps=5, weight=60.0)])
        self.service.save_log("2024-01-02", "dips", [SetRecord(reps=8, weight=0.0)])

    def test_pull_replaces_local_with_remote(self) -> None:
        remote = MemoryRemoteStore()
        self.seed_remote(remote, 5)
        engine = self.make_engine(remote)
        self.save_two_local()
        self.assertTrue(engine.pull().result(5))
        logs = self.service.logs()
        self.assertEqual(len(logs), 5)
        self.assertEqual({l.exercise_id for l in logs}, {"back_squat"})
        self.assertEqual(len(self.service.ledger_repo.load().logs), 5)
        self.assertEqual(engine.status.state, SYNCED)

    def test_empty_remote_keeps_local(self) -> None:
        engine = self.make_engine(MemoryRemoteStore())
        self.save_two_local()
        self.assertTrue(engine.pull().result(5))
        self.assertEqual(len(self.service.logs()), 2)

    def test_pull_only_sees_own_client_rows(self) -> None:
        remote = MemoryRemoteStore()
        remote.upsert_logs(
            [log_to_row("someone-else", ExerciseLog(date="2024-01-05", exercise_id="dips"))]
        )
        engine = self.make_engine(remote)
        self.save_two_local()
        engine.pull().result(5)
        self.assertEqual(len(self.service.logs()), 2)

    def test_pull_error_leaves_local_and_reports(self) -> None:
        remote = MemoryRemoteStore()
        self.seed_remote(remote, 3)
        remote.fail_on.add("select_logs")
        engine = self.make_engine(remote)
        self.save_two_local()
        self.assertFalse(engine.pull().result(5))
        self.assertEqual(len(self.service.logs()), 2)
        self.assertEqual(engine.status.state, ERROR)
        self.assertIn("select_logs failed", engine.status.message)

    def test_push_upserts_full_snapshot(self) -> None:
        remote = MemoryRemoteStore()
        engine = self.make_engine(remote)
        self.save_two_local()
        self.assertTrue(engine.push_logs().result(5))
        self.assertEqual(len(remote.logs), 2)
        self.service.save_log("2024-01-01", "bench_press", [SetRecord(reps=3, weight=70.0)])
        engine.push_logs().result(5)
        self.assertEqual(len(remote.logs), 2)
        row = remote.logs[(CLIENT, "2024-01-01", "bench_press")]
        self.assertEqual(row["sets"][0]["weight"], 70.0)
        self.assertEqual(row["exercise_name"], "Bench Press")
        self.assertEqual(row["day"], "Push")

    def test_local_changes_push_automatically(self) -> None:
        remote = MemoryRemoteStore()
        engine = self.make_engine(remote, auto_push=True)
        self.save_two_local()
        engine.close()
        self.assertEqual(len(remote.logs), 2)
        self.assertIn("upsert_logs", remote.calls)

    def test_not_configured_stays_idle(self) -> None:
        remote = MemoryRemoteStore(configured=False)
        engine = self.make_engine(remote, auto_push=True)
        self.save_two_local()
        self.assertIsNone(engine.pull())
        self.assertIsNone(engine.push_logs())
        self.assertEqual(engine.status.state, IDLE)
        self.assertEqual(remote.calls, [])

    def test_startup_pull_runs_once(self) -> None:
        engine = self.make_engine(MemoryRemoteStore())
        first = engine.start()
        self.assertIsNotNone(first)
        first.result(5)
        self.assertIsNone(engine.start())

    def test_status_transitions(self) -> None:
        engine = self.make_engine(MemoryRemoteStore())
        states = []
        engine.add_status_listener(lambda status: states.append(status.state))
        engine.pull().result(5)
        self.assertEqual(states, [SYNCING, SYNCED])

    def test_cancelled_pull_is_not_applied(self) -> None:
        remote = BlockingRemote()
        self.seed_remote(remote, 4)
        engine = self.make_engine(remote)
        self.save_two_local()
        future = engine.pull()
        self.assertTrue(remote.entered.wait(5))
        engine.cancel()
        remote.release.set()
        self.assertFalse(future.result(5))
        self.assertEqual(len(self.service.logs()), 2)
        self.assertEqual(engine.status.state, IDLE)

    def test_cancelled_failing_pull_does_not_report(self) -> None:
        remote = BlockingRemote()
        remote.fail_on.add("select_overrides")
        engine = self.make_engine(remote)
        future = engine.pull()
        self.assertTrue(remote.entered.wait(5))
        engine.cancel()
        remote.release.set()
        self.assertFalse(future.result(5))
        self.assertEqual(engine.status.state, IDLE)

    def test_cancel_does_not_drop_queued_pushes(self) -> None:
        remote = BlockingRemote()
        engine = self.make_engine(remote, auto_push=True)
        future = engine.pull()
        self.assertTrue(remote.entered.wait(5))
        self.service.save_log("2024-01-02", "dips", [SetRecord(reps=8, weight=0.0)])
        engine.cancel()
        remote.release.set()
        self.assertFalse(future.result(5))
        engine.close()
        self.assertIn((CLIENT, "2024-01-02", "dips"), remote.logs)

    def test_edit_queued_behind_pull_survives(self) -> None:
        remote = BlockingPushRemote()
        engine = self.make_engine(remote)
        self.service.save_log("2024-01-01", "bench_press", [SetRecord(reps=5, weight=60.0)])
        first_push = engine.push_logs()
        self.assertTrue(remote.entered.wait(5))
        pull = engine.pull()
        self.service.save_log("2024-01-02", "dips", [SetRecord(reps=8, weight=0.0)])
        second_push = engine.push_logs()
        remote.release.set()
        self.assertTrue(first_push.result(5))
        self.assertTrue(pull.result(5))
        self.assertTrue(second_push.result(5))
        keys = [(log.date, log.exercise_id) for log in self.service.logs()]
        self.assertEqual(keys, [("2024-01-01", "bench_press"), ("2024-01-02", "dips")])
        self.assertEqual(
            sorted(remote.logs),
            [(CLIENT, "2024-01-01", "bench_press"), (CLIENT, "2024-01-02", "dips")],
        )

    def test_malformed_remote_rows_report_error(self) -> None:
        engine = self.make_engine(GarbageRemote())
        self.save_two_local()
        self.assertFalse(engine.pull().result(5))
        self.assertEqual(engine.status.state, ERROR)
        self.assertIn("malformed", engine.status.message)
        self.assertEqual(len(self.service.logs()), 2)

    def test_check_remote(self) -> None:
        remote = MemoryRemoteStore()
        engine = self.make_engine(remote)
        self.assertEqual(engine.check_remote(), (True, None))
        remote.fail_on.add("ping")
        reachable, message = engine.check_remote()
        self.assertFalse(reachable)
        self.assertIn("ping failed", message)
        unconfigured = self.make_engine(MemoryRemoteStore(configured=False))
        self.assertFalse(unconfigured.check_remote()[0])

    def test_override_push_reconciles_after_failure(self) -> None:
        remote = MemoryRemoteStore()
        engine = self.make_engine(remote)
        self.service.set_rest_override("bench_press", 200)
        remote.overrides[(CLIENT, "dips")] = {"client_id": CLIENT, "exercise_id": "dips", "seconds": 60}
        remote.fail_on.add("insert_overrides")
        self.assertFalse(engine.push_overrides().result(5))
        self.assertEqual(remote.overrides, {})
        self.assertTrue(engine.overrides_dirty)
        self.assertEqual(self.service.overrides, {"bench_press": 200})

        remote.fail_on.clear()
        self.assertTrue(engine.push_logs().result(5))
        self.assertFalse(engine.overrides_dirty)
        self.assertEqual(remote.overrides[(CLIENT, "bench_press")]["seconds"], 200)

    def test_pull_replaces_overrides_independently(self) -> None:
        remote = MemoryRemoteStore()
        remote.insert_overrides(
            [{"client_id": CLIENT, "exercise_id": "dips", "seconds": 75}]
        )
        engine = self.make_engine(remote)
        self.save_two_local()
        self.service.set_rest_override("bench_press", 200)
        self.assertTrue(engine.pull().result(5))
        self.assertEqual(self.service.overrides, {"dips": 75})
        self.assertEqual(len(self.service.logs()), 2)


if __name__ == "__main__":
    unittest.main()
