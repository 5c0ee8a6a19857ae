import os
import sys
import unittest
from unittest import mock

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import LedgerClient
from remote_store import MemoryRemoteStore
from rest_api import LedgerAPI


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_client.db"
        self.yaml_path = "test_client.yaml"
        self.api = LedgerAPI(
            db_path=self.db_path,
            yaml_path=self.yaml_path,
            remote=MemoryRemoteStore(configured=False),
        )
        self.transport = TestClient(self.api.app)
        self.client = LedgerClient(base_url="http://testserver")

    def tearDown(self) -> None:
        self.api.close()
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_round_trip_through_api(self) -> None:
        with mock.patch("client.requests", self.transport):
            log = self.client.save_log(
                "2024-01-01", "bench_press", [{"reps": 8, "weight": 60, "rir": 3}]
            )
            self.assertEqual(log["exercise_id"], "bench_press")
            self.assertEqual(len(self.client.list_logs("bench_press")), 1)
            self.assertEqual(self.client.latest("bench_press", "2024-01-05")["date"], "2024-01-01")
            self.assertEqual(self.client.advice("bench_press")["weight"], 62.5)
            self.assertEqual(self.client.set_rest("bench_press", 2000), 999)


if __name__ == "__main__":
    unittest.main()
