import requests
from typing import List, Optional


class LedgerClient:
    """Simple REST client for the ledger API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def save_log(self, date: str, exercise_id: str, sets: List[dict]) -> dict:
        resp = requests.put(f"{self.base_url}/logs/{date}/{exercise_id}", json=sets)
        resp.raise_for_status()
        return resp.json()

    def list_logs(self, exercise_id: Optional[str] = None) -> List[dict]:
        params = {"exercise_id": exercise_id} if exercise_id else {}
        resp = requests.get(f"{self.base_url}/logs", params=params)
        resp.raise_for_status()
        return resp.json()

    def latest(self, exercise_id: str, on_or_before: Optional[str] = None) -> Optional[dict]:
        params = {"on_or_before": on_or_before} if on_or_before else {}
        resp = requests.get(f"{self.base_url}/exercises/{exercise_id}/latest", params=params)
        resp.raise_for_status()
        return resp.json()

    def advice(self, exercise_id: str) -> dict:
        resp = requests.get(f"{self.base_url}/exercises/{exercise_id}/advice")
        resp.raise_for_status()
        return resp.json()

    def set_rest(self, exercise_id: str, seconds: int) -> int:
        resp = requests.put(f"{self.base_url}/rest/{exercise_id}", params={"seconds": seconds})
        resp.raise_for_status()
        return resp.json()["seconds"]
