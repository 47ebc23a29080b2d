import requests
from typing import List, Optional


class TrainClient:
    """Simple REST client for the training log API."""

    def __init__(self, base_url: str = "http://localhost:3001", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def _get(self, path: str, **params):
        resp = self.session.get(f"{self.base_url}{path}", params=params or None)
        resp.raise_for_status()
        return resp.json()

    def _send(self, method: str, path: str, body: dict):
        resp = self.session.request(method, f"{self.base_url}{path}", json=body)
        resp.raise_for_status()
        return resp.json()

    def list_exercises(self, **filters: str) -> list:
        return self._get("/api/exercises", **filters)["exercises"]

    def create_exercise(self, name: str, exercise_type: str, category: Optional[str] = None, **targets) -> int:
        body = {"name": name, "type": exercise_type, "category": category, **targets}
        return self._send("POST", "/api/exercises", body)["id"]

    def delete_exercise(self, exercise_id: int) -> None:
        resp = self.session.delete(f"{self.base_url}/api/exercises/{exercise_id}")
        resp.raise_for_status()

    def log_session(
        self,
        exercise_id: int,
        session_date: str,
        sets_completed: List[int],
        weight: Optional[float] = None,
        completed: bool = False,
    ) -> dict:
        """Record a workout session; the response carries ``id`` and ``is_pr``."""
        body = {
            "exercise_id": exercise_id,
            "session_date": session_date,
            "sets_completed": sets_completed,
            "weight": weight,
            "completed": completed,
        }
        return self._send("POST", "/api/history", body)

    def history(self, exercise_id: int) -> list:
        return self._get(f"/api/history/{exercise_id}")["history"]

    def personal_record(self, exercise_id: int) -> Optional[dict]:
        return self._get(f"/api/history/{exercise_id}/pr")["pr"]

    def schedule(self, exercise_id: int, day_of_week: str, notes: Optional[str] = None) -> int:
        body = {"exercise_id": exercise_id, "day_of_week": day_of_week, "notes": notes}
        return self._send("POST", "/api/routines", body)["id"]

    def day(self, day_of_week: str) -> dict:
        return self._get(f"/api/routines/{day_of_week}")

    def reorder(self, day_of_week: str, routine_ids: List[int]) -> None:
        self._send(
            "POST",
            "/api/routines/reorder",
            {"day_of_week": day_of_week, "routine_ids": routine_ids},
        )

    def add_metric_entry(self, metric_type_id: int, entry_date: str, value: float) -> int:
        body = {"metric_type_id": metric_type_id, "entry_date": entry_date, "value": value}
        return self._send("POST", "/api/metric-entries", body)["id"]

    def dashboard(self, days: int = 30) -> list:
        return self._get("/api/metrics/dashboard", days=days)["metrics"]
