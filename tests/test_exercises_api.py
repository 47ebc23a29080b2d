import os
import sqlite3
import sys
import unittest

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import TrainAPI


class ExercisesAPITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_exercises.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.api = TrainAPI(db_path=self.db_path, static_dir=None)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _create(self, name: str, ex_type: str = "weight", **extra) -> int:
        response = self.client.post(
            "/api/exercises", json={"name": name, "type": ex_type, **extra}
        )
        self.assertEqual(response.status_code, 201)
        return response.json()["id"]

    def test_create_and_fetch(self) -> None:
        response = self.client.post(
            "/api/exercises",
            json={
                "name": "Squat",
                "type": "weight",
                "category": "Legs-Push",
                "target_sets": 3,
                "target_reps": 8,
                "target_weight": 60.0,
            },
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(
            response.json(), {"id": 1, "message": "Exercise created successfully"}
        )

        response = self.client.get("/api/exercises/1")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["name"], "Squat")
        self.assertEqual(data["category"], "Legs-Push")
        self.assertEqual(data["target_sets"], 3)
        self.assertEqual(data["target_weight"], 60.0)

    def test_list_filters_and_order(self) -> None:
        self._create("Squat", category="Legs-Push")
        self._create("Bench Press", category="Arms-Push")
        self._create("Run", "cardio")

        names = [e["name"] for e in self.client.get("/api/exercises").json()["exercises"]]
        self.assertEqual(names, ["Bench Press", "Run", "Squat"])

        resp = self.client.get("/api/exercises", params={"search": "ench"})
        self.assertEqual([e["name"] for e in resp.json()["exercises"]], ["Bench Press"])

        resp = self.client.get("/api/exercises", params={"type": "cardio"})
        self.assertEqual([e["name"] for e in resp.json()["exercises"]], ["Run"])

        resp = self.client.get("/api/exercises", params={"category": "Legs-Push"})
        self.assertEqual([e["name"] for e in resp.json()["exercises"]], ["Squat"])

    def test_validation_errors(self) -> None:
        response = self.client.post("/api/exercises", json={"type": "weight"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.text, "Name and type are required")

        response = self.client.post(
            "/api/exercises", json={"name": "Yoga", "type": "stretch"}
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/exercises",
            json={"name": "Squat", "type": "weight", "category": "Legs"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.text, "Invalid category")

    def test_malformed_body_is_bad_request(self) -> None:
        response = self.client.post(
            "/api/exercises",
            content="{not json",
            headers={"content-type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/exercises", json={"name": "Squat", "type": "weight", "target_sets": "many"}
        )
        self.assertEqual(response.status_code, 400)

    def test_duplicate_name_conflict(self) -> None:
        self._create("Squat")
        response = self.client.post(
            "/api/exercises", json={"name": "Squat", "type": "weight"}
        )
        self.assertEqual(response.status_code, 409)
        exercises = self.client.get("/api/exercises").json()["exercises"]
        self.assertEqual(len(exercises), 1)

    def test_invalid_and_unknown_ids(self) -> None:
        response = self.client.get("/api/exercises/abc")
        self.assertEqual(response.status_code, 400)

        response = self.client.get("/api/exercises/999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, "Exercise not found")

        response = self.client.put("/api/exercises/999", json={"name": "X"})
        self.assertEqual(response.status_code, 404)

        response = self.client.delete("/api/exercises/999")
        self.assertEqual(response.status_code, 404)

    def test_update(self) -> None:
        ex_id = self._create("Squat", category="Legs-Push")
        self._create("Deadlift")

        response = self.client.put(f"/api/exercises/{ex_id}", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.text, "No fields to update")

        response = self.client.put(f"/api/exercises/{ex_id}", json={"name": "Deadlift"})
        self.assertEqual(response.status_code, 409)

        response = self.client.put(
            f"/api/exercises/{ex_id}", json={"name": "Front Squat", "target_reps": 5}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Exercise updated successfully"})
        data = self.client.get(f"/api/exercises/{ex_id}").json()
        self.assertEqual(data["name"], "Front Squat")
        self.assertEqual(data["target_reps"], 5)
        self.assertEqual(data["category"], "Legs-Push")

        response = self.client.put(f"/api/exercises/{ex_id}", json={"category": ""})
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.client.get(f"/api/exercises/{ex_id}").json()["category"])

    def test_delete_cascades(self) -> None:
        ex_id = self._create("Squat")
        self.client.post(
            "/api/routines", json={"exercise_id": ex_id, "day_of_week": "Monday"}
        )
        self.client.post(
            "/api/history",
            json={
                "exercise_id": ex_id,
                "session_date": "2024-01-01",
                "sets_completed": [8, 8, 8],
                "weight": 60,
            },
        )

        response = self.client.delete(f"/api/exercises/{ex_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Exercise deleted successfully"})

        self.assertEqual(self.client.get("/api/routines/Monday").json()["exercises"], [])
        self.assertEqual(self.client.get(f"/api/history/{ex_id}").status_code, 404)
        conn = sqlite3.connect(self.db_path)
        count = conn.execute("SELECT COUNT(*) FROM history").fetchone()[0]
        conn.close()
        self.assertEqual(count, 0)

    def test_method_not_allowed_is_plain_text(self) -> None:
        response = self.client.patch("/api/exercises/1", json={})
        self.assertEqual(response.status_code, 405)
        self.assertTrue(response.headers["content-type"].startswith("text/plain"))

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
