import os
import sys
import unittest

import httpx
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import TrainClient
from rest_api import TrainAPI


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_client.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.api = TrainAPI(db_path=self.db_path, static_dir=None)
        self.client = TrainClient(
            base_url="http://testserver", session=TestClient(self.api.app)
        )

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_exercise_and_history(self) -> None:
        ex_id = self.client.create_exercise("Squat", "weight", "Legs-Push", target_sets=3)
        self.assertEqual([e["name"] for e in self.client.list_exercises(type="weight")], ["Squat"])
        self.assertTrue(self.client.log_session(ex_id, "2024-01-01", [8, 8, 8], 60)["is_pr"])
        self.assertFalse(self.client.log_session(ex_id, "2024-01-08", [8, 8], 55)["is_pr"])
        self.assertEqual(self.client.personal_record(ex_id)["date"], "2024-01-01")
        self.assertEqual(len(self.client.history(ex_id)), 2)

        with self.assertRaises(httpx.HTTPStatusError):
            self.client.create_exercise("Squat", "weight")

        self.client.delete_exercise(ex_id)
        self.assertEqual(self.client.list_exercises(), [])

    def test_routines_and_metrics(self) -> None:
        first = self.client.create_exercise("Plank", "bodyweight")
        second = self.client.create_exercise("Crunch", "bodyweight")
        r1 = self.client.schedule(first, "Sunday")
        r2 = self.client.schedule(second, "Sunday", "slow")
        self.client.reorder("Sunday", [r2, r1])
        names = [e["name"] for e in self.client.day("Sunday")["exercises"]]
        self.assertEqual(names, ["Crunch", "Plank"])

        metric = self.client.dashboard()[0]
        self.client.add_metric_entry(metric["id"], "2000-01-01", 80.0)
        self.assertEqual(self.client.dashboard(days=36500)[0]["entries"][0]["value"], 80.0)


if __name__ == "__main__":
    unittest.main()
