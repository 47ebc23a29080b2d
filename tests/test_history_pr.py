import os
import sqlite3
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import HistoryRepository, is_new_pr
from rest_api import TrainAPI


@pytest.fixture
def client(tmp_path):
    api = TrainAPI(db_path=str(tmp_path / "history.db"), static_dir=None)
    return TestClient(api.app)


def _exercise(client, name: str, ex_type: str = "weight") -> int:
    resp = client.post("/api/exercises", json={"name": name, "type": ex_type})
    assert resp.status_code == 201
    return resp.json()["id"]


def _log(client, exercise_id: int, date: str, weight=None, **extra) -> dict:
    body = {
        "exercise_id": exercise_id,
        "session_date": date,
        "sets_completed": [8, 8, 8],
        "weight": weight,
        **extra,
    }
    resp = client.post("/api/history", json=body)
    assert resp.status_code == 201
    return resp.json()


def _pr_flags(client, exercise_id: int) -> dict:
    history = client.get(f"/api/history/{exercise_id}").json()["history"]
    return {h["session_date"]: h["is_pr"] for h in history}


class TestPersonalRecords:
    def test_first_weighted_session_is_pr(self, client):
        ex = _exercise(client, "Squat")
        result = _log(client, ex, "2024-01-01", 60)
        assert result["is_pr"] is True
        assert result["message"] == "History entry created successfully"

    def test_higher_weight_moves_pr_flag(self, client):
        ex = _exercise(client, "Squat")
        _log(client, ex, "2024-01-01", 60)
        assert _log(client, ex, "2024-01-08", 65)["is_pr"] is True
        assert _pr_flags(client, ex) == {"2024-01-08": True, "2024-01-01": False}

    def test_equal_or_lower_weight_is_not_pr(self, client):
        ex = _exercise(client, "Squat")
        _log(client, ex, "2024-01-01", 60)
        assert _log(client, ex, "2024-01-08", 60)["is_pr"] is False
        assert _log(client, ex, "2024-01-15", 55)["is_pr"] is False
        flags = _pr_flags(client, ex)
        assert flags["2024-01-01"] is True
        assert sum(flags.values()) == 1

    def test_assisted_lower_weight_is_pr(self, client):
        ex = _exercise(client, "Assisted Pull Up", "assisted")
        assert _log(client, ex, "2024-01-01", 30)["is_pr"] is True
        assert _log(client, ex, "2024-01-08", 25)["is_pr"] is True
        assert _log(client, ex, "2024-01-15", 25)["is_pr"] is False
        assert _log(client, ex, "2024-01-22", 28)["is_pr"] is False
        flags = _pr_flags(client, ex)
        assert flags["2024-01-08"] is True
        assert sum(flags.values()) == 1

    def test_missing_or_zero_weight_is_not_pr(self, client):
        ex = _exercise(client, "Push Up", "bodyweight")
        assert _log(client, ex, "2024-01-01")["is_pr"] is False
        assert _log(client, ex, "2024-01-02", 0)["is_pr"] is False
        assert client.get(f"/api/history/{ex}/pr").json() == {"pr": None}

    def test_pr_is_independent_per_exercise(self, client):
        squat = _exercise(client, "Squat")
        bench = _exercise(client, "Bench Press")
        _log(client, squat, "2024-01-01", 100)
        assert _log(client, bench, "2024-01-01", 50)["is_pr"] is True
        assert _log(client, bench, "2024-01-08", 60)["is_pr"] is True
        assert _pr_flags(client, squat) == {"2024-01-01": True}

    def test_pr_endpoint(self, client):
        ex = _exercise(client, "Squat")
        assert client.get(f"/api/history/{ex}/pr").json() == {"pr": None}
        _log(client, ex, "2024-01-01", 60, volume=1440)
        _log(client, ex, "2024-01-08", 70, volume=1680)
        assert client.get(f"/api/history/{ex}/pr").json() == {
            "pr": {"weight": 70.0, "date": "2024-01-08", "volume": 1680.0}
        }

    @pytest.mark.parametrize(
        "exercise_type, weight, extreme, expected",
        [
            ("weight", 10, None, True),
            ("weight", 10, 10, False),
            ("bodyweight", 12, 10, True),
            ("assisted", 8, 10, True),
            ("assisted", 12, 10, False),
            ("cardio", 0, None, False),
            ("weight", None, 10, False),
        ],
    )
    def test_is_new_pr(self, exercise_type, weight, extreme, expected):
        assert is_new_pr(exercise_type, weight, extreme) is expected


class TestWriteLock:
    def test_transaction_holds_write_lock_before_first_write(self, tmp_path):
        db_path = str(tmp_path / "lock.db")
        repo = HistoryRepository(db_path)
        repo.execute("INSERT INTO exercises (name, type) VALUES ('Squat', 'weight');")
        with repo.transaction() as conn:
            assert conn.in_transaction
            conn.execute("SELECT MAX(weight) FROM history WHERE exercise_id = 1;").fetchone()
            other = sqlite3.connect(db_path, timeout=0)
            try:
                with pytest.raises(sqlite3.OperationalError):
                    other.execute(
                        "INSERT INTO history (exercise_id, session_date, weight, sets_completed, is_pr) "
                        "VALUES (1, '2024-01-01', 100, '[5]', 1);"
                    )
            finally:
                other.close()


class TestHistoryAPI:
    def test_history_newest_first(self, client):
        ex = _exercise(client, "Squat")
        _log(client, ex, "2024-01-08", 65, completed=True, notes="felt strong")
        _log(client, ex, "2024-01-01", 60)
        data = client.get(f"/api/history/{ex}").json()
        assert data["exercise_id"] == ex
        assert data["exercise_name"] == "Squat"
        dates = [h["session_date"] for h in data["history"]]
        assert dates == ["2024-01-08", "2024-01-01"]
        first = data["history"][0]
        assert first["sets_completed"] == [8, 8, 8]
        assert first["completed"] is True
        assert first["notes"] == "felt strong"

    def test_create_validation(self, client):
        ex = _exercise(client, "Squat")
        resp = client.post(
            "/api/history", json={"exercise_id": ex, "session_date": "2024-01-01"}
        )
        assert resp.status_code == 400
        resp = client.post(
            "/api/history",
            json={"exercise_id": 999, "session_date": "2024-01-01", "sets_completed": [5]},
        )
        assert resp.status_code == 404
        assert client.get("/api/history/999").status_code == 404
        assert client.get("/api/history/abc").status_code == 400

    def test_update_and_delete(self, client):
        ex = _exercise(client, "Squat")
        hid = _log(client, ex, "2024-01-01", 60)["id"]

        resp = client.put(
            f"/api/history/{hid}", json={"sets_completed": [5, 5], "completed": True}
        )
        assert resp.status_code == 200
        entry = client.get(f"/api/history/{ex}").json()["history"][0]
        assert entry["sets_completed"] == [5, 5]
        assert entry["completed"] is True
        assert entry["weight"] == 60.0

        assert client.put(f"/api/history/{hid}", json={}).status_code == 400
        assert client.put("/api/history/999", json={"notes": "x"}).status_code == 404

        resp = client.delete(f"/api/history/{hid}")
        assert resp.json() == {"message": "History entry deleted successfully"}
        assert client.delete(f"/api/history/{hid}").status_code == 404
