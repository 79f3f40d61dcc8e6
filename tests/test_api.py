from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from api import app  # noqa: E402


@pytest.fixture()
def client(memory_db):
    with TestClient(app) as test_client:
        yield test_client


def _create_employee(client, name="Amira Holt") -> int:
    response = client.post("/api/v1/employees", json={"name": name})
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_day_resolution_follows_precedence(client):
    employee_id = _create_employee(client)
    pattern = [{"day_of_week": 1, "start_time": "10:00", "end_time": "19:00", "effective_from": "2024-01-01"}]
    assert client.put(f"/api/v1/employees/{employee_id}/recurring-shifts", json={"pattern": pattern}).status_code == 200

    day = client.get(f"/api/v1/employees/{employee_id}/days/2024-03-04").json()
    assert day["kind"] == "shifts"
    assert day["source"] == "recurring"
    assert day["intervals"][0]["start"] == "2024-03-04T10:00:00"

    created = client.post(
        "/api/v1/specific-shifts",
        json={"employee_id": employee_id, "start": "2024-03-04T12:00:00", "end": "2024-03-04T18:00:00"},
    )
    assert created.status_code == 201
    assert client.get(f"/api/v1/employees/{employee_id}/days/2024-03-04").json()["source"] == "specific"

    leave = client.post(
        "/api/v1/time-off",
        json={"employee_id": employee_id, "start_date": "2024-03-04", "end_date": "2024-03-04"},
    )
    assert leave.status_code == 201
    approved = client.post(f"/api/v1/time-off/{leave.json()['id']}/status", json={"status": "approved"})
    assert approved.json()["status"] == "approved"

    day = client.get(f"/api/v1/employees/{employee_id}/days/2024-03-04").json()
    assert day == {"kind": "time_off", "status": "approved", "reason": "", "request_id": leave.json()["id"], "leave_type": "unpaid"}


def test_conflict_returns_both_records(client):
    employee_id = _create_employee(client)
    first = client.post(
        "/api/v1/specific-shifts",
        json={"employee_id": employee_id, "start": "2024-03-04T09:00:00", "end": "2024-03-04T12:00:00"},
    ).json()

    response = client.post(
        "/api/v1/specific-shifts",
        json={"employee_id": employee_id, "start": "2024-03-04T11:00:00", "end": "2024-03-04T15:00:00"},
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "conflict"
    assert error["conflicting"]["id"] == first["id"]
    assert error["proposed"]["start"] == "2024-03-04T11:00:00"


def test_error_status_codes(client):
    employee_id = _create_employee(client)

    bad_interval = client.post(
        "/api/v1/specific-shifts",
        json={"employee_id": employee_id, "start": "2024-03-04T12:00:00", "end": "2024-03-04T09:00:00"},
    )
    missing = client.delete("/api/v1/specific-shifts/999")
    bad_date = client.get("/api/v1/weeks/next-week/grid")
    id_on_create = client.post("/api/v1/specific-shifts", json={"id": 3, "employee_id": employee_id})

    assert bad_interval.status_code == 400
    assert missing.status_code == 404
    assert bad_date.status_code == 400
    assert id_on_create.status_code == 400


def test_week_grid_and_availability(client):
    employee_id = _create_employee(client)
    pattern = [
        {"day_of_week": 1, "start_time": "09:00", "end_time": "13:00", "effective_from": "2024-01-01"},
        {"day_of_week": 1, "start_time": "14:00", "end_time": "18:00", "effective_from": "2024-01-01"},
    ]
    client.put(f"/api/v1/employees/{employee_id}/recurring-shifts", json={"pattern": pattern})

    grid = client.get("/api/v1/weeks/2024-03-06/grid", params={"week_start_day": 1}).json()
    assert grid["week_start"] == "2024-03-04"
    assert grid["daily_totals"][0] == {"date": "2024-03-04", "hours": 8.0, "headcount": 1}
    assert grid["rows"][0]["total_hours"] == 8.0

    free = client.get(
        "/api/v1/availability",
        params={"start": "2024-03-04T10:00:00", "end": "2024-03-04T11:00:00"},
    ).json()
    lunch = client.get(
        "/api/v1/availability",
        params={"start": "2024-03-04T12:30:00", "end": "2024-03-04T13:30:00"},
    ).json()
    assert [employee["id"] for employee in free] == [employee_id]
    assert lunch == []


def test_non_string_fields_are_rejected_not_crashing(client):
    employee_id = _create_employee(client)
    leave = {"employee_id": employee_id, "start_date": "2024-03-04", "end_date": "2024-03-04"}

    bad_leave_type = client.post("/api/v1/time-off", json=dict(leave, leave_type=1))
    bad_status = client.post("/api/v1/time-off", json=dict(leave, status=5))
    numeric_actor = client.post("/api/v1/time-off", json=dict(leave, actor=3, reason=42))

    assert bad_leave_type.status_code == 400
    assert bad_leave_type.json()["error"]["code"] == "validation_error"
    assert bad_status.status_code == 400
    assert numeric_actor.status_code == 201
    assert numeric_actor.json()["reason"] == "42"

    later = client.post("/api/v1/time-off", json=dict(leave, start_date="2024-03-11", end_date="2024-03-11")).json()
    flipped = client.post(f"/api/v1/time-off/{later['id']}/status", json={"status": 5})
    assert flipped.status_code == 400


def test_moving_a_shift_by_put_honours_allow_split(client):
    employee_id = _create_employee(client)
    client.post(
        "/api/v1/specific-shifts",
        json={"employee_id": employee_id, "start": "2024-03-04T09:00:00", "end": "2024-03-04T12:00:00"},
    )
    tuesday = client.post(
        "/api/v1/specific-shifts",
        json={"employee_id": employee_id, "start": "2024-03-05T09:00:00", "end": "2024-03-05T12:00:00"},
    ).json()
    move = {"employee_id": employee_id, "start": "2024-03-04T14:00:00", "end": "2024-03-04T18:00:00"}

    refused = client.put(f"/api/v1/specific-shifts/{tuesday['id']}", json=move)
    allowed = client.put(f"/api/v1/specific-shifts/{tuesday['id']}", json=dict(move, allow_split=True))

    assert refused.status_code == 409
    assert allowed.status_code == 200
    assert allowed.json()["id"] == tuesday["id"]
