from __future__ import annotations

import datetime
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database as db  # noqa: E402
from database import (  # noqa: E402
    add_employee,
    delete_specific_shift,
    list_recurring_shifts,
    list_specific_shifts,
    list_time_off_requests,
    replace_recurring_shifts,
    update_time_off_status,
    upsert_specific_shift,
    upsert_time_off_request,
)
from errors import AtomicityError, NotFoundError, ValidationError  # noqa: E402


def _pattern(*rows, location_id=None):
    return [
        {
            "day_of_week": day,
            "start_time": start,
            "end_time": end,
            "effective_from": datetime.date(2024, 1, 1),
            **({"location_id": location_id} if location_id is not None else {}),
        }
        for day, start, end in rows
    ]


def _snapshot(rows):
    return sorted((r.day_of_week, r.start_time, r.end_time, r.location_id) for r in rows)


def test_replace_swaps_whole_pattern(session):
    employee = add_employee(session, "Amira Holt")
    replace_recurring_shifts(session, employee.id, _pattern((1, "09:00", "17:00"), (2, "09:00", "17:00")))

    replace_recurring_shifts(session, employee.id, _pattern((3, "10:00", "19:00")))

    rows = list_recurring_shifts(session, employee.id)
    assert _snapshot(rows) == [(3, datetime.time(10, 0), datetime.time(19, 0), None)]


def test_failed_insert_rolls_back_the_delete(session, memory_db, monkeypatch):
    employee = add_employee(session, "Amira Holt")
    replace_recurring_shifts(session, employee.id, _pattern((1, "10:00", "19:00"), (4, "10:00", "14:00")))
    before = _snapshot(list_recurring_shifts(session, employee.id))

    def _boom(session, rows):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(db, "_insert_recurring_rows", _boom)

    with pytest.raises(AtomicityError) as excinfo:
        replace_recurring_shifts(session, employee.id, _pattern((2, "08:00", "12:00")))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    with memory_db() as fresh:
        assert _snapshot(list_recurring_shifts(fresh, employee.id)) == before
    assert before


def test_replace_scoped_to_location_keeps_other_locations(session):
    employee = add_employee(session, "Bruno Castillo")
    replace_recurring_shifts(session, employee.id, _pattern((1, "09:00", "17:00"), location_id=1))
    replace_recurring_shifts(session, employee.id, _pattern((2, "09:00", "17:00"), location_id=2), location_id=2)

    replace_recurring_shifts(session, employee.id, _pattern((5, "12:00", "20:00")), location_id=2)

    rows = list_recurring_shifts(session, employee.id)
    assert _snapshot(rows) == [
        (1, datetime.time(9, 0), datetime.time(17, 0), 1),
        (5, datetime.time(12, 0), datetime.time(20, 0), 2),
    ]


def test_scoped_replace_rejects_entries_for_another_location(session):
    employee = add_employee(session, "Bruno Castillo")
    replace_recurring_shifts(session, employee.id, _pattern((1, "09:00", "17:00"), location_id=2), location_id=2)

    for _ in range(3):
        with pytest.raises(ValidationError):
            replace_recurring_shifts(
                session, employee.id, _pattern((1, "09:00", "17:00"), location_id=1), location_id=2
            )

    assert _snapshot(list_recurring_shifts(session, employee.id)) == [
        (1, datetime.time(9, 0), datetime.time(17, 0), 2)
    ]


def test_scoped_replace_is_idempotent_for_unlabelled_entries(session):
    employee = add_employee(session, "Bruno Castillo")
    pattern = _pattern((1, "09:00", "17:00")) + [
        {"day_of_week": 2, "start_time": "09:00", "end_time": "17:00", "location_id": None}
    ]

    for _ in range(3):
        replace_recurring_shifts(session, employee.id, pattern, location_id=2)

    assert _snapshot(list_recurring_shifts(session, employee.id)) == [
        (1, datetime.time(9, 0), datetime.time(17, 0), 2),
        (2, datetime.time(9, 0), datetime.time(17, 0), 2),
    ]


def test_replace_for_unknown_employee(session):
    with pytest.raises(NotFoundError):
        replace_recurring_shifts(session, 999, _pattern((1, "09:00", "17:00")))


def test_replace_rejects_malformed_pattern_before_deleting(session):
    employee = add_employee(session, "Celia Moreau")
    replace_recurring_shifts(session, employee.id, _pattern((1, "09:00", "17:00")))

    with pytest.raises(ValidationError):
        replace_recurring_shifts(session, employee.id, _pattern((1, "17:00", "09:00")))

    assert len(list_recurring_shifts(session, employee.id)) == 1


def test_list_recurring_filters_by_effective_window(session):
    employee = add_employee(session, "Celia Moreau")
    replace_recurring_shifts(
        session,
        employee.id,
        [
            {"day_of_week": 1, "start_time": "09:00", "end_time": "17:00",
             "effective_from": "2024-01-01", "effective_until": "2024-01-31"},
            {"day_of_week": 1, "start_time": "09:00", "end_time": "17:00", "effective_from": "2024-03-01"},
        ],
    )

    february = list_recurring_shifts(
        session, employee.id, start_date=datetime.date(2024, 2, 4), end_date=datetime.date(2024, 2, 10)
    )
    march = list_recurring_shifts(
        session, employee.id, start_date=datetime.date(2024, 3, 3), end_date=datetime.date(2024, 3, 9)
    )

    assert february == []
    assert [row.effective_from for row in march] == [datetime.date(2024, 3, 1)]


def test_specific_shift_crud_and_date_range(session):
    employee = add_employee(session, "Amira Holt")
    shift = upsert_specific_shift(
        session,
        {
            "employee_id": employee.id,
            "start": datetime.datetime(2024, 3, 4, 12, 0),
            "end": datetime.datetime(2024, 3, 4, 18, 0),
        },
    )
    upsert_specific_shift(
        session,
        {"id": shift.id, "employee_id": employee.id, "start": "2024-03-04T13:00", "end": "2024-03-04T18:00"},
    )

    rows = list_specific_shifts(session, employee.id, datetime.date(2024, 3, 4), datetime.date(2024, 3, 4))
    assert [(row.id, row.start.hour) for row in rows] == [(shift.id, 13)]
    assert list_specific_shifts(session, employee.id, datetime.date(2024, 3, 5), datetime.date(2024, 3, 9)) == []

    delete_specific_shift(session, shift.id)
    assert list_specific_shifts(session, employee.id) == []
    with pytest.raises(NotFoundError):
        delete_specific_shift(session, shift.id)


def test_specific_shift_invariants(session):
    employee = add_employee(session, "Amira Holt")
    with pytest.raises(ValidationError):
        upsert_specific_shift(
            session,
            {"employee_id": employee.id, "start": "2024-03-04T18:00", "end": "2024-03-04T12:00"},
        )
    with pytest.raises(ValidationError):
        upsert_specific_shift(
            session,
            {"employee_id": employee.id, "start": "2024-03-04T22:00", "end": "2024-03-05T02:00"},
        )
    with pytest.raises(ValidationError):
        upsert_specific_shift(session, {"start": "2024-03-04T09:00", "end": "2024-03-04T12:00"})
    with pytest.raises(NotFoundError):
        upsert_specific_shift(
            session,
            {"id": 42, "employee_id": employee.id, "start": "2024-03-04T09:00", "end": "2024-03-04T12:00"},
        )


def test_time_off_requests_and_status_alias(session):
    employee = add_employee(session, "Bruno Castillo")
    request = upsert_time_off_request(
        session,
        {
            "employee_id": employee.id,
            "start_date": "2024-03-04",
            "end_date": "2024-03-06",
            "leave_type": "paid",
            "reason": " Holiday ",
        },
    )
    assert (request.status, request.reason) == ("pending", "Holiday")

    updated = update_time_off_status(session, request.id, "denied")
    assert updated.status == "declined"

    overlapping = list_time_off_requests(session, employee.id, datetime.date(2024, 3, 6), datetime.date(2024, 3, 10))
    assert [row.id for row in overlapping] == [request.id]
    assert list_time_off_requests(session, employee.id, statuses=["approved"]) == []

    with pytest.raises(ValidationError):
        upsert_time_off_request(
            session, {"employee_id": employee.id, "start_date": "2024-03-06", "end_date": "2024-03-04"}
        )
    with pytest.raises(ValidationError):
        update_time_off_status(session, request.id, "maybe")
