"""Service layer used by the API and scripts.

Reads load each store once for the visible range and hand the rows to the
resolver. Writes run the conflict checks, call the store, record an audit
entry and report the outcome as an ``OperationResult``.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from aggregator import daily_totals, employee_totals, total_hours
from calendar_utils import format_week_label, local_date, week_dates
from conflicts import validate_interval, validate_recurring_pattern, validate_specific_shift, validate_time_off
from database import (
    Employee,
    build_recurring_shift,
    check_date_range,
    coerce_datetime,
    coerce_optional_date,
    delete_specific_shift,
    get_employee,
    get_specific_shift,
    get_time_off_request,
    list_employees,
    list_recurring_shifts,
    list_specific_shifts,
    list_time_off_requests,
    record_audit_log,
    replace_recurring_shifts,
    require_employee_id,
    update_time_off_status,
    upsert_specific_shift,
    upsert_time_off_request,
)
from errors import NotFoundError, OperationResult, ScheduleError, ValidationError
from resolver import is_available, resolve, resolve_many
from shift_types import (
    ACTIVE_TIME_OFF_STATUSES,
    STATUS_PENDING,
    DaySchedule,
    Interval,
    day_schedule_to_dict,
    normalize_time_off_status,
)

logger = logging.getLogger(__name__)


def default_week_pattern(effective_from: Optional[datetime.date] = None) -> List[Dict[str, Any]]:
    """Starting template for the regular-shifts form: weekdays 9-6, Saturday 9-5, Sunday off."""
    effective_from = effective_from or datetime.date.today()
    pattern = []
    for day in range(1, 7):
        pattern.append(
            {
                "day_of_week": day,
                "start_time": datetime.time(9, 0),
                "end_time": datetime.time(17, 0) if day == 6 else datetime.time(18, 0),
                "effective_from": effective_from,
                "effective_until": None,
            }
        )
    return pattern


# ---------------------------------------------------------------------------
# Reads


def load_week(
    session,
    anchor: datetime.date,
    *,
    location_id: Optional[int] = None,
    week_start_day: Optional[int] = None,
) -> Dict[str, Any]:
    dates = week_dates(anchor, week_start_day)
    start, end = dates[0], dates[-1]
    return {
        "dates": dates,
        "employees": list_employees(session),
        "recurring": list_recurring_shifts(session, location_id=location_id, start_date=start, end_date=end),
        "specific": list_specific_shifts(session, start_date=start, end_date=end, location_id=location_id),
        # Leave blocks the employee everywhere, so it is never filtered by location.
        "time_off": list_time_off_requests(session, start_date=start, end_date=end),
    }


def build_week_grid(
    session,
    anchor: datetime.date,
    *,
    location_id: Optional[int] = None,
    week_start_day: Optional[int] = None,
) -> Dict[str, Any]:
    data = load_week(session, anchor, location_id=location_id, week_start_day=week_start_day)
    dates = data["dates"]
    employees: List[Employee] = data["employees"]
    schedules = resolve_many(
        [employee.id for employee in employees],
        dates,
        data["recurring"],
        data["specific"],
        data["time_off"],
    )
    per_employee = employee_totals(schedules)
    return {
        "week_start": dates[0],
        "label": format_week_label(dates[0]),
        "dates": dates,
        "employees": employees,
        "schedules": schedules,
        "daily_totals": daily_totals(schedules, dates),
        "employee_totals": per_employee,
        "total_hours": round(sum(per_employee.values()), 2),
    }


def serialize_week_grid(grid: Mapping[str, Any]) -> Dict[str, Any]:
    rows = []
    for employee in grid["employees"]:
        days = grid["schedules"].get(employee.id, {})
        rows.append(
            {
                "employee": employee.to_dict(),
                "days": [
                    dict(day_schedule_to_dict(days[day]), date=day.isoformat(), hours=round(total_hours(days[day]), 2))
                    for day in grid["dates"]
                ],
                "total_hours": grid["employee_totals"].get(employee.id, 0.0),
            }
        )
    return {
        "week_start": grid["week_start"].isoformat(),
        "label": grid["label"],
        "dates": [day.isoformat() for day in grid["dates"]],
        "rows": rows,
        "daily_totals": [
            {"date": day.isoformat(), **grid["daily_totals"][day]} for day in grid["dates"]
        ],
        "total_hours": grid["total_hours"],
    }


def resolve_employee_day(session, employee_id: int, day: datetime.date) -> DaySchedule:
    return resolve(
        employee_id,
        day,
        list_recurring_shifts(session, employee_id, start_date=day, end_date=day),
        list_specific_shifts(session, employee_id, day, day),
        list_time_off_requests(session, employee_id, day, day),
    )


def available_employees(
    session,
    start: datetime.datetime,
    end: datetime.datetime,
    *,
    location_id: Optional[int] = None,
) -> List[Employee]:
    """Active employees whose resolved shifts cover the whole [start, end] window."""
    day = local_date(start)
    employees = list_employees(session)
    schedules = resolve_many(
        [employee.id for employee in employees],
        [day],
        list_recurring_shifts(session, location_id=location_id, start_date=day, end_date=day),
        list_specific_shifts(session, start_date=day, end_date=day, location_id=location_id),
        list_time_off_requests(session, start_date=day, end_date=day),
    )
    return [employee for employee in employees if is_available(schedules[employee.id][day], start, end)]


# ---------------------------------------------------------------------------
# Writes


def _rejected(action: str, error: ScheduleError) -> OperationResult:
    logger.warning("%s rejected: %s", action, error)
    return OperationResult.failure(error)


def _normalize_status(value: Optional[str]) -> str:
    try:
        return normalize_time_off_status(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def set_regular_shifts(
    session,
    employee_id,
    pattern: Iterable[Mapping[str, Any]],
    *,
    location_id: Optional[int] = None,
    actor: str = "system",
) -> OperationResult:
    """Replace the employee's weekly pattern in one transaction."""
    try:
        employee_id = require_employee_id(employee_id)
        entries = list(pattern)
        rows = [build_recurring_shift(employee_id, entry, location_id=location_id) for entry in entries]
        conflict = validate_recurring_pattern(rows)
        if conflict is not None:
            return _rejected("set_regular_shifts", conflict)
        saved = replace_recurring_shifts(session, employee_id, entries, location_id=location_id)
    except ScheduleError as exc:
        return _rejected("set_regular_shifts", exc)
    record_audit_log(
        session,
        user_id=actor,
        action="RECURRING_REPLACE",
        target_type="Employee",
        target_id=employee_id,
        payload={"count": len(saved), "location_id": location_id},
    )
    return OperationResult.success(saved)


def save_specific_shift(
    session,
    payload: Mapping[str, Any],
    *,
    allow_split: bool = False,
    actor: str = "system",
) -> OperationResult:
    """Create a specific shift, or edit the one named by ``payload['id']``."""
    try:
        employee_id = require_employee_id(payload.get("employee_id"))
        start = coerce_datetime(payload.get("start"), "Shift start")
        end = coerce_datetime(payload.get("end"), "Shift end")
        shift_id = payload.get("id") or None
        proposed = Interval(start=start, end=end, shift_id=shift_id)
        validate_interval(proposed)
        original_day = None
        if shift_id is not None:
            current = get_specific_shift(session, shift_id)
            if current is None:
                raise NotFoundError(f"Specific shift with id {shift_id} was not found.")
            # Reassigning to another employee joins their day like a new shift would.
            original_day = local_date(current.start) if current.employee_id == employee_id else None
        day = start.date()
        problem = validate_specific_shift(
            employee_id,
            day,
            proposed,
            list_specific_shifts(session, employee_id, day, day),
            shift_id=shift_id if original_day is not None else None,
            original_day=original_day,
            allow_split=allow_split,
        )
        if problem is not None:
            return _rejected("save_specific_shift", problem)
        saved = upsert_specific_shift(
            session,
            dict(payload, id=shift_id, employee_id=employee_id, start=start, end=end),
        )
    except ScheduleError as exc:
        return _rejected("save_specific_shift", exc)
    record_audit_log(
        session,
        user_id=actor,
        action="SHIFT_UPDATE" if shift_id else "SHIFT_CREATE",
        target_id=saved.id,
        payload=saved.to_dict(),
    )
    return OperationResult.success(saved)


def remove_specific_shift(session, shift_id: int, *, actor: str = "system") -> OperationResult:
    try:
        removed = delete_specific_shift(session, shift_id)
    except ScheduleError as exc:
        return _rejected("remove_specific_shift", exc)
    record_audit_log(session, user_id=actor, action="SHIFT_DELETE", target_id=shift_id, payload=removed.to_dict())
    return OperationResult.success(removed)


def request_time_off(session, payload: Mapping[str, Any], *, actor: str = "system") -> OperationResult:
    try:
        employee_id = require_employee_id(payload.get("employee_id"))
        if get_employee(session, employee_id) is None:
            raise NotFoundError(f"Employee with id {employee_id} was not found.")
        start_date = coerce_optional_date(payload.get("start_date"))
        end_date = coerce_optional_date(payload.get("end_date"))
        check_date_range(start_date, end_date)
        status = _normalize_status(payload.get("status") or STATUS_PENDING)
        request_id = payload.get("id") or None
        if status in ACTIVE_TIME_OFF_STATUSES:
            problem = validate_time_off(
                employee_id,
                start_date,
                end_date,
                list_time_off_requests(session, employee_id, start_date, end_date),
                request_id=request_id,
            )
            if problem is not None:
                return _rejected("request_time_off", problem)
        saved = upsert_time_off_request(
            session,
            dict(payload, id=request_id, employee_id=employee_id, start_date=start_date, end_date=end_date, status=status),
        )
    except ScheduleError as exc:
        return _rejected("request_time_off", exc)
    record_audit_log(
        session,
        user_id=actor,
        action="TIME_OFF_SAVE",
        target_type="TimeOffRequest",
        target_id=saved.id,
        payload=saved.to_dict(),
    )
    return OperationResult.success(saved)


def set_time_off_status(session, request_id: int, status: str, *, actor: str = "system") -> OperationResult:
    try:
        normalized = _normalize_status(status)
        request = get_time_off_request(session, request_id)
        if request is None:
            raise NotFoundError(f"Time-off request with id {request_id} was not found.")
        if normalized in ACTIVE_TIME_OFF_STATUSES and request.status not in ACTIVE_TIME_OFF_STATUSES:
            # Re-activating a declined request must not double-book leave.
            problem = validate_time_off(
                request.employee_id,
                request.start_date,
                request.end_date,
                list_time_off_requests(session, request.employee_id, request.start_date, request.end_date),
                request_id=request.id,
            )
            if problem is not None:
                return _rejected("set_time_off_status", problem)
        updated = update_time_off_status(session, request_id, normalized)
    except ScheduleError as exc:
        return _rejected("set_time_off_status", exc)
    record_audit_log(
        session,
        user_id=actor,
        action="TIME_OFF_STATUS",
        target_type="TimeOffRequest",
        target_id=request_id,
        payload={"status": normalized},
    )
    return OperationResult.success(updated)
