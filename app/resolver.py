"""Shift resolution: what is an employee's working status on a given day?

Three independently edited sources are merged with a strict precedence:

1. an active (pending or approved) time-off request covering the day,
2. specific shifts dated that day, which replace the weekly pattern outright,
3. recurring shifts for that weekday whose effective window contains the day.

Nothing here touches the database; callers hand in already-loaded rows (ORM
objects or anything exposing the same attributes).
"""

from __future__ import annotations

import datetime
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from calendar_utils import day_index, local_date, to_local
from shift_types import (
    ACTIVE_TIME_OFF_STATUSES,
    LEAVE_UNPAID,
    SOURCE_RECURRING,
    SOURCE_SPECIFIC,
    STATUS_APPROVED,
    DaySchedule,
    Empty,
    Interval,
    Shifts,
    TimeOff,
    time_off_status_of,
)


def _as_date(value: datetime.date | datetime.datetime) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def _row_id(row) -> int:
    row_id = getattr(row, "id", None)
    return row_id if row_id is not None else -1


def _blocking_time_off(employee_id, day: datetime.date, time_off: Iterable) -> Optional[object]:
    matches = [
        request
        for request in time_off
        if request.employee_id == employee_id
        and time_off_status_of(request) in ACTIVE_TIME_OFF_STATUSES
        and request.start_date <= day <= request.end_date
    ]
    if not matches:
        return None
    # Approved wins over pending; ties go to the earliest request.
    matches.sort(key=lambda r: (time_off_status_of(r) != STATUS_APPROVED, r.start_date, _row_id(r)))
    return matches[0]


def _in_effective_window(shift, day: datetime.date) -> bool:
    if shift.effective_from is not None and day < shift.effective_from:
        return False
    return shift.effective_until is None or day <= shift.effective_until


def resolve(
    employee_id,
    day: datetime.date,
    recurring: Iterable,
    specific: Iterable,
    time_off: Iterable,
) -> DaySchedule:
    """Return the ``DaySchedule`` for ``employee_id`` on ``day``."""
    day = _as_date(day)

    request = _blocking_time_off(employee_id, day, time_off)
    if request is not None:
        return TimeOff(
            status=time_off_status_of(request),
            reason=getattr(request, "reason", "") or "",
            request_id=getattr(request, "id", None),
            leave_type=getattr(request, "leave_type", None) or LEAVE_UNPAID,
        )

    day_specific = [
        shift for shift in specific if shift.employee_id == employee_id and local_date(shift.start) == day
    ]
    if day_specific:
        day_specific.sort(key=lambda s: (to_local(s.start), to_local(s.end), _row_id(s)))
        return Shifts(
            intervals=tuple(
                Interval(
                    start=to_local(shift.start),
                    end=to_local(shift.end),
                    shift_id=getattr(shift, "id", None),
                    location_id=getattr(shift, "location_id", None),
                )
                for shift in day_specific
            ),
            source=SOURCE_SPECIFIC,
        )

    weekday = day_index(day)
    day_recurring = [
        shift
        for shift in recurring
        if shift.employee_id == employee_id
        and shift.day_of_week == weekday
        and _in_effective_window(shift, day)
    ]
    if day_recurring:
        day_recurring.sort(key=lambda s: (s.start_time, s.end_time, _row_id(s)))
        return Shifts(
            intervals=tuple(
                Interval(
                    start=datetime.datetime.combine(day, shift.start_time),
                    end=datetime.datetime.combine(day, shift.end_time),
                    shift_id=getattr(shift, "id", None),
                    location_id=getattr(shift, "location_id", None),
                )
                for shift in day_recurring
            ),
            source=SOURCE_RECURRING,
        )

    return Empty()


def _group_by_employee(rows: Iterable) -> Dict[object, List]:
    grouped: Dict[object, List] = defaultdict(list)
    for row in rows:
        grouped[row.employee_id].append(row)
    return grouped


def resolve_many(
    employee_ids: Iterable,
    dates: Sequence[datetime.date],
    recurring: Iterable,
    specific: Iterable,
    time_off: Iterable,
) -> Dict[object, Dict[datetime.date, DaySchedule]]:
    """Resolve every employee x date cell, grouping the inputs once up front."""
    recurring_by_employee = _group_by_employee(recurring)
    specific_by_employee = _group_by_employee(specific)
    time_off_by_employee = _group_by_employee(time_off)
    grid: Dict[object, Dict[datetime.date, DaySchedule]] = {}
    for employee_id in employee_ids:
        grid[employee_id] = {
            _as_date(day): resolve(
                employee_id,
                day,
                recurring_by_employee.get(employee_id, ()),
                specific_by_employee.get(employee_id, ()),
                time_off_by_employee.get(employee_id, ()),
            )
            for day in dates
        }
    return grid


def is_available(schedule: DaySchedule, start: datetime.datetime, end: datetime.datetime) -> bool:
    """True when some resolved shift fully contains [start, end]."""
    if not isinstance(schedule, Shifts):
        return False
    start = to_local(start)
    end = to_local(end)
    return any(interval.contains(start, end) for interval in schedule.intervals)


def scheduled_employee_ids(
    employee_ids: Iterable,
    day: datetime.date,
    recurring: Iterable,
    specific: Iterable,
    time_off: Iterable,
) -> List:
    day = _as_date(day)
    grid = resolve_many(employee_ids, [day], recurring, specific, time_off)
    return [employee_id for employee_id, days in grid.items() if isinstance(days[day], Shifts)]
