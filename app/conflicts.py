"""Write-time checks run before a shift or time-off record is committed.

``validate_specific_shift`` and ``validate_time_off`` report problems as their
return value: a ``ValidationError`` for malformed input, a ``ConflictError``
when a well-formed write collides with existing data, ``None`` when the write
is clear. Nothing here tries to repair the collision.
"""

from __future__ import annotations

import datetime
from typing import Iterable, List, Optional, Sequence

from calendar_utils import local_date, to_local
from errors import ConflictError, ScheduleError, ValidationError
from settings import DAY_NAMES
from shift_types import ACTIVE_TIME_OFF_STATUSES, Interval, time_off_status_of

_FAR_FUTURE = datetime.date.max


def _require_employee(employee_id) -> None:
    if employee_id in (None, ""):
        raise ValidationError("An employee must be selected.")


def validate_interval(interval: Interval, day: Optional[datetime.date] = None) -> None:
    if interval.end <= interval.start:
        raise ValidationError("Shift end time must be after start time.")
    if interval.start.date() != interval.end.date():
        raise ValidationError("Shift start and end must fall on the same calendar date.")
    if day is not None and interval.start.date() != day:
        raise ValidationError(f"Shift starts on {interval.start.date()} but was filed under {day}.")


def validate_specific_shift(
    employee_id,
    day: datetime.date,
    proposed: Interval,
    existing: Iterable,
    *,
    shift_id: Optional[int] = None,
    original_day: Optional[datetime.date] = None,
    allow_split: bool = False,
) -> Optional[ScheduleError]:
    """Check a specific-shift write against the employee's other shifts that day.

    ``shift_id`` marks an edit of that exact row; it is excluded from the
    comparison. ``original_day`` is the date the edited row sits on now. A
    create, or an edit moving a row from another date, onto a day that already
    has a specific shift is rejected unless ``allow_split`` says the caller
    means a second, non-overlapping split shift.
    """
    try:
        _require_employee(employee_id)
        validate_interval(proposed, day)
    except ValidationError as exc:
        return exc

    same_day = [
        shift
        for shift in existing
        if shift.employee_id == employee_id
        and local_date(shift.start) == day
        and (shift_id is None or shift.id != shift_id)
    ]
    for shift in same_day:
        current = Interval(start=to_local(shift.start), end=to_local(shift.end), shift_id=shift.id)
        if current.overlaps(proposed):
            return ConflictError(
                f"Shift {proposed.start:%H:%M}-{proposed.end:%H:%M} overlaps existing shift "
                f"{current.start:%H:%M}-{current.end:%H:%M} on {day}.",
                proposed=_interval_payload(employee_id, proposed, shift_id),
                conflicting=shift,
            )
    joins_day = shift_id is None or (original_day is not None and original_day != day)
    if joins_day and same_day and not allow_split:
        return ConflictError(
            f"Employee {employee_id} already has a specific shift on {day}; "
            "edit it by id or add it explicitly as a split shift.",
            proposed=_interval_payload(employee_id, proposed, shift_id),
            conflicting=same_day[0],
        )
    return None


def _interval_payload(employee_id, interval: Interval, shift_id: Optional[int]) -> dict:
    return {
        "id": shift_id,
        "employee_id": employee_id,
        "start": interval.start.isoformat(),
        "end": interval.end.isoformat(),
    }


def validate_time_off(
    employee_id,
    start_date: Optional[datetime.date],
    end_date: Optional[datetime.date],
    existing: Iterable,
    *,
    request_id: Optional[int] = None,
) -> Optional[ScheduleError]:
    """Reject a request overlapping another pending/approved request for the employee."""
    if employee_id in (None, ""):
        return ValidationError("An employee must be selected.")
    if start_date is None or end_date is None:
        return ValidationError("Both a start date and an end date are required.")
    if end_date < start_date:
        return ValidationError("End date must be on or after start date.")
    for request in existing:
        if request.employee_id != employee_id:
            continue
        if request_id is not None and request.id == request_id:
            continue
        if time_off_status_of(request) not in ACTIVE_TIME_OFF_STATUSES:
            continue
        if request.start_date <= end_date and start_date <= request.end_date:
            return ConflictError(
                f"Time off {start_date} to {end_date} overlaps {time_off_status_of(request)} request "
                f"{request.start_date} to {request.end_date}.",
                proposed={
                    "id": request_id,
                    "employee_id": employee_id,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
                conflicting=request,
            )
    return None


def _windows_overlap(a, b) -> bool:
    a_until = a.effective_until or _FAR_FUTURE
    b_until = b.effective_until or _FAR_FUTURE
    return a.effective_from <= b_until and b.effective_from <= a_until


def validate_recurring_pattern(rows: Sequence) -> Optional[ConflictError]:
    """Reject a weekly pattern whose entries double-book the same hours.

    Several entries per weekday are fine (split shifts) as long as their hours
    or their effective windows do not overlap.
    """
    ordered: List = sorted(rows, key=lambda r: (r.day_of_week, r.start_time, r.end_time))
    for index, first in enumerate(ordered):
        for second in ordered[index + 1 :]:
            if second.day_of_week != first.day_of_week:
                break
            if second.start_time >= first.end_time:
                continue
            if _windows_overlap(first, second):
                day_name = DAY_NAMES[first.day_of_week]
                return ConflictError(
                    f"{day_name} {second.start_time:%H:%M}-{second.end_time:%H:%M} overlaps "
                    f"{first.start_time:%H:%M}-{first.end_time:%H:%M} in the new pattern.",
                    proposed=second,
                    conflicting=first,
                )
    return None
