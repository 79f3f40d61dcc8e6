"""Value types shared by the resolver, validator and aggregator.

``DaySchedule`` is the resolved status of one employee on one calendar day.
It is exactly one of ``TimeOff``, ``Shifts`` or ``Empty``; callers branch on
the concrete class (``isinstance``) or on ``kind``.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_DECLINED = "declined"
TIME_OFF_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_DECLINED}
ACTIVE_TIME_OFF_STATUSES = {STATUS_PENDING, STATUS_APPROVED}
STATUS_ALIASES = {"denied": STATUS_DECLINED, "rejected": STATUS_DECLINED}

LEAVE_PAID = "paid"
LEAVE_UNPAID = "unpaid"
LEAVE_TYPES = {LEAVE_PAID, LEAVE_UNPAID}

SOURCE_SPECIFIC = "specific"
SOURCE_RECURRING = "recurring"


def normalize_time_off_status(value: Optional[str]) -> str:
    normalized = str(value or "").strip().lower()
    normalized = STATUS_ALIASES.get(normalized, normalized)
    if normalized not in TIME_OFF_STATUSES:
        raise ValueError(f"Unsupported time-off status '{value}'.")
    return normalized


def time_off_status_of(request) -> str:
    """Stored status of a time-off row with aliases folded in; unknown values pass through."""
    status = str(getattr(request, "status", "") or "").strip().lower()
    return STATUS_ALIASES.get(status, status)


@dataclass(frozen=True)
class Interval:
    start: datetime.datetime
    end: datetime.datetime
    shift_id: Optional[int] = field(default=None, compare=False)
    location_id: Optional[int] = field(default=None, compare=False)

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600

    def contains(self, start: datetime.datetime, end: datetime.datetime) -> bool:
        return self.start <= start and end <= self.end

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class TimeOff:
    status: str
    reason: str = ""
    request_id: Optional[int] = None
    leave_type: str = LEAVE_UNPAID

    kind = "time_off"


@dataclass(frozen=True)
class Shifts:
    intervals: Tuple[Interval, ...]
    source: str

    kind = "shifts"


@dataclass(frozen=True)
class Empty:
    kind = "empty"


DaySchedule = Union[TimeOff, Shifts, Empty]


def day_schedule_to_dict(schedule: DaySchedule) -> dict:
    if isinstance(schedule, TimeOff):
        return {
            "kind": schedule.kind,
            "status": schedule.status,
            "reason": schedule.reason,
            "request_id": schedule.request_id,
            "leave_type": schedule.leave_type,
        }
    if isinstance(schedule, Shifts):
        return {
            "kind": schedule.kind,
            "source": schedule.source,
            "intervals": [
                {
                    "start": interval.start.isoformat(),
                    "end": interval.end.isoformat(),
                    "shift_id": interval.shift_id,
                    "location_id": interval.location_id,
                }
                for interval in schedule.intervals
            ],
        }
    return {"kind": schedule.kind}
