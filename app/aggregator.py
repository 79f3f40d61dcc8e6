from __future__ import annotations

import datetime
from typing import Dict, Iterable, Mapping

from shift_types import DaySchedule, Shifts


def total_hours(schedule: DaySchedule) -> float:
    """Hours worked for one resolved day; time off and empty days count as 0.

    Each interval contributes its literal ``end - start``. Specific shifts carry
    full datetimes, so the figure is exact; recurring shifts are assumed not to
    cross midnight.
    """
    if not isinstance(schedule, Shifts):
        return 0.0
    return sum(interval.hours for interval in schedule.intervals)


def daily_totals(
    grid: Mapping[object, Mapping[datetime.date, DaySchedule]],
    dates: Iterable[datetime.date],
) -> Dict[datetime.date, Dict[str, float]]:
    """Per-day hours and headcount (employees with at least one shift)."""
    totals: Dict[datetime.date, Dict[str, float]] = {day: {"hours": 0.0, "headcount": 0} for day in dates}
    for days in grid.values():
        for day, schedule in days.items():
            info = totals.get(day)
            if info is None:
                continue
            hours = total_hours(schedule)
            info["hours"] += hours
            if isinstance(schedule, Shifts) and schedule.intervals:
                info["headcount"] += 1
    for info in totals.values():
        info["hours"] = round(info["hours"], 2)
    return totals


def employee_totals(grid: Mapping[object, Mapping[datetime.date, DaySchedule]]) -> Dict[object, float]:
    return {
        employee_id: round(sum(total_hours(schedule) for schedule in days.values()), 2)
        for employee_id, days in grid.items()
    }
