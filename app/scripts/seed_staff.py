from __future__ import annotations

import argparse
import datetime
import sys
from pathlib import Path
from typing import Dict, List, Tuple

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import Employee, SessionLocal, init_database  # noqa: E402
from scheduling import request_time_off, set_regular_shifts  # noqa: E402


DAY_INDEX = {
    "Sun": 0,
    "Mon": 1,
    "Tue": 2,
    "Wed": 3,
    "Thu": 4,
    "Fri": 5,
    "Sat": 6,
}

SAMPLE_STAFF: List[Dict] = [
    {
        "name": "Amira Holt",
        "pattern": {
            "Mon": [("10:00", "19:00")],
            "Tue": [("10:00", "19:00")],
            "Thu": [("10:00", "14:00"), ("15:00", "19:00")],
            "Sat": [("09:00", "17:00")],
        },
        "time_off": [(14, 16, "Family visit")],
    },
    {
        "name": "Bruno Castillo",
        "pattern": {
            "Wed": [("09:00", "18:00")],
            "Thu": [("09:00", "18:00")],
            "Fri": [("09:00", "18:00")],
            "Sat": [("09:00", "17:00")],
        },
        "time_off": [],
    },
    {
        "name": "Celia Moreau",
        "pattern": {
            "Mon": [("12:00", "20:00")],
            "Fri": [("12:00", "20:00")],
            "Sun": [("11:00", "16:00")],
        },
        "time_off": [(3, 3, "Appointment")],
    },
]


def build_pattern(rows: Dict[str, List[Tuple[str, str]]], effective_from: datetime.date) -> List[Dict]:
    pattern = []
    for day_name, windows in rows.items():
        for start, end in windows:
            pattern.append(
                {
                    "day_of_week": DAY_INDEX[day_name],
                    "start_time": start,
                    "end_time": end,
                    "effective_from": effective_from,
                }
            )
    return pattern


def seed_staff(effective_from: datetime.date) -> None:
    init_database()
    created = 0
    with SessionLocal() as session:
        for entry in SAMPLE_STAFF:
            employee = session.scalars(select(Employee).where(Employee.full_name == entry["name"])).first()
            if not employee:
                employee = Employee(full_name=entry["name"], employment_type="stylist", status="active")
                session.add(employee)
                session.commit()
                created += 1
            result = set_regular_shifts(
                session,
                employee.id,
                build_pattern(entry["pattern"], effective_from),
                actor="seed",
            )
            if not result.ok:
                print(f"[seed] Pattern for {entry['name']} rejected: {result.error}")
            for start_offset, end_offset, reason in entry["time_off"]:
                result = request_time_off(
                    session,
                    {
                        "employee_id": employee.id,
                        "start_date": effective_from + datetime.timedelta(days=start_offset),
                        "end_date": effective_from + datetime.timedelta(days=end_offset),
                        "reason": reason,
                    },
                    actor="seed",
                )
                if not result.ok:
                    print(f"[seed] Time off for {entry['name']} skipped: {result.error}")
    print(f"Seed complete. Created {created} employees, set {len(SAMPLE_STAFF)} weekly patterns.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo staff, weekly patterns and time off.")
    parser.add_argument(
        "--effective-from",
        type=datetime.date.fromisoformat,
        default=datetime.date.today(),
        help="First date the seeded patterns apply (YYYY-MM-DD).",
    )
    args = parser.parse_args()
    seed_staff(args.effective_from)
