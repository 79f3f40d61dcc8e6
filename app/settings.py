from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DATA_DIR = Path(os.getenv("SCHEDULE_DATA_DIR") or Path(__file__).resolve().parent / "data")
SCHEDULE_DATABASE_URL = os.getenv(
    "SCHEDULE_DATABASE_URL",
    f"sqlite:///{(DATA_DIR / 'schedule.db').as_posix()}",
)
LOG_LEVEL = os.getenv("SCHEDULE_LOG_LEVEL", "INFO").upper()


def _read_week_start_day() -> int:
    raw = os.getenv("SCHEDULE_WEEK_START_DAY", "0")
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(
            f"SCHEDULE_WEEK_START_DAY must be an integer 0-6 (0 = Sunday), got {raw!r}."
        ) from None
    if not 0 <= value <= 6:
        raise RuntimeError(f"SCHEDULE_WEEK_START_DAY must be between 0 and 6, got {value}.")
    return value


# Day numbering used everywhere: 0 = Sunday ... 6 = Saturday.
WEEK_START_DAY = _read_week_start_day()
LOCAL_TZ = ZoneInfo(os.getenv("SCHEDULE_TIMEZONE", "UTC"))
