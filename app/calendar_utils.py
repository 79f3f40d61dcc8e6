from __future__ import annotations

import datetime
from typing import List, Optional, Tuple

import settings


def day_index(date_value: datetime.date) -> int:
    """Return the day number for ``date_value`` (0 = Sunday ... 6 = Saturday)."""
    if isinstance(date_value, datetime.datetime):
        date_value = date_value.date()
    return (date_value.weekday() + 1) % 7


def _check_week_start_day(week_start_day: int) -> int:
    if isinstance(week_start_day, bool) or not isinstance(week_start_day, int) or not 0 <= week_start_day <= 6:
        raise ValueError(f"week_start_day must be an integer 0-6, got {week_start_day!r}.")
    return week_start_day


def normalize_week_start(anchor: datetime.date, week_start_day: Optional[int] = None) -> datetime.date:
    """Return the most recent date on or before ``anchor`` that starts a week."""
    if isinstance(anchor, datetime.datetime):
        anchor = anchor.date()
    if week_start_day is None:
        week_start_day = settings.WEEK_START_DAY
    week_start_day = _check_week_start_day(week_start_day)
    offset = (day_index(anchor) - week_start_day) % 7
    return anchor - datetime.timedelta(days=offset)


def week_dates(anchor: datetime.date, week_start_day: Optional[int] = None) -> List[datetime.date]:
    start = normalize_week_start(anchor, week_start_day)
    return [start + datetime.timedelta(days=offset) for offset in range(7)]


def week_bounds(anchor: datetime.date, week_start_day: Optional[int] = None) -> Tuple[datetime.date, datetime.date]:
    dates = week_dates(anchor, week_start_day)
    return dates[0], dates[-1]


def format_week_label(week_start: datetime.date) -> str:
    end = week_start + datetime.timedelta(days=6)
    start_str = week_start.strftime("%b %d")
    end_str = end.strftime("%b %d")
    if week_start.year != end.year:
        start_str = week_start.strftime("%b %d %Y")
        end_str = end.strftime("%b %d %Y")
    return f"{start_str} - {end_str}"


def to_local(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as naive local wall-clock time."""
    if value.tzinfo is None:
        return value
    return value.astimezone(settings.LOCAL_TZ).replace(tzinfo=None)


def local_date(value: datetime.datetime) -> datetime.date:
    return to_local(value).date()


def parse_time(label: str | datetime.time) -> datetime.time:
    if isinstance(label, datetime.time):
        return label
    try:
        return datetime.time.fromisoformat(str(label).strip())
    except ValueError:
        raise ValueError(f"Invalid time of day '{label}', expected HH:MM.") from None


def parse_date(label: str | datetime.date) -> datetime.date:
    if isinstance(label, datetime.datetime):
        return label.date()
    if isinstance(label, datetime.date):
        return label
    try:
        return datetime.date.fromisoformat(str(label).strip())
    except ValueError:
        raise ValueError(f"Invalid date '{label}', expected YYYY-MM-DD.") from None
