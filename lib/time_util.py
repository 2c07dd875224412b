from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta

from lib.types import TimeInterval
from lib.constants import MINUTES_IN_HOUR, HOURS_IN_DAY, HOURS_IN_YEAR

INTERVAL_MINUTES: dict[TimeInterval, int] = {
    "hourly": 60,
    "30m": 30,
    "15m": 15,
}

def interval_hours(time_slice: TimeInterval) -> float:
    return INTERVAL_MINUTES[time_slice] / MINUTES_IN_HOUR

def intervals_per_day(time_slice: TimeInterval) -> int:
    return int(HOURS_IN_DAY / interval_hours(time_slice))

def interval_for_points(points_per_day: int) -> TimeInterval:
    """Return the interval whose daily sample count equals *points_per_day*."""
    for name in INTERVAL_MINUTES:
        if intervals_per_day(name) == points_per_day:
            return name
    raise ValueError(f"no interval produces {points_per_day} points per day")

# ---------------------------------------------------------------------------
# Reference-year calendar
# ---------------------------------------------------------------------------

def hour_timestamp(reference_year: int, hour_index: int) -> datetime:
    """Return the naive datetime at the start of *hour_index* in the reference year."""
    if not 0 <= hour_index < HOURS_IN_YEAR:
        raise ValueError(f"hour_index must be in [0, {HOURS_IN_YEAR}), got {hour_index}")
    return datetime.combine(date(reference_year, 1, 1), time.min) + timedelta(hours=hour_index)

def hour_of_day(hour_index: int) -> int:
    return hour_index % HOURS_IN_DAY

def month_of_hour(reference_year: int, hour_index: int) -> int:
    """Calendar month (1-12) containing *hour_index*."""
    return hour_timestamp(reference_year, hour_index).month

def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]
