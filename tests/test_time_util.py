"""Tests for lib.time_util."""

import pytest
from datetime import datetime

from lib.time_util import (
    days_in_month,
    hour_of_day,
    hour_timestamp,
    interval_for_points,
    interval_hours,
    intervals_per_day,
    month_of_hour,
)


# ---------------------------------------------------------------------------
# interval helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("interval,hours", [("hourly", 1.0), ("30m", 0.5), ("15m", 0.25)])
def test_interval_hours(interval, hours):
    assert interval_hours(interval) == hours


@pytest.mark.parametrize("interval,count", [("hourly", 24), ("30m", 48), ("15m", 96)])
def test_intervals_per_day(interval, count):
    assert intervals_per_day(interval) == count


@pytest.mark.parametrize("points,interval", [(24, "hourly"), (48, "30m"), (96, "15m")])
def test_interval_for_points(points, interval):
    assert interval_for_points(points) == interval


def test_interval_for_points_unsupported():
    with pytest.raises(ValueError, match="no interval produces 30"):
        interval_for_points(30)


# ---------------------------------------------------------------------------
# reference-year calendar
# ---------------------------------------------------------------------------


def test_hour_timestamp_first_hour():
    assert hour_timestamp(2025, 0) == datetime(2025, 1, 1, 0, 0)


def test_hour_timestamp_last_hour():
    assert hour_timestamp(2025, 8759) == datetime(2025, 12, 31, 23, 0)


@pytest.mark.parametrize("bad", [-1, 8760])
def test_hour_timestamp_out_of_range(bad):
    with pytest.raises(ValueError, match="hour_index must be in"):
        hour_timestamp(2025, bad)


def test_hour_of_day_wraps_each_day():
    assert hour_of_day(0) == 0
    assert hour_of_day(23) == 23
    assert hour_of_day(24) == 0
    assert hour_of_day(8759) == 23


def test_month_of_hour_boundaries():
    assert month_of_hour(2025, 0) == 1
    assert month_of_hour(2025, 31 * 24 - 1) == 1
    assert month_of_hour(2025, 31 * 24) == 2


def test_days_in_month_february_non_leap():
    assert days_in_month(2025, 2) == 28

