"""Tests for lib.series_util: fill_gaps, to_hourly, tile, and peak_normalize."""

from __future__ import annotations

import pytest

from lib.series_util import fill_gaps, peak_normalize, tile, to_hourly


# ---------------------------------------------------------------------------
# fill_gaps
# ---------------------------------------------------------------------------


def test_fill_gaps_empty():
    assert fill_gaps([]) == []


def test_fill_gaps_no_gaps():
    data = [1.0, 2.0, 3.0, 4.0]
    assert fill_gaps(data) == pytest.approx(data)


def test_fill_gaps_single_interior_gap():
    # [0, None, 4]  →  [0, 2, 4]
    assert fill_gaps([0.0, None, 4.0]) == pytest.approx([0.0, 2.0, 4.0])


def test_fill_gaps_multiple_interior_gaps():
    # [0, None, None, 9]  →  [0, 3, 6, 9]
    assert fill_gaps([0.0, None, None, 9.0]) == pytest.approx([0.0, 3.0, 6.0, 9.0])


def test_fill_gaps_separate_runs():
    assert fill_gaps([0.0, None, 2.0, 4.0, None, 6.0]) == pytest.approx(
        [0.0, 1.0, 2.0, 4.0, 5.0, 6.0]
    )


def test_fill_gaps_descending():
    assert fill_gaps([10.0, None, 0.0]) == pytest.approx([10.0, 5.0, 0.0])


def test_fill_gaps_leading_none_takes_first_known():
    assert fill_gaps([None, None, 4.0, 8.0]) == pytest.approx([4.0, 4.0, 4.0, 8.0])


def test_fill_gaps_trailing_none_takes_last_known():
    assert fill_gaps([0.0, 2.0, None, None]) == pytest.approx([0.0, 2.0, 2.0, 2.0])


def test_fill_gaps_all_none_unchanged():
    assert fill_gaps([None, None, None]) == [None, None, None]


def test_fill_gaps_single_known_value():
    assert fill_gaps([None, 5.0, None]) == pytest.approx([5.0, 5.0, 5.0])


def test_fill_gaps_does_not_mutate_input():
    original = [0.0, None, 4.0]
    fill_gaps(original)
    assert original == [0.0, None, 4.0]


# ---------------------------------------------------------------------------
# to_hourly
# ---------------------------------------------------------------------------


def test_to_hourly_passes_hourly_through():
    day = [float(h) for h in range(24)]
    assert to_hourly(day) == pytest.approx(day)


def test_to_hourly_averages_half_hours():
    # each hour holds (h, h + 1) → mean h + 0.5
    half_hourly = [v for h in range(24) for v in (float(h), float(h + 1))]
    assert to_hourly(half_hourly) == pytest.approx([h + 0.5 for h in range(24)])


def test_to_hourly_averages_quarter_hours():
    quarter = [4.0, 8.0, 0.0, 0.0] * 24
    assert to_hourly(quarter) == pytest.approx([3.0] * 24)


def test_to_hourly_rejects_odd_length():
    with pytest.raises(ValueError):
        to_hourly([1.0] * 30)


# ---------------------------------------------------------------------------
# tile / peak_normalize
# ---------------------------------------------------------------------------


def test_tile_repeats_day_to_year():
    year = tile(list(range(24)), 8760)
    assert len(year) == 8760
    assert year[24] == 0
    assert year[8759] == 23


def test_tile_empty_gives_zeros():
    assert tile([], 3) == [0.0, 0.0, 0.0]


def test_peak_normalize_scales_to_one():
    assert peak_normalize([0.0, 250.0, 500.0]) == pytest.approx([0.0, 0.5, 1.0])


def test_peak_normalize_clamps_negatives():
    assert peak_normalize([-10.0, 5.0]) == pytest.approx([0.0, 1.0])


def test_peak_normalize_all_zero_stays_zero():
    assert peak_normalize([0.0, 0.0]) == [0.0, 0.0]
