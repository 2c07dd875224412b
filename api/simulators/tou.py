"""Time-of-use and season classification for the reference year.

Every hour index ``0..8759`` maps to exactly one
``(season, day_type, tou_period)`` triple:

    season    = "high" if month ∈ high_season_months else "low"
    day_type  = "sunday"   for Sundays and public holidays
                "saturday" for Saturdays
                "weekday"  otherwise
    period    = hour_maps[(season, day_type)][hour_of_day]

The hour maps are plain 24-entry tables, so any tariff's boundaries can be
supplied without touching the classifier.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping

from lib.constants import HOURS_IN_DAY, HOURS_IN_YEAR
from lib.time_util import hour_of_day, hour_timestamp
from lib.types import (
    DAY_TYPES,
    SEASONS,
    TOU_PERIODS,
    DayType,
    Season,
    TimeWindow,
    TouPeriod,
    TouSlot,
)

HourMap = tuple[TouPeriod, ...]


def build_hour_map(
    peak: Iterable[tuple[int, int]] = (),
    standard: Iterable[tuple[int, int]] = (),
    default: TouPeriod = "off-peak",
) -> HourMap:
    """Build a 24-entry period table from half-open ``(start, end)`` ranges.

    Hours covered by neither list fall back to *default*.  Later ranges win
    where ranges overlap, with peak applied after standard.
    """
    hours: list[TouPeriod] = [default] * HOURS_IN_DAY
    for period, ranges in (("standard", standard), ("peak", peak)):
        for start, end in ranges:
            for h in range(start, end):
                hours[h] = period
    return tuple(hours)


_ALL_OFF_PEAK = build_hour_map()

# High-season weekdays: morning and evening peaks, off-peak overnight.
_SIMPLE_HIGH_WEEKDAY = build_hour_map(
    peak=[(7, 10), (18, 20)],
    standard=[(6, 22)],
)


def _uniform(hour_map: HourMap) -> dict[tuple[Season, DayType], HourMap]:
    return {(s, d): hour_map for s in SEASONS for d in DAY_TYPES}


@dataclass(frozen=True)
class TouSettings:
    """Calendar and hour-map table that drive the classifier.

    Args:
        reference_year:     Non-leap year whose calendar defines weekdays.
        high_season_months: Calendar months (1-12) in the high season.
        hour_maps:          Period table per ``(season, day_type)``; every
                            combination must be present.
        holidays:           Dates classified as Sundays.
    """

    reference_year: int = 2025
    high_season_months: frozenset[int] = frozenset({6, 7, 8})
    hour_maps: Mapping[tuple[Season, DayType], HourMap] = field(
        default_factory=lambda: {
            **_uniform(_ALL_OFF_PEAK),
            ("high", "weekday"): _SIMPLE_HIGH_WEEKDAY,
        }
    )
    holidays: frozenset[date] = frozenset()

    def __post_init__(self) -> None:
        if calendar.isleap(self.reference_year):
            raise ValueError(f"reference_year must not be a leap year, got {self.reference_year}")
        if any(not 1 <= m <= 12 for m in self.high_season_months):
            raise ValueError("high_season_months must be calendar months 1-12")
        unknown = set(self.hour_maps) - {(s, d) for s in SEASONS for d in DAY_TYPES}
        if unknown:
            raise ValueError(f"hour_maps has unknown entries {sorted(unknown)}")
        for season in SEASONS:
            for day_type in DAY_TYPES:
                hour_map = self.hour_maps.get((season, day_type))
                if hour_map is None:
                    raise ValueError(f"hour_maps missing entry for ({season}, {day_type})")
                if len(hour_map) != HOURS_IN_DAY:
                    raise ValueError(f"hour map for ({season}, {day_type}) must have 24 entries")
                if any(p not in TOU_PERIODS for p in hour_map):
                    raise ValueError(f"hour map for ({season}, {day_type}) has an unknown period")
        if any(d.year != self.reference_year for d in self.holidays):
            raise ValueError("holidays must fall in the reference year")


DEFAULT_TOU_SETTINGS = TouSettings()

# Municipal-style table with TOU periods in both seasons and on Saturdays.
MUNICIPAL_TOU_SETTINGS = TouSettings(
    hour_maps={
        ("high", "weekday"): build_hour_map(
            peak=[(6, 9), (17, 19)],
            standard=[(9, 12), (14, 17), (19, 22)],
        ),
        ("high", "saturday"): build_hour_map(standard=[(7, 12)]),
        ("high", "sunday"): _ALL_OFF_PEAK,
        ("low", "weekday"): build_hour_map(
            peak=[(7, 10), (18, 20)],
            standard=[(6, 7), (10, 18), (20, 22)],
        ),
        ("low", "saturday"): build_hour_map(standard=[(7, 12), (18, 20)]),
        ("low", "sunday"): _ALL_OFF_PEAK,
    },
)


class TouClassifier:
    """Total mapping from hour index to :class:`TouSlot`.

    Slots for the whole year are computed once at construction; lookups
    afterwards are constant time and side-effect free.
    """

    def __init__(self, settings: TouSettings = DEFAULT_TOU_SETTINGS) -> None:
        self.settings = settings
        self._slots: tuple[TouSlot, ...] = tuple(self._compute(h) for h in range(HOURS_IN_YEAR))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _compute(self, hour_index: int) -> TouSlot:
        ts = hour_timestamp(self.settings.reference_year, hour_index)
        season: Season = "high" if ts.month in self.settings.high_season_months else "low"

        weekday = ts.weekday()
        day_type: DayType
        if weekday == 6 or ts.date() in self.settings.holidays:
            day_type = "sunday"
        elif weekday == 5:
            day_type = "saturday"
        else:
            day_type = "weekday"

        period = self.settings.hour_maps[(season, day_type)][hour_of_day(hour_index)]
        return TouSlot(season=season, day_type=day_type, tou_period=period)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(self, hour_index: int) -> TouSlot:
        """Return the slot for *hour_index*.

        Raises:
            ValueError: If *hour_index* is outside ``0..8759``.
        """
        if not 0 <= hour_index < HOURS_IN_YEAR:
            raise ValueError(f"hour_index must be in [0, {HOURS_IN_YEAR}), got {hour_index}")
        return self._slots[hour_index]

    def classify_year(self) -> list[TouSlot]:
        return list(self._slots)

    def windows_for_period(
        self,
        period: TouPeriod,
        season: Season = "low",
        day_type: DayType = "weekday",
    ) -> list[TimeWindow]:
        """Contiguous same-day windows during which *period* applies."""
        hour_map = self.settings.hour_maps[(season, day_type)]
        windows: list[TimeWindow] = []
        start = None
        for h, p in enumerate(hour_map):
            if p == period and start is None:
                start = h
            elif p != period and start is not None:
                windows.append(TimeWindow(start, h))
                start = None
        if start is not None:
            windows.append(TimeWindow(start, HOURS_IN_DAY))
        return windows
