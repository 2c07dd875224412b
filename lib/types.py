from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


TimeInterval = Literal["hourly", "30m", "15m"]

Season = Literal["high", "low"]
DayType = Literal["weekday", "saturday", "sunday"]
TouPeriod = Literal["peak", "standard", "off-peak"]
Strategy = Literal["self-consumption", "tou-arbitrage", "peak-shaving"]
EnergySource = Literal["solar", "grid"]

SEASONS: tuple[Season, ...] = ("high", "low")
DAY_TYPES: tuple[DayType, ...] = ("weekday", "saturday", "sunday")
TOU_PERIODS: tuple[TouPeriod, ...] = ("peak", "standard", "off-peak")
STRATEGIES: tuple[Strategy, ...] = ("self-consumption", "tou-arbitrage", "peak-shaving")
ENERGY_SOURCES: tuple[EnergySource, ...] = ("solar", "grid")


@dataclass(frozen=True)
class TouSlot:
    season: Season
    day_type: DayType
    tou_period: TouPeriod


@dataclass(frozen=True)
class TimeWindow:
    """Half-open hour range ``[start_hour, end_hour)`` within one day.

    Windows never wrap midnight: ``end_hour < start_hour`` is an empty
    window.  Use :meth:`overnight` to cover a range such as 22:00-06:00.
    """

    start_hour: int
    end_hour: int

    def __post_init__(self) -> None:
        for name in ("start_hour", "end_hour"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer hour, got {value!r}")
            if not 0 <= value <= 24:
                raise ValueError(f"{name} must be in [0, 24], got {value}")

    @property
    def is_empty(self) -> bool:
        return self.end_hour <= self.start_hour

    def contains(self, hour_of_day: int) -> bool:
        return self.start_hour <= hour_of_day < self.end_hour

    @classmethod
    def overnight(cls, start_hour: int, end_hour: int) -> tuple[TimeWindow, TimeWindow]:
        """Split a window that crosses midnight into two same-day windows."""
        return cls(start_hour, 24), cls(0, end_hour)


@dataclass(frozen=True)
class HourRecord:
    index: int
    load_kw: float
    solar_kw: float
    battery_charge_kw: float
    battery_discharge_kw: float
    soc_fraction: float
    grid_import_kw: float
    grid_export_kw: float
    season: Season
    day_type: DayType
    tou_period: TouPeriod
    battery_charge_from_grid_kw: float = 0.0


@dataclass(frozen=True)
class YearlyProjection:
    year: int
    energy_yield_kwh: float
    energy_income: float
    om_cost: float
    insurance_cost: float
    replacement_cost: float
    net_cash_flow: float
    cumulative_cash_flow: float
    discounted_cash_flow: float
    tariff_index: float
    cost_index: float
