"""Hourly battery dispatch simulator.

Runs a battery against a load and solar curve, one hour at a time, under one
of three strategies.  The battery state of charge is the only thing carried
from hour to hour; it travels as an immutable :class:`BatteryState` value
that each step replaces.

Per-hour model
--------------

    net        = load − solar                 (> 0 deficit, < 0 surplus)
    discharge  = min(P_dis, SoC − SoC_min, dischargeable)
    charge     = min(P_ch, SoC_max − SoC, surplus [+ grid])   (only if discharge = 0)
    SoC'       = SoC + charge − discharge
    balance    = net + charge − discharge
    import     = max(0, balance)
    export     = max(0, −balance)

so that ``load + charge + export == solar + discharge + import`` holds
exactly for every hour.  What counts as *dischargeable* and which charge
sources are open is decided per strategy:

    strategy          charge from surplus   charge from grid            dischargeable
    ----------------  --------------------  --------------------------  --------------------------
    self-consumption  always                never                       deficit
    tou-arbitrage     in charge window      in window, if "grid" source  deficit in discharge window
    peak-shaving      always                off-peak hours              deficit above target, peak only
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, NamedTuple, Optional, Sequence

from api.simulators.tou import TouClassifier
from lib.constants import ENERGY_BALANCE_TOLERANCE, HOURS_IN_DAY, HOURS_IN_YEAR
from lib.series_util import tile
from lib.time_util import hour_of_day
from lib.types import (
    ENERGY_SOURCES,
    STRATEGIES,
    EnergySource,
    HourRecord,
    Strategy,
    TimeWindow,
    TouSlot,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SimulationIntegrityError(Exception):
    """A run produced a physically impossible hour and must be discarded."""


class SocBoundsError(SimulationIntegrityError):
    def __init__(self, hour_index: int, soc_kwh: float, min_kwh: float, max_kwh: float) -> None:
        self.hour_index = hour_index
        self.soc_kwh = soc_kwh
        self.min_kwh = min_kwh
        self.max_kwh = max_kwh
        super().__init__(
            f"State of charge {soc_kwh:.6f} kWh left [{min_kwh:.6f}, {max_kwh:.6f}] at hour {hour_index}"
        )


class EnergyBalanceError(SimulationIntegrityError):
    def __init__(self, hour_index: int, imbalance_kw: float) -> None:
        self.hour_index = hour_index
        self.imbalance_kw = imbalance_kw
        super().__init__(f"Energy balance off by {imbalance_kw:.9f} kW at hour {hour_index}")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatteryState:
    """Battery ratings plus the current state of charge (kWh)."""

    capacity_kwh: float
    charge_power_kw: float
    discharge_power_kw: float
    min_soc: float = 0.10
    max_soc: float = 0.95
    soc_kwh: float = 0.0

    def __post_init__(self) -> None:
        if self.capacity_kwh < 0:
            raise ValueError("capacity_kwh must be >= 0")
        if self.charge_power_kw < 0 or self.discharge_power_kw < 0:
            raise ValueError("battery power ratings must be >= 0")
        if not 0.0 <= self.min_soc < self.max_soc <= 1.0:
            raise ValueError("SoC limits must satisfy 0 <= min_soc < max_soc <= 1")
        if not self.min_kwh - ENERGY_BALANCE_TOLERANCE <= self.soc_kwh <= self.max_kwh + ENERGY_BALANCE_TOLERANCE:
            raise ValueError(
                f"soc_kwh {self.soc_kwh} must be within [{self.min_kwh}, {self.max_kwh}]"
            )

    @classmethod
    def initial(
        cls,
        capacity_kwh: float,
        charge_power_kw: float,
        discharge_power_kw: Optional[float] = None,
        min_soc: float = 0.10,
        max_soc: float = 0.95,
        initial_soc: float = 0.50,
    ) -> BatteryState:
        """Build a state from an initial SoC fraction.

        ``discharge_power_kw`` defaults to the charge rating.
        """
        return cls(
            capacity_kwh=capacity_kwh,
            charge_power_kw=charge_power_kw,
            discharge_power_kw=charge_power_kw if discharge_power_kw is None else discharge_power_kw,
            min_soc=min_soc,
            max_soc=max_soc,
            soc_kwh=capacity_kwh * initial_soc,
        )

    @classmethod
    def none(cls) -> BatteryState:
        return cls(capacity_kwh=0.0, charge_power_kw=0.0, discharge_power_kw=0.0, min_soc=0.0, max_soc=1.0)

    @property
    def min_kwh(self) -> float:
        return self.min_soc * self.capacity_kwh

    @property
    def max_kwh(self) -> float:
        return self.max_soc * self.capacity_kwh

    @property
    def usable_kwh(self) -> float:
        return self.capacity_kwh * (self.max_soc - self.min_soc)

    @property
    def headroom_kwh(self) -> float:
        return max(0.0, self.max_kwh - self.soc_kwh)

    @property
    def available_kwh(self) -> float:
        return max(0.0, self.soc_kwh - self.min_kwh)

    @property
    def soc_fraction(self) -> float:
        return self.soc_kwh / self.capacity_kwh if self.capacity_kwh > 0 else 0.0

    @property
    def is_active(self) -> bool:
        return self.capacity_kwh > 0 and self.charge_power_kw > 0 and self.discharge_power_kw > 0


@dataclass(frozen=True)
class DispatchConfig:
    """Strategy selection and its time/source constraints.

    Args:
        strategy:               One of ``self-consumption``, ``tou-arbitrage``
                                or ``peak-shaving``.
        charge_windows:         Hours in which TOU arbitrage may charge.
        discharge_windows:      Hours in which TOU arbitrage may discharge.
        discharge_sources:      Sources whose energy may be stored; include
                                ``"grid"`` to let TOU arbitrage charge from
                                the grid.
        peak_shaving_target_kw: Grid draw peak shaving tries to stay under.
                                ``None`` discharges against the whole deficit.
    """

    strategy: Strategy = "self-consumption"
    charge_windows: Sequence[TimeWindow] = ()
    discharge_windows: Sequence[TimeWindow] = ()
    discharge_sources: frozenset[EnergySource] = frozenset({"solar"})
    peak_shaving_target_kw: Optional[float] = None

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES}, got {self.strategy!r}")
        for name in ("charge_windows", "discharge_windows"):
            windows = getattr(self, name)
            if any(not isinstance(w, TimeWindow) for w in windows):
                raise ValueError(f"{name} must contain TimeWindow values")
            for w in windows:
                if w.is_empty:
                    log.warning(
                        "%s entry %02d-%02d is empty; split overnight windows with TimeWindow.overnight()",
                        name,
                        w.start_hour,
                        w.end_hour,
                    )
        unknown = set(self.discharge_sources) - set(ENERGY_SOURCES)
        if unknown:
            raise ValueError(f"unknown discharge_sources: {sorted(unknown)}")
        if self.peak_shaving_target_kw is not None and self.peak_shaving_target_kw < 0:
            raise ValueError("peak_shaving_target_kw must be >= 0")

    def in_charge_window(self, hour: int) -> bool:
        return any(w.contains(hour) for w in self.charge_windows)

    def in_discharge_window(self, hour: int) -> bool:
        return any(w.contains(hour) for w in self.discharge_windows)


# ---------------------------------------------------------------------------
# Strategy rules
# ---------------------------------------------------------------------------


class HourContext(NamedTuple):
    index: int
    load_kw: float
    solar_kw: float
    slot: TouSlot

    @property
    def net_kw(self) -> float:
        return self.load_kw - self.solar_kw

    @property
    def hour_of_day(self) -> int:
        return hour_of_day(self.index)


class Eligibility(NamedTuple):
    charge_from_surplus: bool
    charge_from_grid: bool
    dischargeable_kw: float


class Decision(NamedTuple):
    charge_kw: float
    discharge_kw: float


def _self_consumption(hour: HourContext, config: DispatchConfig) -> Eligibility:
    return Eligibility(True, False, max(0.0, hour.net_kw))


def _tou_arbitrage(hour: HourContext, config: DispatchConfig) -> Eligibility:
    charging = config.in_charge_window(hour.hour_of_day)
    deficit = max(0.0, hour.net_kw) if config.in_discharge_window(hour.hour_of_day) else 0.0
    return Eligibility(charging, charging and "grid" in config.discharge_sources, deficit)


def _peak_shaving(hour: HourContext, config: DispatchConfig) -> Eligibility:
    period = hour.slot.tou_period
    target = config.peak_shaving_target_kw or 0.0
    deficit = max(0.0, hour.net_kw - target) if period == "peak" else 0.0
    return Eligibility(True, period == "off-peak", deficit)


_RULES: dict[Strategy, Callable[[HourContext, DispatchConfig], Eligibility]] = {
    "self-consumption": _self_consumption,
    "tou-arbitrage": _tou_arbitrage,
    "peak-shaving": _peak_shaving,
}


def decide(hour: HourContext, state: BatteryState, config: DispatchConfig) -> Decision:
    """Charge and discharge power (kW) for one hour.

    An inactive battery (zero capacity or zero power) always returns
    ``(0, 0)``.  A battery never charges and discharges in the same hour.
    """
    if not state.is_active:
        return Decision(0.0, 0.0)

    rule = _RULES[config.strategy](hour, config)

    discharge = min(state.discharge_power_kw, state.available_kwh, rule.dischargeable_kw)
    if discharge > 0:
        return Decision(0.0, discharge)

    source = 0.0
    if rule.charge_from_surplus:
        source += max(0.0, -hour.net_kw)
    if rule.charge_from_grid:
        source = float("inf")
    charge = min(state.charge_power_kw, state.headroom_kwh, source)
    return Decision(max(charge, 0.0), 0.0)


def grid_flows(net_kw: float, charge_kw: float, discharge_kw: float) -> tuple[float, float]:
    """Grid import and export (kW) that cover the hour's residual."""
    balance = net_kw + charge_kw - discharge_kw
    return max(0.0, balance), max(0.0, -balance)


def step(hour: HourContext, state: BatteryState, config: DispatchConfig) -> tuple[HourRecord, BatteryState]:
    """Advance the battery by one hour.

    Returns:
        The hour's record and the battery state after it.

    Raises:
        SocBoundsError:     The new state of charge falls outside its limits.
        EnergyBalanceError: The hour's flows do not balance.
    """
    charge, discharge = decide(hour, state, config)

    soc = state.soc_kwh + charge - discharge
    if not state.min_kwh - ENERGY_BALANCE_TOLERANCE <= soc <= state.max_kwh + ENERGY_BALANCE_TOLERANCE:
        raise SocBoundsError(hour.index, soc, state.min_kwh, state.max_kwh)
    soc = min(max(soc, state.min_kwh), state.max_kwh)

    surplus = max(0.0, -hour.net_kw)
    grid_import, grid_export = grid_flows(hour.net_kw, charge, discharge)

    imbalance = (hour.load_kw + charge + grid_export) - (hour.solar_kw + discharge + grid_import)
    if abs(imbalance) > ENERGY_BALANCE_TOLERANCE:
        raise EnergyBalanceError(hour.index, imbalance)

    next_state = replace(state, soc_kwh=soc)
    record = HourRecord(
        index=hour.index,
        load_kw=hour.load_kw,
        solar_kw=hour.solar_kw,
        battery_charge_kw=charge,
        battery_discharge_kw=discharge,
        soc_fraction=next_state.soc_fraction,
        grid_import_kw=grid_import,
        grid_export_kw=grid_export,
        season=hour.slot.season,
        day_type=hour.slot.day_type,
        tou_period=hour.slot.tou_period,
        battery_charge_from_grid_kw=max(0.0, charge - surplus),
    )
    return record, next_state


# ---------------------------------------------------------------------------
# Annual result
# ---------------------------------------------------------------------------


def _pct(numerator: float, denominator: float) -> float:
    return numerator / denominator * 100.0 if denominator > 0 else 0.0


@dataclass(frozen=True)
class AnnualResult:
    records: tuple[HourRecord, ...]
    final_state: BatteryState
    total_load_kwh: float
    total_solar_kwh: float
    total_grid_import_kwh: float
    total_grid_export_kwh: float
    total_battery_charge_kwh: float
    total_battery_discharge_kwh: float
    total_grid_charge_kwh: float
    solar_used_directly_kwh: float
    peak_load_kw: float
    peak_grid_import_kw: float

    @classmethod
    def from_records(cls, records: Sequence[HourRecord], final_state: BatteryState) -> AnnualResult:
        return cls(
            records=tuple(records),
            final_state=final_state,
            total_load_kwh=sum(r.load_kw for r in records),
            total_solar_kwh=sum(r.solar_kw for r in records),
            total_grid_import_kwh=sum(r.grid_import_kw for r in records),
            total_grid_export_kwh=sum(r.grid_export_kw for r in records),
            total_battery_charge_kwh=sum(r.battery_charge_kw for r in records),
            total_battery_discharge_kwh=sum(r.battery_discharge_kw for r in records),
            total_grid_charge_kwh=sum(r.battery_charge_from_grid_kw for r in records),
            solar_used_directly_kwh=sum(min(r.solar_kw, r.load_kw) for r in records),
            peak_load_kw=max((r.load_kw for r in records), default=0.0),
            peak_grid_import_kw=max((r.grid_import_kw for r in records), default=0.0),
        )

    @property
    def hours(self) -> int:
        return len(self.records)

    @property
    def annualization_factor(self) -> float:
        """Multiplier from the simulated span to a full year (365 for one day)."""
        return HOURS_IN_YEAR / self.hours if self.hours else 0.0

    @property
    def annual_solar_kwh(self) -> float:
        return self.total_solar_kwh * self.annualization_factor

    @property
    def battery_throughput_kwh(self) -> float:
        return self.total_battery_charge_kwh + self.total_battery_discharge_kwh

    # Annualized totals: the simulated span scaled to 8760 h.

    @property
    def annual_load_kwh(self) -> float:
        return self.total_load_kwh * self.annualization_factor

    @property
    def annual_grid_import_kwh(self) -> float:
        return self.total_grid_import_kwh * self.annualization_factor

    @property
    def annual_grid_export_kwh(self) -> float:
        return self.total_grid_export_kwh * self.annualization_factor

    @property
    def annual_battery_charge_kwh(self) -> float:
        return self.total_battery_charge_kwh * self.annualization_factor

    @property
    def annual_battery_discharge_kwh(self) -> float:
        return self.total_battery_discharge_kwh * self.annualization_factor

    @property
    def annual_grid_charge_kwh(self) -> float:
        return self.total_grid_charge_kwh * self.annualization_factor

    @property
    def annual_battery_throughput_kwh(self) -> float:
        return self.battery_throughput_kwh * self.annualization_factor

    @property
    def annual_battery_cycles(self) -> float:
        return self.battery_cycles * self.annualization_factor

    @property
    def self_consumption_pct(self) -> float:
        """Share of load met on site rather than drawn from the grid."""
        load_from_grid = self.total_grid_import_kwh - self.total_grid_charge_kwh
        return _pct(self.total_load_kwh - load_from_grid, self.total_load_kwh)

    @property
    def solar_utilization_pct(self) -> float:
        """Share of generated solar energy that was not exported."""
        return _pct(self.total_solar_kwh - self.total_grid_export_kwh, self.total_solar_kwh)

    @property
    def solar_coverage_pct(self) -> float:
        return _pct(self.solar_used_directly_kwh + self.total_battery_discharge_kwh, self.total_load_kwh)

    @property
    def peak_reduction_pct(self) -> float:
        return _pct(self.peak_load_kw - self.peak_grid_import_kw, self.peak_load_kw)

    @property
    def battery_cycles(self) -> float:
        capacity = self.final_state.capacity_kwh
        return self.total_battery_discharge_kwh / capacity if capacity > 0 else 0.0

    @property
    def battery_utilization_pct(self) -> float:
        """Average daily half-throughput as a share of capacity."""
        capacity = self.final_state.capacity_kwh
        days = self.hours / HOURS_IN_DAY
        if capacity <= 0 or days <= 0:
            return 0.0
        return self.battery_throughput_kwh / 2.0 / capacity / days * 100.0


# ---------------------------------------------------------------------------
# Simulator
# ---------------------------------------------------------------------------


def _align(load_kw: Sequence[float], solar_kw: Sequence[float]) -> tuple[list[float], list[float]]:
    load = list(load_kw)
    solar = list(solar_kw) if solar_kw else [0.0] * len(load)
    if len(load) == len(solar):
        return load, solar
    if {len(load), len(solar)} == {HOURS_IN_DAY, HOURS_IN_YEAR}:
        return tile(load, HOURS_IN_YEAR), tile(solar, HOURS_IN_YEAR)
    raise ValueError(f"load ({len(load)}) and solar ({len(solar)}) lengths are incompatible")


class BatteryDispatchSimulator:
    """Fold :func:`step` over a load/solar series in hour order.

    Args:
        classifier: TOU classifier used to label every hour.  Defaults to
                    one built from the default TOU settings.
    """

    def __init__(self, classifier: TouClassifier | None = None) -> None:
        self._classifier = classifier or TouClassifier()

    def run(
        self,
        load_kw: Sequence[float],
        solar_kw: Sequence[float],
        battery: BatteryState,
        config: DispatchConfig,
        start_hour: int = 0,
    ) -> AnnualResult:
        """Simulate every hour of the series.

        Args:
            load_kw:    Site load per hour (kW), 24 or 8,760 values.
            solar_kw:   Solar AC output per hour (kW).  May be empty for no
                        solar; a 24/8,760 mismatch with the load is tiled.
            battery:    Initial battery state.
            config:     Dispatch strategy.
            start_hour: Hour of the reference year the series starts at,
                        used for TOU classification of a single day.

        Returns:
            An :class:`AnnualResult` with one record per hour.

        Raises:
            ValueError:               Inputs are negative or misaligned.
            SimulationIntegrityError: An hour broke SoC or energy limits.
        """
        if not load_kw:
            log.warning("Empty load series; dispatch run has no effect.")
            return AnnualResult.from_records([], battery)

        load, solar = _align(load_kw, solar_kw)
        if any(v < 0 for v in load) or any(v < 0 for v in solar):
            raise ValueError("load and solar values must be >= 0")
        if start_hour < 0 or start_hour + len(load) > HOURS_IN_YEAR:
            raise ValueError(f"hours {start_hour}..{start_hour + len(load) - 1} fall outside the reference year")
        if not battery.is_active:
            log.debug("Battery inactive (capacity or power is zero); running without storage.")

        state = battery
        records: list[HourRecord] = []
        for offset, (load_h, solar_h) in enumerate(zip(load, solar)):
            index = start_hour + offset
            hour = HourContext(index, load_h, solar_h, self._classifier.classify(index))
            record, state = step(hour, state, config)
            records.append(record)

        result = AnnualResult.from_records(records, state)
        log.info(
            "Dispatch %s over %d h: import %.1f kWh, export %.1f kWh, discharge %.1f kWh",
            config.strategy,
            result.hours,
            result.total_grid_import_kwh,
            result.total_grid_export_kwh,
            result.total_battery_discharge_kwh,
        )
        return result
