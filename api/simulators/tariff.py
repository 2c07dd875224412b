"""Grid import/export pricing.

Each month is billed separately from the hours that fall in it:

    energy   = Σ_h import[h] × rate(season, day_type, period)[h]
    credit   = Σ_h export[h] × export_rate
    demand   = max_h import[h] / power_factor × demand_charge_per_kva
    bill     = fixed + network_access + demand + energy − credit

and the annual cost is the sum of the twelve monthly bills.  A 24-hour
representative day is billed as if it repeated on every day of each month.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, NamedTuple, Optional, Sequence

from api.simulators.tou import TouClassifier
from lib.constants import DEFAULT_POWER_FACTOR, HOURS_IN_DAY, MONTHS_IN_YEAR
from lib.time_util import days_in_month, month_of_hour
from lib.types import DAY_TYPES, SEASONS, TOU_PERIODS, DayType, HourRecord, Season, TouPeriod, TouSlot

RateKey = tuple[Season, DayType, TouPeriod]

ALL_RATE_KEYS: tuple[RateKey, ...] = tuple(
    (s, d, p) for s in SEASONS for d in DAY_TYPES for p in TOU_PERIODS
)


@dataclass(frozen=True)
class TariffStructure:
    """Energy rates (R/kWh) by TOU bucket plus the monthly charges.

    Args:
        rates:                 Rate for every ``(season, day_type, period)``.
        fixed_monthly_charge:  R per month.
        demand_charge_per_kva: R per kVA of monthly peak grid demand.
        network_access_charge: R per month.
        export_rate:           R/kWh credited for exported energy.
        power_factor:          Converts peak kW into kVA.
    """

    rates: Mapping[RateKey, float]
    fixed_monthly_charge: float = 0.0
    demand_charge_per_kva: float = 0.0
    network_access_charge: float = 0.0
    export_rate: float = 0.0
    power_factor: float = DEFAULT_POWER_FACTOR

    def __post_init__(self) -> None:
        missing = [k for k in ALL_RATE_KEYS if k not in self.rates]
        if missing:
            raise ValueError(f"rate table is missing {len(missing)} bucket(s), e.g. {missing[0]}")
        if any(r < 0 for r in self.rates.values()):
            raise ValueError("energy rates must be >= 0")
        for name in ("fixed_monthly_charge", "demand_charge_per_kva", "network_access_charge", "export_rate"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if not 0.0 < self.power_factor <= 1.0:
            raise ValueError("power_factor must be in (0, 1]")

    @classmethod
    def flat(cls, rate: float, **charges: float) -> TariffStructure:
        """Same energy rate in every bucket."""
        return cls(rates={k: rate for k in ALL_RATE_KEYS}, **charges)

    @classmethod
    def from_period_rates(
        cls,
        high: Mapping[TouPeriod, float],
        low: Mapping[TouPeriod, float],
        **charges: float,
    ) -> TariffStructure:
        """Rates that vary by season and period but not by day type."""
        by_season = {"high": high, "low": low}
        try:
            rates = {(s, d, p): by_season[s][p] for s, d, p in ALL_RATE_KEYS}
        except KeyError as exc:
            raise ValueError(f"missing rate for period {exc.args[0]!r}") from exc
        return cls(rates=rates, **charges)

    def rate(self, slot: TouSlot) -> float:
        return self.rates[(slot.season, slot.day_type, slot.tou_period)]


@dataclass(frozen=True)
class MonthlyBill:
    month: int
    import_kwh: float
    export_kwh: float
    energy_charge: float
    export_credit: float
    peak_import_kw: float
    peak_demand_kva: float
    demand_charge: float
    fixed_charge: float
    network_charge: float

    @property
    def total(self) -> float:
        return self.fixed_charge + self.network_charge + self.demand_charge + self.energy_charge - self.export_credit


@dataclass(frozen=True)
class AnnualBill:
    months: list[MonthlyBill] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return sum(m.total for m in self.months)

    @property
    def energy_charge(self) -> float:
        return sum(m.energy_charge for m in self.months)

    @property
    def demand_charge(self) -> float:
        return sum(m.demand_charge for m in self.months)

    @property
    def export_credit(self) -> float:
        return sum(m.export_credit for m in self.months)

    @property
    def import_kwh(self) -> float:
        return sum(m.import_kwh for m in self.months)


class _Flow(NamedTuple):
    index: int
    slot: TouSlot
    import_kw: float
    export_kw: float


class GridAccountant:
    """Turn hourly grid flows into twelve monthly bills.

    Args:
        tariff:         Tariff to price against.
        reference_year: Calendar year used to assign hours to months.
    """

    def __init__(self, tariff: TariffStructure, reference_year: int = 2025) -> None:
        self.tariff = tariff
        self.reference_year = reference_year

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _month_bill(self, month: int, flows: Sequence[_Flow], days: int) -> MonthlyBill:
        t = self.tariff
        import_kwh = sum(f.import_kw for f in flows) * days
        export_kwh = sum(f.export_kw for f in flows) * days
        energy = sum(f.import_kw * t.rate(f.slot) for f in flows) * days
        peak_kw = max((f.import_kw for f in flows), default=0.0)
        peak_kva = peak_kw / t.power_factor
        return MonthlyBill(
            month=month,
            import_kwh=import_kwh,
            export_kwh=export_kwh,
            energy_charge=energy,
            export_credit=export_kwh * t.export_rate,
            peak_import_kw=peak_kw,
            peak_demand_kva=peak_kva,
            demand_charge=peak_kva * t.demand_charge_per_kva,
            fixed_charge=t.fixed_monthly_charge,
            network_charge=t.network_access_charge,
        )

    def _bill_flows(self, flows: Sequence[_Flow]) -> AnnualBill:
        representative_day = len(flows) == HOURS_IN_DAY
        by_month: dict[int, list[_Flow]] = {m: [] for m in range(1, MONTHS_IN_YEAR + 1)}
        if representative_day:
            for m in by_month:
                by_month[m] = list(flows)
        else:
            for f in flows:
                by_month[month_of_hour(self.reference_year, f.index)].append(f)

        return AnnualBill(
            months=[
                self._month_bill(
                    m,
                    hours,
                    days_in_month(self.reference_year, m) if representative_day else 1,
                )
                for m, hours in by_month.items()
            ]
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def bill(self, records: Sequence[HourRecord]) -> AnnualBill:
        """Bill the post-battery grid flows of a dispatch run."""
        return self._bill_flows(
            [
                _Flow(r.index, TouSlot(r.season, r.day_type, r.tou_period), r.grid_import_kw, r.grid_export_kw)
                for r in records
            ]
        )

    def bill_load(
        self,
        load_kw: Sequence[float],
        classifier: Optional[TouClassifier] = None,
        start_hour: int = 0,
    ) -> AnnualBill:
        """Bill a raw load curve as if every kWh came from the grid."""
        classifier = classifier or TouClassifier()
        return self._bill_flows(
            [
                _Flow(start_hour + i, classifier.classify(start_hour + i), max(v, 0.0), 0.0)
                for i, v in enumerate(load_kw)
            ]
        )
