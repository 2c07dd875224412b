"""Tenant load profile synthesizer.

Builds one site load curve (kW) by summing per-tenant baseline curves.

Model
-----

Each tenant contributes a 24-hour curve from the first source it has:

1.  **Meter curves** (kW, 24/48/96 points or a full 8,760-hour year).  Each
    curve is scaled to the tenant's floor area and the scaled curves are
    blended with normalised weights:

        s_m    = A_tenant / A_meter        (1 when either area is unknown)
        P[h]   = Σ_m w_m × s_m × c_m[h] / Σ_m w_m

2.  **Category curve**: a percentage-of-day shape ``p[h]`` (summing to ~100)
    and an energy intensity:

        E_day  = (E_month_override or kwh_per_m2_month × A_tenant) / 30
        P[h]   = E_day × p[h] / 100

3.  **Flat fallback**: ``E_day / 24`` every hour, where E_day comes from the
    same intensity rule with the default category rate.  A tenant with no
    usable data at all contributes zeros.

Site curve:

    P_site[h] = diversity × Σ_tenants P_t[h]

A 24-hour curve is expanded to 8,760 hours by repeating it for every day of
the reference year, optionally scaled by a day-of-week multiplier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Mapping, Optional, Sequence

from lib.constants import DAYS_IN_YEAR, DAYS_PER_BILLING_MONTH, HOURS_IN_DAY, HOURS_IN_YEAR
from lib.series_util import fill_gaps, to_hourly

log = logging.getLogger(__name__)

DEFAULT_KWH_PER_M2_MONTH: float = 50.0

# Monday=0 ... Sunday=6
DAY_MULTIPLIERS: dict[int, float] = {
    0: 0.92,
    1: 0.96,
    2: 1.00,
    3: 1.04,
    4: 1.08,
    5: 1.05,
    6: 0.88,
}

_DAILY_POINTS = (24, 48, 96)


def _area_ratio(tenant_area: Optional[float], source_area: Optional[float]) -> float:
    if not tenant_area or not source_area or tenant_area <= 0 or source_area <= 0:
        return 1.0
    return tenant_area / source_area


@dataclass(frozen=True)
class MeterCurve:
    """One measured load curve assigned to a tenant."""

    values_kw: Sequence[Optional[float]]
    area_m2: Optional[float] = None
    weight: float = 1.0

    def __post_init__(self) -> None:
        if len(self.values_kw) not in _DAILY_POINTS + (HOURS_IN_YEAR,):
            raise ValueError(
                f"meter curve must have 24, 48, 96 or {HOURS_IN_YEAR} points, "
                f"got {len(self.values_kw)}"
            )
        if self.weight < 0:
            raise ValueError("meter weight must be >= 0")
        if self.area_m2 is not None and self.area_m2 < 0:
            raise ValueError("meter area_m2 must be >= 0")

    @classmethod
    def from_percent_of_day(
        cls,
        percent: Sequence[float],
        daily_kwh: float,
        area_m2: Optional[float] = None,
        weight: float = 1.0,
    ) -> MeterCurve:
        """Build a kW curve from a percentage-of-day shape and a daily energy."""
        if daily_kwh < 0:
            raise ValueError("daily_kwh must be >= 0")
        return cls([daily_kwh * p / 100.0 for p in percent], area_m2=area_m2, weight=weight)

    @property
    def is_annual(self) -> bool:
        return len(self.values_kw) == HOURS_IN_YEAR

    def hourly_kw(self) -> list[float]:
        """Gap-filled curve at hourly resolution (24 or 8,760 values)."""
        filled = [0.0 if v is None else v for v in fill_gaps(self.values_kw)]
        if self.is_annual:
            return filled
        return to_hourly(filled)


@dataclass(frozen=True)
class CategoryProfile:
    """Default consumption shape for a shop/tenant category."""

    name: str
    percent_of_day: Sequence[float]
    kwh_per_m2_month: float = DEFAULT_KWH_PER_M2_MONTH

    def __post_init__(self) -> None:
        if len(self.percent_of_day) != HOURS_IN_DAY:
            raise ValueError("percent_of_day must have 24 values")
        if any(p < 0 for p in self.percent_of_day):
            raise ValueError("percent_of_day values must be >= 0")
        if self.kwh_per_m2_month < 0:
            raise ValueError("kwh_per_m2_month must be >= 0")


@dataclass(frozen=True)
class Tenant:
    name: str
    area_m2: Optional[float] = None
    meters: Sequence[MeterCurve] = ()
    category: Optional[CategoryProfile] = None
    monthly_kwh: Optional[float] = None

    def __post_init__(self) -> None:
        if self.area_m2 is not None and self.area_m2 < 0:
            raise ValueError("area_m2 must be >= 0")
        if self.monthly_kwh is not None and self.monthly_kwh < 0:
            raise ValueError("monthly_kwh must be >= 0")
        if self.meters and sum(m.weight for m in self.meters) <= 0:
            raise ValueError(f"meter weights for tenant {self.name!r} must sum to a positive total")

    def daily_kwh(self, kwh_per_m2_month: float = DEFAULT_KWH_PER_M2_MONTH) -> float:
        """Daily energy from the monthly override or the area intensity."""
        if self.monthly_kwh is not None:
            monthly = self.monthly_kwh
        elif self.area_m2:
            monthly = kwh_per_m2_month * self.area_m2
        else:
            monthly = 0.0
        return monthly / DAYS_PER_BILLING_MONTH


@dataclass
class LoadProfileSynthesizer:
    """Sum tenant baseline curves into one site load curve.

    Args:
        diversity_factor: Multiplier applied to the summed site curve.
        reference_year:   Calendar year used when expanding a day to a year.
        day_multipliers:  Optional weekday (Mon=0) scaling applied when a
                          24-hour curve is expanded to 8,760 hours.
    """

    diversity_factor: float = 1.0
    reference_year: int = 2025
    day_multipliers: Optional[Mapping[int, float]] = field(default=None)

    def __post_init__(self) -> None:
        if self.diversity_factor <= 0:
            raise ValueError("diversity_factor must be positive")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _blend_meters(self, tenant: Tenant) -> list[float]:
        curves = [m.hourly_kw() for m in tenant.meters]
        length = max(len(c) for c in curves)
        curves = [c if len(c) == length else self._expand_day(c) for c in curves]

        total_weight = sum(m.weight for m in tenant.meters)
        blended = [0.0] * length
        for meter, curve in zip(tenant.meters, curves):
            factor = (meter.weight / total_weight) * _area_ratio(tenant.area_m2, meter.area_m2)
            for h, value in enumerate(curve):
                blended[h] += factor * value
        return blended

    def _expand_day(self, day_curve: Sequence[float]) -> list[float]:
        start = date(self.reference_year, 1, 1)
        year: list[float] = []
        for d in range(DAYS_IN_YEAR):
            weekday = (start + timedelta(days=d)).weekday()
            scale = self.day_multipliers.get(weekday, 1.0) if self.day_multipliers else 1.0
            year.extend(v * scale for v in day_curve)
        return year

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tenant_curve(self, tenant: Tenant) -> list[float]:
        """Return the tenant's baseline curve (24 values, or 8,760 for annual meters)."""
        if tenant.meters:
            return self._blend_meters(tenant)

        if tenant.category is not None:
            daily = tenant.daily_kwh(tenant.category.kwh_per_m2_month)
            return [daily * p / 100.0 for p in tenant.category.percent_of_day]

        daily = tenant.daily_kwh()
        log.debug("Tenant %r has no shape data; using flat %.2f kWh/day", tenant.name, daily)
        return [daily / HOURS_IN_DAY] * HOURS_IN_DAY

    def synthesize(self, tenants: Sequence[Tenant], annual: bool = False) -> list[float]:
        """Sum every tenant curve into one site curve.

        Args:
            tenants: Tenants to combine.
            annual:  Force an 8,760-hour result even when every tenant has a
                     24-hour curve.

        Returns:
            Site load in kW: 8,760 values when ``annual`` is set or any tenant
            carries an annual meter curve, otherwise 24.
        """
        curves = [self.tenant_curve(t) for t in tenants]
        length = HOURS_IN_YEAR if annual or any(len(c) == HOURS_IN_YEAR for c in curves) else HOURS_IN_DAY

        if not curves:
            log.warning("No tenants supplied; site load is all zero.")
            return [0.0] * length

        site = [0.0] * length
        for curve in curves:
            if len(curve) != length:
                curve = self._expand_day(curve)
            for h, value in enumerate(curve):
                site[h] += value

        return [v * self.diversity_factor for v in site]
