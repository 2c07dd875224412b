"""Solar generation models.

Both models turn an hourly irradiance shape into an hourly AC output curve
through the same call, ``generate(hour_shape, capacity_kw)``, so the scenario
layer can pick one by configuration.

Simplified model
----------------

A PVWatts-style clipped model driven by a peak-normalised shape ``s[n]``:

    P_dc[n]  = s[n] × P_ac_rated × (DC/AC ratio)
    P_clip[n] = P_dc[n] − min(P_dc[n], P_ac_rated)
    P_ac[n]  = min(P_dc[n], P_ac_rated) × (1 − derate)

Clipped energy is reported separately for loss accounting.

Detailed loss-chain model
-------------------------

Annual energy from the collector area, module efficiency at STC and a fixed
ordered chain of losses applied multiplicatively:

    E_year = GHI_year × A × η_stc × Π_k (1 − L_k)

with stages soiling → shading → temperature → mismatch → wiring → inverter
→ availability → transformer → auxiliary.  The hourly curve is the annual
total redistributed in proportion to the GHI shape:

    P_ac[n] = E_year × G[n] / Σ G

(for a 24-hour representative day the daily share ``E_year / 365`` is
distributed instead).  Derived figures:

    specific yield    = E_year / P_dc_rated                   [kWh/kWp/yr]
    performance ratio = E_year / (GHI_year × P_ac_rated) × 100 [%]
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Optional, Protocol, Sequence

from lib.constants import DAYS_IN_YEAR, G_STC_WM2, HOURS_IN_DAY, HOURS_IN_YEAR
from lib.series_util import peak_normalize

_NOCT_REFERENCE_WM2 = 800.0  # irradiance at which NOCT is specified

# Clear-sky generation shape, peak-normalised, hour 0 first.
DEFAULT_PV_SHAPE: tuple[float, ...] = (
    0.0, 0.0, 0.0, 0.0, 0.0, 0.02,
    0.08, 0.20, 0.38, 0.58, 0.78, 0.92,
    1.00, 0.98, 0.90, 0.75, 0.55, 0.32,
    0.12, 0.02, 0.0, 0.0, 0.0, 0.0,
)


@dataclass(frozen=True)
class SolarGeneration:
    ac_kw: list[float]
    dc_kw: list[float]
    clipped_kw: list[float]

    @property
    def total_ac_kwh(self) -> float:
        return sum(self.ac_kw)

    @property
    def total_clipped_kwh(self) -> float:
        return sum(self.clipped_kw)


class SolarModel(Protocol):
    def generate(self, hour_shape: Sequence[float], capacity_kw: float) -> list[float]:
        ...

    def simulate(self, hour_shape: Sequence[float], capacity_kw: float) -> SolarGeneration:
        ...


def _check_length(hour_shape: Sequence[float]) -> None:
    if len(hour_shape) not in (HOURS_IN_DAY, HOURS_IN_YEAR):
        raise ValueError(
            f"hour_shape must have {HOURS_IN_DAY} or {HOURS_IN_YEAR} values, got {len(hour_shape)}"
        )


def _check_capacity(capacity_kw: float) -> None:
    if capacity_kw < 0:
        raise ValueError("capacity_kw must be >= 0")


# ---------------------------------------------------------------------------
# Simplified (clipped) model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimplifiedSolarModel:
    """Clipped PVWatts-style generation from a normalised shape.

    Args:
        dc_ac_ratio:    DC array size relative to the inverter AC rating.
        derate_percent: Overall uncertainty margin applied after clipping
                        (0-100).
    """

    dc_ac_ratio: float = 1.2
    derate_percent: float = 0.0

    def __post_init__(self) -> None:
        if self.dc_ac_ratio <= 0:
            raise ValueError("dc_ac_ratio must be positive")
        if not 0.0 <= self.derate_percent <= 100.0:
            raise ValueError("derate_percent must be in [0, 100]")

    def simulate(self, hour_shape: Sequence[float], capacity_kw: float) -> SolarGeneration:
        """Run the model and keep DC and clipping detail.

        Args:
            hour_shape:  Irradiance or generation shape, any scale; it is
                         peak-normalised before use.  24 or 8,760 values.
            capacity_kw: Inverter AC rating (kW).

        Returns:
            A :class:`SolarGeneration` with AC, DC and clipped series.

        Raises:
            ValueError: If the shape length is unsupported or capacity is
                        negative.
        """
        _check_length(hour_shape)
        _check_capacity(capacity_kw)

        shape = peak_normalize(hour_shape)
        dc_capacity = capacity_kw * self.dc_ac_ratio
        keep = 1.0 - self.derate_percent / 100.0

        dc: list[float] = []
        ac: list[float] = []
        clipped: list[float] = []
        for s in shape:
            p_dc = s * dc_capacity
            p_inv = min(p_dc, capacity_kw)
            dc.append(p_dc)
            clipped.append(p_dc - p_inv)
            ac.append(p_inv * keep)

        return SolarGeneration(ac_kw=ac, dc_kw=dc, clipped_kw=clipped)

    def generate(self, hour_shape: Sequence[float], capacity_kw: float) -> list[float]:
        return self.simulate(hour_shape, capacity_kw).ac_kw


# ---------------------------------------------------------------------------
# Detailed loss-chain model
# ---------------------------------------------------------------------------


def temperature_loss_percent(
    ambient_temp_c: float,
    noct_c: float = 45.0,
    temp_coefficient_pct: float = -0.40,
    irradiance_wm2: float = _NOCT_REFERENCE_WM2,
) -> float:
    """Power loss (%) from cell heating above 25 °C.

    ``T_cell = T_amb + (NOCT − 20) × G / 800``; the loss is
    ``max(0, (T_cell − 25) × |γ|)``.
    """
    t_cell = ambient_temp_c + (noct_c - 20.0) * irradiance_wm2 / _NOCT_REFERENCE_WM2
    return max(0.0, (t_cell - 25.0) * abs(temp_coefficient_pct))


@dataclass(frozen=True)
class LossChain:
    """Ordered loss percentages, applied multiplicatively in field order."""

    soiling: float = 3.00
    shading: float = 3.78
    temperature: float = 0.0
    mismatch: float = 3.68
    wiring: float = 1.60
    inverter: float = 1.55
    availability: float = 1.76
    transformer: float = 0.0
    auxiliary: float = 0.0

    def __post_init__(self) -> None:
        for name, pct in self.stages():
            if not 0.0 <= pct < 100.0:
                raise ValueError(f"{name} loss must be in [0, 100), got {pct}")

    def stages(self) -> list[tuple[str, float]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self)]

    def factor(self, until: Optional[str] = None) -> float:
        """Product of ``(1 − L)`` over all stages, or those before *until*."""
        result = 1.0
        for name, pct in self.stages():
            if name == until:
                break
            result *= 1.0 - pct / 100.0
        return result


@dataclass(frozen=True)
class LossChainReport:
    ghi_annual_kwh_m2: float
    annual_output_kwh: float
    dc_capacity_kwp: float
    specific_yield: float
    performance_ratio_pct: float
    waterfall: list[tuple[str, float, float]]


@dataclass(frozen=True)
class LossChainSolarModel:
    """Module-level energy model with an explicit loss chain.

    Args:
        collector_area_m2: Total module area.
        stc_efficiency:    Module efficiency at STC, as a fraction (0, 1].
        losses:            Ordered loss percentages.
        annual_ghi_kwh_m2: Annual GHI.  When omitted it is derived from the
                           hourly shape, which must then be in W/m².
    """

    collector_area_m2: float
    stc_efficiency: float
    losses: LossChain = field(default_factory=LossChain)
    annual_ghi_kwh_m2: Optional[float] = None

    def __post_init__(self) -> None:
        if self.collector_area_m2 < 0:
            raise ValueError("collector_area_m2 must be >= 0")
        if not 0.0 < self.stc_efficiency <= 1.0:
            raise ValueError("stc_efficiency must be in (0, 1]")
        if self.annual_ghi_kwh_m2 is not None and self.annual_ghi_kwh_m2 < 0:
            raise ValueError("annual_ghi_kwh_m2 must be >= 0")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ghi_annual(self, ghi: Sequence[float]) -> float:
        if self.annual_ghi_kwh_m2 is not None:
            return self.annual_ghi_kwh_m2
        total_kwh_m2 = sum(ghi) / 1000.0
        return total_kwh_m2 * DAYS_IN_YEAR if len(ghi) == HOURS_IN_DAY else total_kwh_m2

    @property
    def dc_capacity_kwp(self) -> float:
        return self.collector_area_m2 * self.stc_efficiency * G_STC_WM2 / 1000.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def annual_output_kwh(self, ghi_annual_kwh_m2: float) -> float:
        return ghi_annual_kwh_m2 * self.collector_area_m2 * self.stc_efficiency * self.losses.factor()

    def simulate(self, hour_shape: Sequence[float], capacity_kw: float) -> SolarGeneration:
        """Redistribute the annual output over the GHI shape.

        The AC rating does not cap output here; it only enters the
        performance ratio in :meth:`report`.
        """
        _check_length(hour_shape)
        _check_capacity(capacity_kw)

        ghi = [max(g, 0.0) for g in hour_shape]
        total = sum(ghi)
        if total <= 0:
            zeros = [0.0] * len(ghi)
            return SolarGeneration(ac_kw=zeros, dc_kw=list(zeros), clipped_kw=list(zeros))

        energy = self.annual_output_kwh(self._ghi_annual(ghi))
        if len(ghi) == HOURS_IN_DAY:
            energy /= DAYS_IN_YEAR

        ac = [energy * g / total for g in ghi]
        post_inverter = self.losses.factor() / self.losses.factor(until="inverter")
        dc = [p / post_inverter for p in ac]
        return SolarGeneration(ac_kw=ac, dc_kw=dc, clipped_kw=[0.0] * len(ac))

    def generate(self, hour_shape: Sequence[float], capacity_kw: float) -> list[float]:
        return self.simulate(hour_shape, capacity_kw).ac_kw

    def report(self, hour_shape: Sequence[float], capacity_kw: float) -> LossChainReport:
        """Annual figures and the energy remaining after each loss stage."""
        _check_length(hour_shape)
        _check_capacity(capacity_kw)

        ghi_annual = self._ghi_annual([max(g, 0.0) for g in hour_shape])
        energy = ghi_annual * self.collector_area_m2 * self.stc_efficiency

        waterfall: list[tuple[str, float, float]] = [("input", 0.0, energy)]
        for name, pct in self.losses.stages():
            energy *= 1.0 - pct / 100.0
            waterfall.append((name, pct, energy))

        dc_capacity = self.dc_capacity_kwp
        reference = ghi_annual * capacity_kw
        return LossChainReport(
            ghi_annual_kwh_m2=ghi_annual,
            annual_output_kwh=energy,
            dc_capacity_kwp=dc_capacity,
            specific_yield=energy / dc_capacity if dc_capacity > 0 else 0.0,
            performance_ratio_pct=energy / reference * 100.0 if reference > 0 else 0.0,
            waterfall=waterfall,
        )


SOLAR_MODES = ("simplified", "detailed")
