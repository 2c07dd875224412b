"""Multi-year cash-flow projection and investment metrics.

Cash-flow model
---------------

For project years ``t = 1..N``:

    tariff_index[t] = (1 + tariff_escalation)^(t−1)
    cost_index[t]   = (1 + om_escalation)^(t−1)
    degradation[t]  = max(0, 1 − (t−1)·d)        (linear)
                    = (1 − d)^(t−1)               (compound)

    income[t]       = savings_year1 × tariff_index[t] × degradation[t]
    om[t]           = capital × om_rate × cost_index[t]
    insurance[t]    = capital × insurance_rate × cost_index[t]
    replacement[t]  = Σ capital × fraction × cost_index[t]   (scheduled years)
    net[t]          = income[t] − om[t] − insurance[t] − replacement[t]

with ``cumulative[0] = −capital``.

Metrics
-------

    NPV     = −capital + Σ net[t] / (1 + r)^t
    IRR     = r such that NPV(r) = 0           (Newton-Raphson, from 10 %)
    MIRR    = (FV⁺ at reinvestment / |PV⁻ at finance|)^(1/N) − 1
    LCOE    = (capital + Σ costs[t]/(1+r_l)^t) / Σ yield[t]/(1+r_l)^t
    payback = (t−1) + |cumulative[t−1]| / net[t]   for the first t with cumulative ≥ 0

IRR, MIRR, LCOE and payback are ``None`` when undefined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence

from api.simulators.dispatch import AnnualResult
from lib.root_finding import DEFAULT_SOLVER, NewtonRaphson
from lib.types import YearlyProjection

log = logging.getLogger(__name__)

DegradationMode = Literal["linear", "compound"]

_IRR_INITIAL_GUESS = 0.10


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SystemCosts:
    """Capital cost build-up for a PV + battery installation.

    ``subtotal = kWp × R/kWp + kWh × R/kWh + additional``; fees are a share of
    the subtotal and contingency a share of subtotal plus fees.
    """

    solar_kwp: float
    battery_kwh: float = 0.0
    solar_cost_per_kwp: float = 11_000.0
    battery_cost_per_kwh: float = 7_500.0
    additional_costs: float = 0.0
    professional_fees_pct: float = 0.0
    project_management_pct: float = 0.0
    contingency_pct: float = 0.0

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if value < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def subtotal(self) -> float:
        return (
            self.solar_kwp * self.solar_cost_per_kwp
            + self.battery_kwh * self.battery_cost_per_kwh
            + self.additional_costs
        )

    @property
    def fees(self) -> float:
        return self.subtotal * (self.professional_fees_pct + self.project_management_pct) / 100.0

    @property
    def contingency(self) -> float:
        return (self.subtotal + self.fees) * self.contingency_pct / 100.0

    @property
    def total(self) -> float:
        return self.subtotal + self.fees + self.contingency


@dataclass(frozen=True)
class FinancialParameters:
    """Escalation, degradation and discounting inputs.  Rates are fractions."""

    project_years: int = 20
    discount_rate: float = 0.09
    finance_rate: float = 0.09
    reinvestment_rate: float = 0.10
    lcoe_discount_rate: float = 0.09
    tariff_escalation: float = 0.10
    om_escalation: float = 0.06
    om_rate: float = 0.035
    insurance_rate: float = 0.01
    degradation_rate: float = 0.005
    degradation_mode: DegradationMode = "linear"
    replacements: Sequence[tuple[int, float]] = ()

    def __post_init__(self) -> None:
        if self.project_years < 1:
            raise ValueError("project_years must be >= 1")
        for name in ("discount_rate", "finance_rate", "reinvestment_rate", "lcoe_discount_rate"):
            if getattr(self, name) <= -1:
                raise ValueError(f"{name} must be > -1")
        if self.om_rate < 0 or self.insurance_rate < 0:
            raise ValueError("om_rate and insurance_rate must be >= 0")
        if not 0.0 <= self.degradation_rate < 1.0:
            raise ValueError("degradation_rate must be in [0, 1)")
        if self.degradation_mode not in ("linear", "compound"):
            raise ValueError("degradation_mode must be 'linear' or 'compound'")
        for year, fraction in self.replacements:
            if not 1 <= year <= self.project_years:
                raise ValueError(f"replacement year {year} is outside the project life")
            if fraction < 0:
                raise ValueError("replacement fraction must be >= 0")

    def degradation_factor(self, year: int) -> float:
        if self.degradation_mode == "compound":
            return (1.0 - self.degradation_rate) ** (year - 1)
        return max(0.0, 1.0 - (year - 1) * self.degradation_rate)


# ---------------------------------------------------------------------------
# Metric functions
# ---------------------------------------------------------------------------


def npv(rate: float, cash_flows: Sequence[float]) -> float:
    """Net present value; ``cash_flows[0]`` is at t = 0."""
    return sum(cf / (1.0 + rate) ** t for t, cf in enumerate(cash_flows))


def irr(cash_flows: Sequence[float], solver: NewtonRaphson = DEFAULT_SOLVER) -> Optional[float]:
    """Internal rate of return, or ``None`` when no root is found.

    Cash flows without a sign change have no IRR.
    """
    if not (any(cf < 0 for cf in cash_flows) and any(cf > 0 for cf in cash_flows)):
        return None

    def f(rate: float) -> float:
        return npv(rate, cash_flows)

    def df(rate: float) -> float:
        return sum(-t * cf / (1.0 + rate) ** (t + 1) for t, cf in enumerate(cash_flows))

    root = solver.solve(f, df, _IRR_INITIAL_GUESS)
    if root is None or root <= -1:
        return None
    return root


def mirr(cash_flows: Sequence[float], finance_rate: float, reinvestment_rate: float) -> Optional[float]:
    """Modified IRR over ``len(cash_flows) − 1`` periods, or ``None``."""
    n = len(cash_flows) - 1
    if n < 1:
        return None
    pv_negative = sum(cf / (1.0 + finance_rate) ** t for t, cf in enumerate(cash_flows) if cf < 0)
    fv_positive = sum(cf * (1.0 + reinvestment_rate) ** (n - t) for t, cf in enumerate(cash_flows) if cf > 0)
    if pv_negative >= 0 or fv_positive <= 0:
        return None
    return (fv_positive / -pv_negative) ** (1.0 / n) - 1.0


def payback_years(initial_cost: float, net_cash_flows: Sequence[float]) -> Optional[float]:
    """Interpolated payback period, or ``None`` if beyond the horizon."""
    cumulative = -initial_cost
    if cumulative >= 0:
        return 0.0
    for year, net in enumerate(net_cash_flows, start=1):
        previous = cumulative
        cumulative += net
        if cumulative >= 0:
            return (year - 1) + (-previous) / net
    return None


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FinancialSummary:
    system_cost: float
    annual_savings: float
    payback_years: Optional[float]
    roi: float
    npv: float
    irr: Optional[float]
    mirr: Optional[float]
    lcoe: Optional[float]


@dataclass(frozen=True)
class FinancialReport:
    summary: FinancialSummary
    projections: list[YearlyProjection] = field(default_factory=list)


@dataclass(frozen=True)
class SensitivityResult:
    expected: FinancialSummary
    best: FinancialSummary
    worst: FinancialSummary
    variation: float


# ---------------------------------------------------------------------------
# Projector
# ---------------------------------------------------------------------------


class FinancialProjector:
    """Extend one simulated year into an N-year cash-flow table.

    Args:
        params: Escalation and discounting inputs.
        solver: Root finder used for IRR.
    """

    def __init__(self, params: FinancialParameters | None = None, solver: NewtonRaphson = DEFAULT_SOLVER) -> None:
        self.params = params or FinancialParameters()
        self.solver = solver

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _replacement_fraction(self, year: int) -> float:
        return sum(fraction for y, fraction in self.params.replacements if y == year)

    def _lcoe(self, system_cost: float, rows: Sequence[YearlyProjection]) -> Optional[float]:
        r = self.params.lcoe_discount_rate
        costs = system_cost
        energy = 0.0
        for row in rows:
            discount = (1.0 + r) ** row.year
            costs += (row.om_cost + row.insurance_cost + row.replacement_cost) / discount
            energy += row.energy_yield_kwh / discount
        return costs / energy if energy > 0 else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def project(
        self,
        system_cost: float,
        annual_savings: float,
        annual_yield_kwh: float,
    ) -> list[YearlyProjection]:
        """Build the year-by-year cash-flow table.

        Args:
            system_cost:      Year-0 capital cost.
            annual_savings:   Year-1 bill saving from the system.
            annual_yield_kwh: Year-1 solar energy delivered.

        Returns:
            One :class:`YearlyProjection` per project year.
        """
        if system_cost < 0:
            raise ValueError("system_cost must be >= 0")

        p = self.params
        rows: list[YearlyProjection] = []
        cumulative = -system_cost
        for year in range(1, p.project_years + 1):
            tariff_index = (1.0 + p.tariff_escalation) ** (year - 1)
            cost_index = (1.0 + p.om_escalation) ** (year - 1)
            degradation = p.degradation_factor(year)

            income = annual_savings * tariff_index * degradation
            om = system_cost * p.om_rate * cost_index
            insurance = system_cost * p.insurance_rate * cost_index
            replacement = system_cost * self._replacement_fraction(year) * cost_index
            net = income - om - insurance - replacement
            cumulative += net

            rows.append(
                YearlyProjection(
                    year=year,
                    energy_yield_kwh=annual_yield_kwh * degradation,
                    energy_income=income,
                    om_cost=om,
                    insurance_cost=insurance,
                    replacement_cost=replacement,
                    net_cash_flow=net,
                    cumulative_cash_flow=cumulative,
                    discounted_cash_flow=net / (1.0 + p.discount_rate) ** year,
                    tariff_index=tariff_index,
                    cost_index=cost_index,
                )
            )
        return rows

    def summarize(
        self,
        system_cost: float,
        annual_savings: float,
        rows: Sequence[YearlyProjection],
    ) -> FinancialSummary:
        p = self.params
        net_flows = [r.net_cash_flow for r in rows]
        cash_flows = [-system_cost] + net_flows

        irr_value = irr(cash_flows, self.solver)
        if irr_value is None and system_cost > 0:
            log.info("IRR undefined for cash flows starting at %.2f", -system_cost)

        return FinancialSummary(
            system_cost=system_cost,
            annual_savings=annual_savings,
            payback_years=payback_years(system_cost, net_flows),
            roi=net_flows[0] / system_cost * 100.0 if system_cost > 0 and net_flows else 0.0,
            npv=npv(p.discount_rate, cash_flows),
            irr=irr_value,
            mirr=mirr(cash_flows, p.finance_rate, p.reinvestment_rate),
            lcoe=self._lcoe(system_cost, rows),
        )

    def evaluate(self, result: AnnualResult, system_cost: float, annual_savings: float) -> FinancialReport:
        """Project a simulated year and derive every metric."""
        rows = self.project(system_cost, annual_savings, result.annual_solar_kwh)
        return FinancialReport(summary=self.summarize(system_cost, annual_savings, rows), projections=rows)

    def sensitivity(
        self,
        result: AnnualResult,
        system_cost: float,
        annual_savings: float,
        variation: float = 0.20,
    ) -> SensitivityResult:
        """Best and worst cases around the expected outcome.

        Best: savings × (1 + v), cost × (1 − v/2).  Worst: savings × (1 − v),
        cost × (1 + v).
        """
        if not 0.0 <= variation < 1.0:
            raise ValueError("variation must be in [0, 1)")
        return SensitivityResult(
            expected=self.evaluate(result, system_cost, annual_savings).summary,
            best=self.evaluate(result, system_cost * (1 - variation / 2), annual_savings * (1 + variation)).summary,
            worst=self.evaluate(result, system_cost * (1 + variation), annual_savings * (1 - variation)).summary,
            variation=variation,
        )
