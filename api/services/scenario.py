from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields, replace
from typing import Any, Literal, Optional, Sequence

from api.config import settings
from api.simulators.dispatch import (
    AnnualResult,
    BatteryDispatchSimulator,
    BatteryState,
    DispatchConfig,
    SimulationIntegrityError,
)
from api.simulators.financial import FinancialParameters, FinancialProjector, FinancialReport, SystemCosts
from api.simulators.load import LoadProfileSynthesizer, Tenant
from api.simulators.solar import (
    DEFAULT_PV_SHAPE,
    SOLAR_MODES,
    LossChain,
    LossChainReport,
    LossChainSolarModel,
    SimplifiedSolarModel,
    SolarGeneration,
    SolarModel,
    temperature_loss_percent,
)
from api.simulators.tariff import AnnualBill, GridAccountant, TariffStructure
from api.simulators.tou import TouClassifier, TouSettings

log = logging.getLogger(__name__)

SolarMode = Literal["simplified", "detailed"]

Snapshot = dict[str, Any]


def default_tou_settings() -> TouSettings:
    return TouSettings(reference_year=settings.REFERENCE_YEAR)


def default_financial_parameters(**overrides: Any) -> FinancialParameters:
    values: dict[str, Any] = dict(
        project_years=settings.PROJECT_YEARS,
        discount_rate=settings.DISCOUNT_RATE,
        finance_rate=settings.FINANCE_RATE,
        reinvestment_rate=settings.REINVESTMENT_RATE,
        lcoe_discount_rate=settings.LCOE_DISCOUNT_RATE,
        tariff_escalation=settings.TARIFF_ESCALATION,
        om_escalation=settings.OM_ESCALATION,
    )
    values.update(overrides)
    return FinancialParameters(**values)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SolarConfig:
    """Which solar model to run and with what parameters.

    In detailed mode ``annual_ghi_kwh_m2`` is required unless ``hour_shape``
    is an irradiance profile in W/m²; a peak-normalized shape carries no
    irradiance level.  When ``ambient_temp_c`` is given the loss chain's
    temperature stage is replaced by :func:`temperature_loss_percent`.
    """

    mode: SolarMode = "simplified"
    hour_shape: Sequence[float] = DEFAULT_PV_SHAPE
    ac_capacity_kw: float = 0.0
    dc_ac_ratio: float = 1.2
    derate_percent: float = 0.0
    collector_area_m2: float = 0.0
    stc_efficiency: float = 0.21
    losses: LossChain = field(default_factory=LossChain)
    annual_ghi_kwh_m2: Optional[float] = None
    ambient_temp_c: Optional[float] = None
    noct_c: float = 45.0
    temp_coefficient_pct: float = -0.40

    def __post_init__(self) -> None:
        if self.mode not in SOLAR_MODES:
            raise ValueError(f"solar mode must be 'simplified' or 'detailed', got {self.mode!r}")
        if self.ac_capacity_kw < 0:
            raise ValueError("ac_capacity_kw must be >= 0")
        if (
            self.mode == "detailed"
            and self.annual_ghi_kwh_m2 is None
            and max(self.hour_shape, default=0.0) <= 1.0
        ):
            raise ValueError(
                "detailed solar mode needs annual_ghi_kwh_m2 unless hour_shape is irradiance in W/m²"
            )

    @property
    def loss_chain(self) -> LossChain:
        if self.ambient_temp_c is None:
            return self.losses
        temperature = temperature_loss_percent(self.ambient_temp_c, self.noct_c, self.temp_coefficient_pct)
        return replace(self.losses, temperature=temperature)

    def model(self) -> SolarModel:
        if self.mode == "detailed":
            return LossChainSolarModel(
                collector_area_m2=self.collector_area_m2,
                stc_efficiency=self.stc_efficiency,
                losses=self.loss_chain,
                annual_ghi_kwh_m2=self.annual_ghi_kwh_m2,
            )
        return SimplifiedSolarModel(dc_ac_ratio=self.dc_ac_ratio, derate_percent=self.derate_percent)

    @property
    def dc_capacity_kwp(self) -> float:
        if self.mode == "detailed":
            return self.collector_area_m2 * self.stc_efficiency
        return self.ac_capacity_kw * self.dc_ac_ratio


@dataclass(frozen=True)
class Scenario:
    """Everything needed for one independent simulation run.

    Supply either ``load_kw`` directly or ``tenants`` for the synthesizer.
    """

    name: str
    tariff: TariffStructure
    load_kw: Sequence[float] = ()
    tenants: Sequence[Tenant] = ()
    annual_load: bool = False
    solar: SolarConfig = field(default_factory=SolarConfig)
    battery: BatteryState = field(default_factory=BatteryState.none)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    costs: Optional[SystemCosts] = None
    financial: FinancialParameters = field(default_factory=default_financial_parameters)
    tou: TouSettings = field(default_factory=default_tou_settings)
    start_hour: int = 0

    def system_costs(self) -> SystemCosts:
        if self.costs is not None:
            return self.costs
        return SystemCosts(solar_kwp=self.solar.dc_capacity_kwp, battery_kwh=self.battery.capacity_kwh)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    annual: AnnualResult
    solar: SolarGeneration
    baseline_bill: AnnualBill
    system_bill: AnnualBill
    financial: FinancialReport
    solar_report: Optional[LossChainReport] = None

    @property
    def annual_savings(self) -> float:
        return self.baseline_bill.total_cost - self.system_bill.total_cost

    def to_snapshot(self, include_hourly: bool = True) -> Snapshot:
        """Flatten the result into dotted keys with scalar or list values.

        ``annual.*`` energy totals are scaled to a full year; ``simulated.*``
        holds the unscaled totals of the span that was actually run.
        """
        a = self.annual
        snapshot: Snapshot = {
            "scenario.name": self.name,
            "simulated.hours": a.hours,
            "simulated.total_load_kwh": a.total_load_kwh,
            "simulated.total_solar_kwh": a.total_solar_kwh,
            "simulated.total_grid_import_kwh": a.total_grid_import_kwh,
            "simulated.total_grid_export_kwh": a.total_grid_export_kwh,
            "annual.total_load_kwh": a.annual_load_kwh,
            "annual.total_solar_kwh": a.annual_solar_kwh,
            "annual.total_grid_import_kwh": a.annual_grid_import_kwh,
            "annual.total_grid_export_kwh": a.annual_grid_export_kwh,
            "annual.total_battery_charge_kwh": a.annual_battery_charge_kwh,
            "annual.total_battery_discharge_kwh": a.annual_battery_discharge_kwh,
            "annual.total_grid_charge_kwh": a.annual_grid_charge_kwh,
            "annual.battery_throughput_kwh": a.annual_battery_throughput_kwh,
            "annual.peak_load_kw": a.peak_load_kw,
            "annual.peak_grid_import_kw": a.peak_grid_import_kw,
            "annual.self_consumption_pct": a.self_consumption_pct,
            "annual.solar_utilization_pct": a.solar_utilization_pct,
            "annual.solar_coverage_pct": a.solar_coverage_pct,
            "annual.peak_reduction_pct": a.peak_reduction_pct,
            "annual.battery_cycles": a.annual_battery_cycles,
            "annual.battery_utilization_pct": a.battery_utilization_pct,
            "annual.final_soc_kwh": a.final_state.soc_kwh,
            "annual.clipped_kwh": self.solar.total_clipped_kwh * a.annualization_factor,
            "bill.baseline_total": self.baseline_bill.total_cost,
            "bill.system_total": self.system_bill.total_cost,
            "bill.system_demand_charge": self.system_bill.demand_charge,
            "bill.system_energy_charge": self.system_bill.energy_charge,
            "bill.system_export_credit": self.system_bill.export_credit,
        }

        for f in fields(self.financial.summary):
            snapshot[f"financial.{f.name}"] = getattr(self.financial.summary, f.name)

        for row in self.financial.projections:
            for f in fields(row):
                if f.name != "year":
                    snapshot[f"projection.{row.year}.{f.name}"] = getattr(row, f.name)

        if self.solar_report is not None:
            report = self.solar_report
            snapshot["solar.ghi_annual_kwh_m2"] = report.ghi_annual_kwh_m2
            snapshot["solar.annual_output_kwh"] = report.annual_output_kwh
            snapshot["solar.dc_capacity_kwp"] = report.dc_capacity_kwp
            snapshot["solar.specific_yield"] = report.specific_yield
            snapshot["solar.performance_ratio_pct"] = report.performance_ratio_pct
            for stage, loss_pct, remaining_kwh in report.waterfall:
                snapshot[f"solar.loss.{stage}.pct"] = loss_pct
                snapshot[f"solar.loss.{stage}.remaining_kwh"] = remaining_kwh

        if include_hourly:
            records = a.records
            for name in (
                "load_kw",
                "solar_kw",
                "battery_charge_kw",
                "battery_discharge_kw",
                "battery_charge_from_grid_kw",
                "soc_fraction",
                "grid_import_kw",
                "grid_export_kw",
                "season",
                "day_type",
                "tou_period",
            ):
                snapshot[f"hourly.{name}"] = [getattr(r, name) for r in records]

        return snapshot


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ScenarioService:
    """Run load → solar → dispatch → billing → finance for scenarios.

    Runs share nothing, so :meth:`compare` executes them on a thread pool
    and returns results in input order.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self._max_workers = max_workers or settings.MAX_SCENARIO_WORKERS

    def _resolve_load(self, scenario: Scenario) -> list[float]:
        if scenario.load_kw:
            return list(scenario.load_kw)
        if scenario.tenants:
            synthesizer = LoadProfileSynthesizer(reference_year=scenario.tou.reference_year)
            return synthesizer.synthesize(scenario.tenants, annual=scenario.annual_load)
        log.warning("Scenario %r has neither a load curve nor tenants.", scenario.name)
        return []

    def run(self, scenario: Scenario) -> ScenarioResult:
        """Run one scenario end to end.

        Raises:
            ValueError:               Configuration or inputs are invalid.
            SimulationIntegrityError: The dispatch run was rejected.
        """
        load = self._resolve_load(scenario)
        config = scenario.solar
        model = config.model()
        solar = model.simulate(config.hour_shape, config.ac_capacity_kw)
        solar_report = None
        if isinstance(model, LossChainSolarModel):
            solar_report = model.report(config.hour_shape, config.ac_capacity_kw)

        classifier = TouClassifier(scenario.tou)
        simulator = BatteryDispatchSimulator(classifier)
        try:
            annual = simulator.run(
                load,
                solar.ac_kw,
                scenario.battery,
                scenario.dispatch,
                start_hour=scenario.start_hour,
            )
        except SimulationIntegrityError:
            log.exception("Scenario %r rejected by integrity check", scenario.name)
            raise

        accountant = GridAccountant(scenario.tariff, reference_year=scenario.tou.reference_year)
        baseline = accountant.bill_load(
            [r.load_kw for r in annual.records], classifier, start_hour=scenario.start_hour
        )
        with_system = accountant.bill(annual.records)
        savings = baseline.total_cost - with_system.total_cost

        system_cost = scenario.system_costs().total
        report = FinancialProjector(scenario.financial).evaluate(annual, system_cost, savings)

        log.info(
            "Scenario %r: savings %.2f/yr, cost %.2f, payback %s",
            scenario.name,
            savings,
            system_cost,
            "n/a" if report.summary.payback_years is None else f"{report.summary.payback_years:.2f} y",
        )
        return ScenarioResult(
            name=scenario.name,
            annual=annual,
            solar=solar,
            baseline_bill=baseline,
            system_bill=with_system,
            financial=report,
            solar_report=solar_report,
        )

    def compare(self, scenarios: Sequence[Scenario]) -> list[ScenarioResult]:
        """Run independent scenarios concurrently; results keep input order."""
        if not scenarios:
            return []
        workers = min(self._max_workers, len(scenarios))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self.run, scenarios))

    def battery_comparison(self, scenario: Scenario) -> tuple[ScenarioResult, ScenarioResult]:
        """Run *scenario* as given and again without storage."""
        costs = scenario.system_costs()
        without = replace(
            scenario,
            name=f"{scenario.name} (no battery)",
            battery=BatteryState.none(),
            costs=replace(costs, battery_kwh=0.0),
        )
        with_battery, without_battery = self.compare([scenario, without])
        return with_battery, without_battery
