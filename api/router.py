from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.config import settings
from api.services.scenario import (
    Scenario,
    ScenarioResult,
    ScenarioService,
    SolarConfig,
    default_financial_parameters,
    default_tou_settings,
)
from api.simulators.dispatch import BatteryState, DispatchConfig, SimulationIntegrityError
from api.simulators.financial import SystemCosts
from api.simulators.load import CategoryProfile, MeterCurve, Tenant
from api.simulators.solar import LossChain
from api.simulators.tariff import TariffStructure
from api.simulators.tou import MUNICIPAL_TOU_SETTINGS, TouClassifier, TouSettings
from lib.types import TimeWindow

router = APIRouter()

_scenario_service = ScenarioService()
_classifier = TouClassifier(default_tou_settings())


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class MeterRequest(BaseModel):
    values_kw: list[Optional[float]]
    area_m2: Optional[float] = None
    weight: float = 1.0


class TenantRequest(BaseModel):
    name: str
    area_m2: Optional[float] = None
    monthly_kwh: Optional[float] = None
    meters: list[MeterRequest] = []
    category_percent_of_day: Optional[list[float]] = None
    kwh_per_m2_month: float = 50.0

    def to_tenant(self) -> Tenant:
        category = None
        if self.category_percent_of_day is not None:
            category = CategoryProfile(
                name=self.name,
                percent_of_day=self.category_percent_of_day,
                kwh_per_m2_month=self.kwh_per_m2_month,
            )
        return Tenant(
            name=self.name,
            area_m2=self.area_m2,
            monthly_kwh=self.monthly_kwh,
            meters=[MeterCurve(m.values_kw, area_m2=m.area_m2, weight=m.weight) for m in self.meters],
            category=category,
        )


class SolarRequest(BaseModel):
    mode: Literal["simplified", "detailed"] = "simplified"
    hour_shape: Optional[list[float]] = None
    ac_capacity_kw: float = 0.0
    dc_ac_ratio: float = 1.2
    derate_percent: float = 0.0
    collector_area_m2: float = 0.0
    stc_efficiency: float = 0.21
    losses: dict[str, float] = {}
    annual_ghi_kwh_m2: Optional[float] = None
    ambient_temp_c: Optional[float] = None
    noct_c: float = 45.0
    temp_coefficient_pct: float = -0.40

    def to_config(self) -> SolarConfig:
        extra = {"hour_shape": self.hour_shape} if self.hour_shape is not None else {}
        try:
            losses = LossChain(**self.losses)
        except TypeError as exc:
            raise ValueError(f"unknown loss category in {sorted(self.losses)}") from exc
        return SolarConfig(
            mode=self.mode,
            ac_capacity_kw=self.ac_capacity_kw,
            dc_ac_ratio=self.dc_ac_ratio,
            derate_percent=self.derate_percent,
            collector_area_m2=self.collector_area_m2,
            stc_efficiency=self.stc_efficiency,
            losses=losses,
            annual_ghi_kwh_m2=self.annual_ghi_kwh_m2,
            ambient_temp_c=self.ambient_temp_c,
            noct_c=self.noct_c,
            temp_coefficient_pct=self.temp_coefficient_pct,
            **extra,
        )


class BatteryRequest(BaseModel):
    capacity_kwh: float = 0.0
    charge_power_kw: float = 0.0
    discharge_power_kw: Optional[float] = None
    min_soc: float = 0.10
    max_soc: float = 0.95
    initial_soc: float = 0.50


class TimeWindowModel(BaseModel):
    start_hour: int
    end_hour: int


class DispatchRequest(BaseModel):
    strategy: str = "self-consumption"
    charge_windows: list[TimeWindowModel] = []
    discharge_windows: list[TimeWindowModel] = []
    discharge_sources: list[str] = ["solar"]
    peak_shaving_target_kw: Optional[float] = None

    def to_config(self) -> DispatchConfig:
        return DispatchConfig(
            strategy=self.strategy,
            charge_windows=tuple(TimeWindow(w.start_hour, w.end_hour) for w in self.charge_windows),
            discharge_windows=tuple(TimeWindow(w.start_hour, w.end_hour) for w in self.discharge_windows),
            discharge_sources=frozenset(self.discharge_sources),
            peak_shaving_target_kw=self.peak_shaving_target_kw,
        )


class RateEntry(BaseModel):
    season: str
    day_type: str
    tou_period: str
    rate: float


class TariffRequest(BaseModel):
    flat_rate: Optional[float] = None
    rates: list[RateEntry] = []
    fixed_monthly_charge: float = 0.0
    demand_charge_per_kva: float = 0.0
    network_access_charge: float = 0.0
    export_rate: float = 0.0
    power_factor: float = 0.9

    def to_tariff(self) -> TariffStructure:
        charges = dict(
            fixed_monthly_charge=self.fixed_monthly_charge,
            demand_charge_per_kva=self.demand_charge_per_kva,
            network_access_charge=self.network_access_charge,
            export_rate=self.export_rate,
            power_factor=self.power_factor,
        )
        if self.flat_rate is not None:
            return TariffStructure.flat(self.flat_rate, **charges)
        return TariffStructure(
            rates={(r.season, r.day_type, r.tou_period): r.rate for r in self.rates},
            **charges,
        )


class HourMapEntry(BaseModel):
    season: str
    day_type: str
    periods: list[str]


class TouRequest(BaseModel):
    """TOU calendar; ``hour_maps`` entries replace those of the preset."""

    preset: Literal["default", "municipal"] = "default"
    reference_year: Optional[int] = None
    high_season_months: Optional[list[int]] = None
    hour_maps: list[HourMapEntry] = []
    holidays: list[date] = []

    def to_settings(self) -> TouSettings:
        base = MUNICIPAL_TOU_SETTINGS if self.preset == "municipal" else default_tou_settings()
        hour_maps = dict(base.hour_maps)
        hour_maps.update({(m.season, m.day_type): tuple(m.periods) for m in self.hour_maps})
        months = base.high_season_months if self.high_season_months is None else self.high_season_months
        return TouSettings(
            reference_year=self.reference_year or settings.REFERENCE_YEAR,
            high_season_months=frozenset(months),
            hour_maps=hour_maps,
            holidays=frozenset(self.holidays),
        )


class CostsRequest(BaseModel):
    solar_cost_per_kwp: float = 11_000.0
    battery_cost_per_kwh: float = 7_500.0
    additional_costs: float = 0.0
    professional_fees_pct: float = 0.0
    project_management_pct: float = 0.0
    contingency_pct: float = 0.0


class FinancialRequest(BaseModel):
    project_years: Optional[int] = None
    discount_rate: Optional[float] = None
    finance_rate: Optional[float] = None
    reinvestment_rate: Optional[float] = None
    lcoe_discount_rate: Optional[float] = None
    tariff_escalation: Optional[float] = None
    om_escalation: Optional[float] = None
    om_rate: Optional[float] = None
    insurance_rate: Optional[float] = None
    degradation_rate: Optional[float] = None
    degradation_mode: Optional[Literal["linear", "compound"]] = None
    replacements: list[tuple[int, float]] = []


class ScenarioRequest(BaseModel):
    name: str = "scenario"
    load_kw: list[float] = []
    tenants: list[TenantRequest] = []
    annual_load: bool = False
    solar: SolarRequest = Field(default_factory=SolarRequest)
    battery: BatteryRequest = Field(default_factory=BatteryRequest)
    dispatch: DispatchRequest = Field(default_factory=DispatchRequest)
    tariff: TariffRequest
    costs: CostsRequest = Field(default_factory=CostsRequest)
    financial: FinancialRequest = Field(default_factory=FinancialRequest)
    tou: Optional[TouRequest] = None
    start_hour: int = 0
    include_hourly: bool = False

    def to_scenario(self) -> Scenario:
        """Build the engine scenario.

        Raises:
            ValueError: If any part of the configuration is invalid.
        """
        solar = self.solar.to_config()
        battery = BatteryState.initial(
            capacity_kwh=self.battery.capacity_kwh,
            charge_power_kw=self.battery.charge_power_kw,
            discharge_power_kw=self.battery.discharge_power_kw,
            min_soc=self.battery.min_soc,
            max_soc=self.battery.max_soc,
            initial_soc=self.battery.initial_soc,
        )
        overrides = {
            k: v for k, v in self.financial.model_dump().items() if v is not None and k != "replacements"
        }
        financial = default_financial_parameters(replacements=tuple(self.financial.replacements), **overrides)
        tou = self.tou.to_settings() if self.tou is not None else default_tou_settings()
        return Scenario(
            name=self.name,
            tariff=self.tariff.to_tariff(),
            load_kw=self.load_kw,
            tenants=[t.to_tenant() for t in self.tenants],
            annual_load=self.annual_load,
            solar=solar,
            battery=battery,
            dispatch=self.dispatch.to_config(),
            costs=SystemCosts(
                solar_kwp=solar.dc_capacity_kwp,
                battery_kwh=battery.capacity_kwh,
                **self.costs.model_dump(),
            ),
            financial=financial,
            tou=tou,
            start_hour=self.start_hour,
        )


class CompareRequest(BaseModel):
    scenarios: list[ScenarioRequest]


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AnnualSummaryResponse(BaseModel):
    """Energy totals scaled to a full year; ``hours`` is the simulated span."""

    hours: int
    total_load_kwh: float
    total_solar_kwh: float
    total_grid_import_kwh: float
    total_grid_export_kwh: float
    battery_throughput_kwh: float
    peak_load_kw: float
    peak_grid_import_kw: float
    self_consumption_pct: float
    solar_utilization_pct: float
    solar_coverage_pct: float
    peak_reduction_pct: float
    battery_cycles: float


class FinancialSummaryResponse(BaseModel):
    system_cost: float
    annual_savings: float
    payback_years: Optional[float]
    roi: float
    npv: float
    irr: Optional[float]
    mirr: Optional[float]
    lcoe: Optional[float]


class ProjectionResponse(BaseModel):
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


class HourResponse(BaseModel):
    index: int
    load_kw: float
    solar_kw: float
    battery_charge_kw: float
    battery_discharge_kw: float
    soc_fraction: float
    grid_import_kw: float
    grid_export_kw: float
    season: str
    day_type: str
    tou_period: str
    battery_charge_from_grid_kw: float


class LossStageResponse(BaseModel):
    stage: str
    loss_pct: float
    remaining_kwh: float


class SolarReportResponse(BaseModel):
    ghi_annual_kwh_m2: float
    annual_output_kwh: float
    dc_capacity_kwp: float
    specific_yield: float
    performance_ratio_pct: float
    waterfall: list[LossStageResponse]


class ScenarioResponse(BaseModel):
    name: str
    annual: AnnualSummaryResponse
    financial: FinancialSummaryResponse
    projections: list[ProjectionResponse]
    solar_report: Optional[SolarReportResponse] = None
    hourly: Optional[list[HourResponse]] = None


class TouSlotResponse(BaseModel):
    hour_index: int
    season: str
    day_type: str
    tou_period: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build(request: ScenarioRequest) -> Scenario:
    try:
        return request.to_scenario()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _execute(fn, *args):
    try:
        return fn(*args)
    except SimulationIntegrityError as exc:
        raise HTTPException(status_code=500, detail=f"Simulation rejected: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _solar_report(result: ScenarioResult) -> Optional[SolarReportResponse]:
    report = result.solar_report
    if report is None:
        return None
    return SolarReportResponse(
        ghi_annual_kwh_m2=report.ghi_annual_kwh_m2,
        annual_output_kwh=report.annual_output_kwh,
        dc_capacity_kwp=report.dc_capacity_kwp,
        specific_yield=report.specific_yield,
        performance_ratio_pct=report.performance_ratio_pct,
        waterfall=[
            LossStageResponse(stage=stage, loss_pct=pct, remaining_kwh=kwh)
            for stage, pct, kwh in report.waterfall
        ],
    )


def _to_response(result: ScenarioResult, include_hourly: bool) -> ScenarioResponse:
    a = result.annual
    return ScenarioResponse(
        name=result.name,
        annual=AnnualSummaryResponse(
            hours=a.hours,
            total_load_kwh=a.annual_load_kwh,
            total_solar_kwh=a.annual_solar_kwh,
            total_grid_import_kwh=a.annual_grid_import_kwh,
            total_grid_export_kwh=a.annual_grid_export_kwh,
            battery_throughput_kwh=a.annual_battery_throughput_kwh,
            peak_load_kw=a.peak_load_kw,
            peak_grid_import_kw=a.peak_grid_import_kw,
            self_consumption_pct=a.self_consumption_pct,
            solar_utilization_pct=a.solar_utilization_pct,
            solar_coverage_pct=a.solar_coverage_pct,
            peak_reduction_pct=a.peak_reduction_pct,
            battery_cycles=a.annual_battery_cycles,
        ),
        financial=FinancialSummaryResponse(**vars(result.financial.summary)),
        projections=[ProjectionResponse(**vars(row)) for row in result.financial.projections],
        solar_report=_solar_report(result),
        hourly=[HourResponse(**vars(r)) for r in a.records] if include_hourly else None,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/scenarios/simulate", response_model=ScenarioResponse)
def simulate_scenario(request: ScenarioRequest):
    """Run one scenario and return its annual summary and cash-flow table."""
    scenario = _build(request)
    result = _execute(_scenario_service.run, scenario)
    return _to_response(result, request.include_hourly)


@router.post("/scenarios/compare", response_model=list[ScenarioResponse])
def compare_scenarios(request: CompareRequest):
    """Run several independent scenarios concurrently, in request order."""
    scenarios = [_build(s) for s in request.scenarios]
    results = _execute(_scenario_service.compare, scenarios)
    return [_to_response(r, s.include_hourly) for r, s in zip(results, request.scenarios)]


@router.post("/scenarios/snapshot")
def scenario_snapshot(request: ScenarioRequest) -> dict:
    """Run one scenario and return the flat key-value snapshot."""
    scenario = _build(request)
    result = _execute(_scenario_service.run, scenario)
    return result.to_snapshot(include_hourly=request.include_hourly)


@router.get("/tou/{hour_index}", response_model=TouSlotResponse)
def classify_hour(hour_index: int):
    """Classify one hour of the reference year under the default TOU settings."""
    try:
        slot = _classifier.classify(hour_index)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TouSlotResponse(hour_index=hour_index, **vars(slot))
