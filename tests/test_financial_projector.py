"""Tests for api.simulators.financial: cash-flow projection and metrics."""

import pytest

from api.simulators.dispatch import BatteryDispatchSimulator, BatteryState, DispatchConfig
from api.simulators.financial import (
    FinancialParameters,
    FinancialProjector,
    SystemCosts,
    irr,
    mirr,
    npv,
    payback_years,
)

# No escalation, no running costs, no degradation.
STEADY = FinancialParameters(
    tariff_escalation=0.0,
    om_escalation=0.0,
    om_rate=0.0,
    insurance_rate=0.0,
    degradation_rate=0.0,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def daily_result():
    """One representative day: 10 kW load, 4 kW flat solar."""
    return BatteryDispatchSimulator().run([10.0] * 24, [4.0] * 24, BatteryState.none(), DispatchConfig())


# ---------------------------------------------------------------------------
# Metric functions
# ---------------------------------------------------------------------------


def test_npv_discounts_from_year_zero():
    assert npv(0.10, [-100.0, 110.0]) == pytest.approx(0.0)
    assert npv(0.0, [-100.0, 60.0, 60.0]) == pytest.approx(20.0)


def test_irr_simple():
    assert irr([-100.0, 110.0]) == pytest.approx(0.10, abs=1e-6)


def test_irr_without_sign_change_is_undefined():
    assert irr([100.0, 10.0, 10.0]) is None
    assert irr([-100.0, -10.0]) is None


def test_npv_at_irr_is_zero():
    flows = [-1_000_000.0] + [150_000.0 * 1.05 ** t for t in range(20)]
    rate = irr(flows)
    assert rate is not None
    assert npv(rate, flows) == pytest.approx(0.0, abs=1e-2)


def test_mirr_two_periods():
    assert mirr([-100.0, 0.0, 121.0], 0.10, 0.10) == pytest.approx(0.10)


def test_mirr_undefined_without_negative_flows():
    assert mirr([100.0, 50.0], 0.1, 0.1) is None


def test_mirr_needs_two_flows():
    assert mirr([-100.0], 0.1, 0.1) is None


def test_payback_interpolated():
    assert payback_years(100.0, [40.0, 40.0, 40.0]) == pytest.approx(2.5)


def test_payback_never_reached():
    assert payback_years(100.0, [10.0, 10.0]) is None


def test_payback_free_system():
    assert payback_years(0.0, [10.0]) == 0.0


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def test_system_cost_build_up():
    costs = SystemCosts(
        solar_kwp=10.0,
        battery_kwh=20.0,
        professional_fees_pct=10.0,
        project_management_pct=5.0,
        contingency_pct=10.0,
    )
    assert costs.subtotal == pytest.approx(260_000.0)
    assert costs.fees == pytest.approx(39_000.0)
    assert costs.contingency == pytest.approx(29_900.0)
    assert costs.total == pytest.approx(328_900.0)


def test_negative_cost_rejected():
    with pytest.raises(ValueError, match="solar_kwp must be >= 0"):
        SystemCosts(solar_kwp=-1.0)


def test_replacement_outside_life_rejected():
    with pytest.raises(ValueError, match="outside the project life"):
        FinancialParameters(project_years=10, replacements=((12, 0.3),))


def test_invalid_degradation_mode():
    with pytest.raises(ValueError, match="degradation_mode"):
        FinancialParameters(degradation_mode="exponential")


def test_linear_degradation():
    params = FinancialParameters(degradation_rate=0.005)
    assert params.degradation_factor(1) == 1.0
    assert params.degradation_factor(3) == pytest.approx(0.99)


def test_compound_degradation():
    params = FinancialParameters(degradation_rate=0.005, degradation_mode="compound")
    assert params.degradation_factor(3) == pytest.approx(0.995 ** 2)


# ---------------------------------------------------------------------------
# project()
# ---------------------------------------------------------------------------


def test_projection_length_and_cumulative():
    rows = FinancialProjector(STEADY).project(100_000.0, 12_500.0, 50_000.0)
    assert len(rows) == 20
    assert rows[0].year == 1
    assert rows[0].cumulative_cash_flow == pytest.approx(-87_500.0)
    assert rows[-1].cumulative_cash_flow == pytest.approx(-100_000.0 + 20 * 12_500.0)


def test_escalation_indices():
    params = FinancialParameters(tariff_escalation=0.10, om_escalation=0.06, degradation_rate=0.0)
    rows = FinancialProjector(params).project(100_000.0, 10_000.0, 1_000.0)
    assert rows[2].tariff_index == pytest.approx(1.21)
    assert rows[2].energy_income == pytest.approx(12_100.0)
    assert rows[2].om_cost == pytest.approx(100_000.0 * 0.035 * 1.06 ** 2)
    assert rows[2].insurance_cost == pytest.approx(100_000.0 * 0.01 * 1.06 ** 2)


def test_scheduled_replacement():
    params = FinancialParameters(
        project_years=12, om_escalation=0.0, om_rate=0.0, insurance_rate=0.0, replacements=((10, 0.5),)
    )
    rows = FinancialProjector(params).project(100_000.0, 20_000.0, 1_000.0)
    assert rows[9].replacement_cost == pytest.approx(50_000.0)
    assert rows[8].replacement_cost == 0.0


def test_negative_system_cost_rejected():
    with pytest.raises(ValueError, match="system_cost must be >= 0"):
        FinancialProjector().project(-1.0, 10.0, 10.0)


# ---------------------------------------------------------------------------
# summarize()
# ---------------------------------------------------------------------------


def test_payback_equals_cost_over_savings():
    projector = FinancialProjector(STEADY)
    rows = projector.project(100_000.0, 12_500.0, 50_000.0)
    summary = projector.summarize(100_000.0, 12_500.0, rows)
    assert summary.payback_years == pytest.approx(8.0)
    assert summary.roi == pytest.approx(12.5)


def test_summary_irr_consistent_with_npv():
    projector = FinancialProjector()
    rows = projector.project(1_000_000.0, 150_000.0, 400_000.0)
    summary = projector.summarize(1_000_000.0, 150_000.0, rows)
    assert summary.irr is not None
    flows = [-1_000_000.0] + [r.net_cash_flow for r in rows]
    assert npv(summary.irr, flows) == pytest.approx(0.0, abs=1e-2)
    assert summary.mirr is not None
    assert summary.npv == pytest.approx(npv(0.09, flows))


def test_lcoe_without_discounting():
    params = FinancialParameters(
        project_years=10, lcoe_discount_rate=0.0, om_rate=0.0, insurance_rate=0.0, degradation_rate=0.0
    )
    projector = FinancialProjector(params)
    rows = projector.project(100_000.0, 5_000.0, 10_000.0)
    assert projector.summarize(100_000.0, 5_000.0, rows).lcoe == pytest.approx(1.0)


def test_lcoe_undefined_without_yield():
    projector = FinancialProjector()
    rows = projector.project(100_000.0, 5_000.0, 0.0)
    assert projector.summarize(100_000.0, 5_000.0, rows).lcoe is None


def test_loss_making_system():
    projector = FinancialProjector(STEADY)
    rows = projector.project(100_000.0, 1_000.0, 1_000.0)
    summary = projector.summarize(100_000.0, 1_000.0, rows)
    assert summary.payback_years is None
    assert summary.npv < 0


# ---------------------------------------------------------------------------
# evaluate() / sensitivity()
# ---------------------------------------------------------------------------


def test_evaluate_uses_annualised_solar(daily_result):
    report = FinancialProjector(STEADY).evaluate(daily_result, 50_000.0, 10_000.0)
    assert report.projections[0].energy_yield_kwh == pytest.approx(4.0 * 24 * 365)
    assert report.summary.system_cost == 50_000.0
    assert report.summary.payback_years == pytest.approx(5.0)


def test_sensitivity_brackets_expected(daily_result):
    result = FinancialProjector().sensitivity(daily_result, 500_000.0, 80_000.0)
    assert result.worst.npv < result.expected.npv < result.best.npv
    assert result.best.system_cost == pytest.approx(450_000.0)
    assert result.worst.annual_savings == pytest.approx(64_000.0)


def test_sensitivity_variation_range(daily_result):
    with pytest.raises(ValueError, match="variation must be in"):
        FinancialProjector().sensitivity(daily_result, 1.0, 1.0, variation=1.5)
