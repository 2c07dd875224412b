"""HTTP tests for the /api routes."""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app


def _body(**overrides) -> dict:
    body = {
        "name": "site",
        "load_kw": [10.0] * 24,
        "solar": {"ac_capacity_kw": 5.0},
        "tariff": {"flat_rate": 2.0},
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def client() -> TestClient:
    return TestClient(create_app())


# ---------------------------------------------------------------------------
# POST /api/scenarios/simulate
# ---------------------------------------------------------------------------


def test_simulate(client):
    resp = client.post("/api/scenarios/simulate", json=_body())
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "site"
    assert data["annual"]["hours"] == 24
    assert data["financial"]["annual_savings"] > 0
    assert len(data["projections"]) == 20
    assert data["hourly"] is None


def test_simulate_with_hourly(client):
    resp = client.post("/api/scenarios/simulate", json=_body(include_hourly=True))
    hourly = resp.json()["hourly"]
    assert len(hourly) == 24
    assert hourly[12]["solar_kw"] == pytest.approx(5.0)


def test_simulate_with_battery_and_tou_rates(client):
    rates = [
        {"season": s, "day_type": d, "tou_period": p, "rate": 3.0 if p == "peak" else 1.0}
        for s in ("high", "low")
        for d in ("weekday", "saturday", "sunday")
        for p in ("peak", "standard", "off-peak")
    ]
    body = _body(
        battery={"capacity_kwh": 40.0, "charge_power_kw": 10.0},
        dispatch={
            "strategy": "tou-arbitrage",
            "charge_windows": [{"start_hour": 0, "end_hour": 6}],
            "discharge_windows": [{"start_hour": 17, "end_hour": 21}],
            "discharge_sources": ["solar", "grid"],
        },
        tariff={"rates": rates},
    )
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.status_code == 200
    assert resp.json()["annual"]["battery_throughput_kwh"] > 0


def test_simulate_tenants(client):
    body = _body(load_kw=[], tenants=[{"name": "shop", "monthly_kwh": 720.0}])
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.status_code == 200
    # one representative day of 1 kW, reported for the full year
    assert resp.json()["annual"]["total_load_kwh"] == pytest.approx(8760.0)


def test_invalid_battery_is_422(client):
    body = _body(battery={"capacity_kwh": 10.0, "charge_power_kw": 5.0, "min_soc": 0.9, "max_soc": 0.5})
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.status_code == 422
    assert "SoC limits" in resp.json()["detail"]


def test_invalid_strategy_is_422(client):
    resp = client.post("/api/scenarios/simulate", json=_body(dispatch={"strategy": "greedy"}))
    assert resp.status_code == 422


def test_bad_window_is_422(client):
    body = _body(dispatch={"charge_windows": [{"start_hour": 0, "end_hour": 30}]})
    assert client.post("/api/scenarios/simulate", json=body).status_code == 422


def test_unknown_loss_category_is_422(client):
    body = _body(solar={"mode": "detailed", "collector_area_m2": 10.0, "losses": {"dust": 2.0}})
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.status_code == 422
    assert "unknown loss category" in resp.json()["detail"]


def test_detailed_solar_without_ghi_is_422(client):
    body = _body(solar={"mode": "detailed", "collector_area_m2": 1000.0, "stc_efficiency": 0.2})
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.status_code == 422
    assert "annual_ghi_kwh_m2" in resp.json()["detail"]


def test_detailed_solar_returns_loss_report(client):
    solar = {
        "mode": "detailed",
        "ac_capacity_kw": 20.0,
        "collector_area_m2": 100.0,
        "stc_efficiency": 0.2,
        "annual_ghi_kwh_m2": 2000.0,
        "ambient_temp_c": 25.0,
    }
    resp = client.post("/api/scenarios/simulate", json=_body(solar=solar))
    assert resp.status_code == 200
    report = resp.json()["solar_report"]
    assert report["dc_capacity_kwp"] == pytest.approx(20.0)
    assert report["specific_yield"] == pytest.approx(report["annual_output_kwh"] / 20.0)
    assert report["performance_ratio_pct"] > 0
    stages = {s["stage"]: s for s in report["waterfall"]}
    assert stages["temperature"]["loss_pct"] == pytest.approx(10.0)
    assert report["waterfall"][-1]["remaining_kwh"] == pytest.approx(report["annual_output_kwh"])


def test_simplified_solar_has_no_loss_report(client):
    assert client.post("/api/scenarios/simulate", json=_body()).json()["solar_report"] is None


def test_incomplete_rate_table_is_422(client):
    body = _body(tariff={"rates": [{"season": "high", "day_type": "weekday", "tou_period": "peak", "rate": 1.0}]})
    assert client.post("/api/scenarios/simulate", json=body).status_code == 422


def test_missing_tariff_is_422(client):
    body = _body()
    del body["tariff"]
    assert client.post("/api/scenarios/simulate", json=body).status_code == 422


def test_misaligned_series_is_422(client):
    body = _body(load_kw=[1.0] * 10)
    assert client.post("/api/scenarios/simulate", json=body).status_code == 422


# ---------------------------------------------------------------------------
# TOU settings in the request
# ---------------------------------------------------------------------------


def test_default_tou_when_omitted(client):
    resp = client.post("/api/scenarios/simulate", json=_body(include_hourly=True))
    # Wednesday 1 January, 08:00, low season
    assert resp.json()["hourly"][8]["tou_period"] == "off-peak"


def test_municipal_preset(client):
    body = _body(include_hourly=True, tou={"preset": "municipal"})
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.status_code == 200
    assert resp.json()["hourly"][8]["tou_period"] == "peak"


def test_custom_hour_map_replaces_preset_entry(client):
    tou = {"hour_maps": [{"season": "low", "day_type": "weekday", "periods": ["peak"] * 24}]}
    resp = client.post("/api/scenarios/simulate", json=_body(include_hourly=True, tou=tou))
    assert resp.status_code == 200
    assert {h["tou_period"] for h in resp.json()["hourly"]} == {"peak"}


def test_high_season_months_from_request(client):
    body = _body(include_hourly=True, tou={"high_season_months": [1]})
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.json()["hourly"][0]["season"] == "high"


def test_holiday_from_request(client):
    body = _body(include_hourly=True, tou={"holidays": ["2025-01-01"]})
    resp = client.post("/api/scenarios/simulate", json=body)
    assert resp.json()["hourly"][0]["day_type"] == "sunday"


@pytest.mark.parametrize(
    "tou",
    [
        {"hour_maps": [{"season": "low", "day_type": "weekday", "periods": ["peak"] * 23}]},
        {"hour_maps": [{"season": "low", "day_type": "weekday", "periods": ["shoulder"] * 24}]},
        {"hour_maps": [{"season": "winter", "day_type": "weekday", "periods": ["peak"] * 24}]},
        {"reference_year": 2024},
        {"high_season_months": [13]},
        {"holidays": ["2026-01-01"]},
    ],
)
def test_invalid_tou_is_422(client, tou):
    resp = client.post("/api/scenarios/simulate", json=_body(tou=tou))
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# POST /api/scenarios/compare
# ---------------------------------------------------------------------------


def test_compare_keeps_order(client):
    body = {"scenarios": [_body(name="a"), _body(name="b", load_kw=[20.0] * 24)]}
    resp = client.post("/api/scenarios/compare", json=body)
    assert resp.status_code == 200
    assert [s["name"] for s in resp.json()] == ["a", "b"]


# ---------------------------------------------------------------------------
# POST /api/scenarios/snapshot
# ---------------------------------------------------------------------------


def test_snapshot(client):
    resp = client.post("/api/scenarios/snapshot", json=_body(include_hourly=True))
    assert resp.status_code == 200
    data = resp.json()
    assert data["scenario.name"] == "site"
    assert "financial.payback_years" in data
    assert len(data["hourly.load_kw"]) == 24


# ---------------------------------------------------------------------------
# GET /api/tou/{hour_index}
# ---------------------------------------------------------------------------


def test_classify_hour(client):
    resp = client.get("/api/tou/0")
    assert resp.status_code == 200
    assert resp.json() == {
        "hour_index": 0,
        "season": "low",
        "day_type": "weekday",
        "tou_period": "off-peak",
    }


def test_classify_hour_out_of_range(client):
    assert client.get("/api/tou/8760").status_code == 404
