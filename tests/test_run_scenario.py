"""Tests for the api.run_scenario command-line entry point."""

import json

import pytest

from api.run_scenario import _parse_args, run


def _write(tmp_path, name: str, **overrides):
    body = {"name": name, "load_kw": [10.0] * 24, "tariff": {"flat_rate": 2.0}}
    body.update(overrides)
    path = tmp_path / f"{name}.json"
    path.write_text(json.dumps(body), encoding="utf-8")
    return path


def test_summary_reports_annual_totals(tmp_path):
    (summary,) = run([_write(tmp_path, "site")])
    assert summary["name"] == "site"
    assert summary["annual_load_kwh"] == pytest.approx(87_600.0)
    assert summary["annual_grid_import_kwh"] == pytest.approx(87_600.0)


def test_runs_keep_file_order(tmp_path):
    paths = [_write(tmp_path, "b"), _write(tmp_path, "a")]
    assert [s["name"] for s in run(paths)] == ["b", "a"]


def test_snapshot_flag(tmp_path):
    (snapshot,) = run([_write(tmp_path, "site")], snapshot=True)
    assert snapshot["annual.total_grid_import_kwh"] == pytest.approx(87_600.0)
    assert not any(k.startswith("hourly.") for k in snapshot)


def test_parse_args(tmp_path):
    args = _parse_args([str(tmp_path / "a.json"), "--snapshot"])
    assert args.snapshot is True
    assert args.output is None
