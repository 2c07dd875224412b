#!/usr/bin/env python
"""Run one or more scenarios from JSON files.

Each file holds the same body accepted by ``POST /api/scenarios/simulate``.
Several files are run concurrently and reported in the order given.

Examples::

    python -m api.run_scenario site.json
    python -m api.run_scenario with_battery.json without_battery.json
    python -m api.run_scenario site.json --snapshot --output site.snapshot.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from api.router import ScenarioRequest
from api.services.scenario import ScenarioResult, ScenarioService

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("run_scenario")


def _load_request(path: Path) -> ScenarioRequest:
    with path.open("r", encoding="utf-8") as fh:
        return ScenarioRequest.model_validate(json.load(fh))


def _summary(result: ScenarioResult) -> dict:
    a = result.annual
    s = result.financial.summary
    return {
        "name": result.name,
        "annual_load_kwh": round(a.annual_load_kwh, 2),
        "annual_solar_kwh": round(a.annual_solar_kwh, 2),
        "annual_grid_import_kwh": round(a.annual_grid_import_kwh, 2),
        "annual_grid_export_kwh": round(a.annual_grid_export_kwh, 2),
        "self_consumption_pct": round(a.self_consumption_pct, 2),
        "peak_grid_import_kw": round(a.peak_grid_import_kw, 2),
        "system_cost": round(s.system_cost, 2),
        "annual_savings": round(s.annual_savings, 2),
        "payback_years": s.payback_years,
        "npv": round(s.npv, 2),
        "irr": s.irr,
        "mirr": s.mirr,
        "lcoe": s.lcoe,
    }


def run(paths: list[Path], snapshot: bool = False) -> list[dict]:
    requests = [_load_request(p) for p in paths]
    scenarios = [r.to_scenario() for r in requests]
    log.info("Running %d scenario(s) …", len(scenarios))

    results = ScenarioService().compare(scenarios)
    if snapshot:
        return [res.to_snapshot(include_hourly=req.include_hourly) for res, req in zip(results, requests)]
    return [_summary(res) for res in results]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate PV + battery scenarios described in JSON files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("paths", nargs="+", type=Path, metavar="SCENARIO_JSON")
    parser.add_argument(
        "--snapshot",
        action="store_true",
        default=False,
        help="Print the flat key-value snapshot instead of the summary.",
    )
    parser.add_argument("--output", type=Path, default=None, help="Write JSON here instead of stdout.")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = _parse_args()
    try:
        output = run(args.paths, snapshot=args.snapshot)
    except Exception as exc:
        log.exception("Scenario run failed: %s", exc)
        sys.exit(1)

    text = json.dumps(output if len(output) > 1 else output[0], indent=2)
    if args.output:
        args.output.write_text(text, encoding="utf-8")
        log.info("Wrote %s", args.output)
    else:
        print(text)
