# agroclima_match/main.py
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from agroclima_match.calibration.handler import calibrate_crops
from agroclima_match.config import MatchConfig, load_config_file
from agroclima_match.explain.charts import render_chart
from agroclima_match.matching.engine import run_matching
from agroclima_match.storage.crop_store import JsonCropStore


PROJECT_NAME = "AgroClima Match"
PROJECT_VERSION = "0.1.0"


def _read_json(path: str) -> Any:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {p}")
    with open(p, "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: str, payload: Any) -> Path:
    out = Path(path).resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return out


def _load_overrides(path: Optional[str]) -> Dict[str, Any]:
    return load_config_file(path) if path else {}


def _forecast_records(raw: Any) -> List[Dict[str, Any]]:
    # accepts a bare list or the {"forecast": [...], "config": {...}} request body
    if isinstance(raw, dict):
        raw = raw.get("forecast")
    if not isinstance(raw, list):
        raise ValueError("Forecast file must hold a list of daily records (or a 'forecast' key).")
    return raw


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_calibrate(args: argparse.Namespace) -> int:
    crops = _read_json(args.crops)
    if isinstance(crops, dict) and isinstance(crops.get("crops"), dict):
        crops = crops["crops"]

    report = calibrate_crops(
        crops,
        _load_overrides(args.config),
        store=JsonCropStore(args.out),
        visualization_dir=args.visualizations,
        chart_renderer=None if args.no_charts else render_chart,
    )

    logs = report.logs
    print(f"{PROJECT_NAME} (v{PROJECT_VERSION}) - calibration {logs.get('status')}")
    print(f"  crops: {logs.get('crop_count')} | weather fetched: {len(logs.get('crops_processed', []))}")
    print(f"  charts: {len(logs.get('visualizations', []))} | errors: {len(logs.get('errors', []))}")
    for err in logs.get("errors", []):
        print(f"  ! {err.get('crop', '-')}: {err.get('message')}")
    if report.success:
        print(f"Output: {logs.get('output_file')}")
        return 0
    print(f"Calibration failed: {report.error}")
    return 1


def cmd_match(args: argparse.Namespace) -> int:
    crops = JsonCropStore(args.crops).load()
    forecast_raw = _read_json(args.forecast)

    overrides = _load_overrides(args.config)
    if isinstance(forecast_raw, dict) and isinstance(forecast_raw.get("config"), dict):
        overrides = {**forecast_raw["config"], **overrides}

    config = MatchConfig.from_overrides(overrides)
    results, log = run_matching(crops, _forecast_records(forecast_raw), config, max_workers=args.workers)

    out = _write_json(
        args.out,
        {"success": True, "results": [r.to_dict() for r in results], "logs": log.to_dict()},
    )

    s = log.summary
    print(f"{PROJECT_NAME} (v{PROJECT_VERSION}) - crop matching")
    print(f"  processed: {s.crops_processed}")
    print(f"  disqualified (duration): {s.crops_disqualified_duration}")
    print(f"  no valid windows: {s.crops_no_valid_windows}")
    print(f"  failed: {s.crops_failed}")
    print(f"  matched: {s.crops_successful}")
    for r in results:
        best = r.best
        print(f"  - {r.name} ({r.variety}): best window {best.start} score={best.score:.4f}")
    print(f"Output: {out}")
    return 0


# =============================================================================
# CLI
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="agroclima-match",
        description="Crop calibration (k values) and crop/forecast window matching.",
    )
    p.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("calibrate", help="Fetch historical weather and compute k values per crop.")
    c.add_argument("--crops", type=str, required=True, help="JSON {name: crop} (or {'crops': {...}})")
    c.add_argument("--config", type=str, default=None, help="Optional JSON with config overrides")
    c.add_argument("--out", type=str, default="crops_k_calibrated.json")
    c.add_argument("--visualizations", type=str, default=None, help="Chart output folder")
    c.add_argument("--no-charts", action="store_true")
    c.set_defaults(func=cmd_calibrate)

    m = sub.add_parser("match", help="Score forecast windows against calibrated crops.")
    m.add_argument("--crops", type=str, default="crops_k_calibrated.json")
    m.add_argument("--forecast", type=str, required=True, help="JSON list of daily records")
    m.add_argument("--config", type=str, default=None, help="Optional JSON with config overrides")
    m.add_argument("--out", type=str, default="match_results.json")
    m.add_argument("--workers", type=int, default=None, help="Match crops on N threads")
    m.set_defaults(func=cmd_match)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
