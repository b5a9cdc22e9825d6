# agroclima_match/calibration/handler.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..climate.openmeteo import fetch_crop_weather
from ..config import merge_calibration_config
from ..explain.charts import CROP_CONDITIONS, K_VALUES, ChartSpec, render_chart, save_crop_charts
from ..schemas.inputs import Crop, DailyRecord, crops_to_dict
from ..schemas.outputs import ErrorEntry, utc_now_iso
from ..storage.crop_store import JsonCropStore
from .k_values import compute_k_values
from .planting import with_planting_window

logger = logging.getLogger(__name__)

WeatherProvider = Callable[[Crop, Mapping[str, Any]], Sequence[DailyRecord]]
ChartRenderer = Callable[[ChartSpec], bytes]


@dataclass
class CalibrationReport:
    success: bool
    calibrated_crops: Dict[str, Crop] = field(default_factory=dict)
    logs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "logs": self.logs}
        if self.success:
            out["calibrated_crops"] = crops_to_dict(self.calibrated_crops)
        else:
            out["error"] = self.error
        return out


def _new_logs(crop_count: int) -> Dict[str, Any]:
    return {
        "timestamp": utc_now_iso(),
        "crop_count": crop_count,
        "crops_processed": [],
        "errors": [],
        "visualizations": [],
        "k_calibration": {"logs": []},
        "status": "Started",
    }


def _error_dicts(errors: List[ErrorEntry]) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in errors]


def calibrate_crops(
    crops: Mapping[str, Any],
    config: Optional[Mapping[str, Any]] = None,
    *,
    weather_provider: WeatherProvider = fetch_crop_weather,
    chart_renderer: Optional[ChartRenderer] = render_chart,
    store: Optional[JsonCropStore] = None,
    visualization_dir: Optional[Path | str] = None,
) -> CalibrationReport:
    """
    Onboarding pipeline for a batch of crop descriptors:

    1) planting window per crop (reference year)
    2) daily weather per crop (weather_provider)
    3) crop-conditions charts
    4) k values (BASE_IMPORTANCE)
    5) k-values charts
    6) persist (store)

    Per-crop failures are logged and the crop stays in the batch; a record
    that cannot be parsed at all is logged and left out. Anything
    unexpected marks the report as failed instead of raising. chart_renderer
    or store set to None skips that step.
    """
    if not crops:
        raise ValueError("No crop data provided")

    cfg = merge_calibration_config(config)
    logs = _new_logs(len(crops))

    try:
        stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
        visual_root = Path(visualization_dir or cfg["VISUALIZATION_PATH"]) / stamp

        # 1) planting windows
        logs["status"] = "Computing planting windows"
        batch: Dict[str, Crop] = {}
        for name, raw in crops.items():
            name = str(name)
            if isinstance(raw, Crop):
                crop = raw
            else:
                issues: List[str] = []
                try:
                    crop = Crop.from_dict(name, raw, issues=issues)
                except Exception as e:
                    logger.error("[%s] invalid crop record: %s", name, e)
                    logs["errors"].append(
                        ErrorEntry(message=f"Invalid crop record: {e}", crop=name).to_dict()
                    )
                    continue
                for issue in issues:
                    logs["errors"].append(
                        ErrorEntry(message=f"Invalid crop field ignored: {issue}", crop=name).to_dict()
                    )
            try:
                crop = with_planting_window(crop, year=int(cfg["REFERENCE_YEAR"]))
            except ValueError as e:
                logs["errors"].append(ErrorEntry(message=str(e), crop=crop.name).to_dict())
            batch[name] = crop

        # 2) weather
        logs["status"] = "Fetching weather data"
        for name, crop in batch.items():
            try:
                records = weather_provider(crop, cfg["WEATHER_PARAMS"])
                batch[name] = crop.updated(daily_weather=tuple(records))
                logs["crops_processed"].append(name)
            except Exception as e:
                logger.error("[%s] weather fetch failed: %s", name, e)
                batch[name] = crop.updated(daily_weather=None)
                logs["errors"].append(
                    ErrorEntry(message=f"Error fetching weather data: {e}", crop=name).to_dict()
                )

        # 3) crop-conditions charts
        if chart_renderer is not None:
            logs["status"] = "Generating crop visualizations"
            written, errors = save_crop_charts(batch, visual_root, CROP_CONDITIONS, chart_renderer)
            logs["visualizations"].extend(written)
            logs["errors"].extend(_error_dicts(errors))

        # 4) k values
        logs["status"] = "Computing K values"
        batch, k_log = compute_k_values(batch, cfg["BASE_IMPORTANCE"])
        logs["k_calibration"]["logs"] = [e.to_dict() for e in k_log.entries]
        logs["errors"].extend(_error_dicts(k_log.errors))

        # 5) k-values charts
        if chart_renderer is not None:
            logs["status"] = "Generating K value visualizations"
            written, errors = save_crop_charts(batch, visual_root, K_VALUES, chart_renderer)
            logs["visualizations"].extend(written)
            logs["errors"].extend(_error_dicts(errors))

        # 6) persist
        if store is not None:
            logs["output_file"] = str(store.save(batch))

        logs["status"] = "Complete"
        logger.info(
            "Calibration complete: %d crops, %d with weather, %d errors",
            len(batch),
            len(logs["crops_processed"]),
            len(logs["errors"]),
        )
        return CalibrationReport(success=True, calibrated_crops=batch, logs=logs)

    except Exception as e:
        logger.exception("Crop calibration failed")
        logs["status"] = "Failed"
        logs["errors"].append({"timestamp": utc_now_iso(), "message": str(e)})
        return CalibrationReport(success=False, logs=logs, error=str(e))
