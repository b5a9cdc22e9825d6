# agroclima_match/calibration/k_values.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from ..schemas.inputs import Crop, CropsInput, coerce_value, present_in_any, parse_crops
from ..schemas.outputs import CalibrationEntry, CalibrationLog, ErrorEntry

logger = logging.getLogger(__name__)

MIN_VARIATION_FACTOR = 0.1


def calculate_range(values: Iterable[Any]) -> float:
    """
    max - min over the valid values. Falls back to 1.0 when there is no valid
    value or the series is constant.
    """
    s = pd.Series([coerce_value(v) for v in values], dtype=float).dropna()
    if s.empty:
        return 1.0
    spread = float(s.max() - s.min())
    return spread if spread != 0 else 1.0


def variation_factor(normalized_range: float) -> float:
    return max(MIN_VARIATION_FACTOR, 1.0 - 0.5 * normalized_range)


def calibrate_crop(
    name: str,
    crop: Crop,
    base_importance: Mapping[str, Optional[float]],
) -> Tuple[Dict[str, Optional[float]], List[CalibrationEntry]]:
    """
    k values for one crop (which must have daily weather) + its audit entries.

    Highly important variables that vary little over the crop's history get
    the largest k.
    """
    days = list(crop.daily_weather or ())

    ranges: Dict[str, float] = {}
    for variable in base_importance:
        if present_in_any(days, variable):
            ranges[variable] = calculate_range(d.values.get(variable) for d in days)

    max_range = max(ranges.values()) if ranges else 0.0
    if max_range <= 0:
        max_range = 1.0
    normalized = {v: r / max_range for v, r in ranges.items()}

    k_values: Dict[str, Optional[float]] = {}
    entries: List[CalibrationEntry] = []
    for variable, importance in base_importance.items():
        importance = coerce_value(importance)

        if variable not in normalized:
            k_values[variable] = importance
            entries.append(
                CalibrationEntry(
                    crop=name,
                    variable=variable,
                    range=None,
                    importance=importance,
                    variation_factor=None,
                    k_value=importance,
                    note="Variable missing in data",
                )
            )
            continue

        factor = variation_factor(normalized[variable])
        k = importance * factor if importance is not None else None
        k_values[variable] = k
        entries.append(
            CalibrationEntry(
                crop=name,
                variable=variable,
                range=normalized[variable],
                importance=importance,
                variation_factor=factor,
                k_value=k,
                note=None if importance is not None else "No base importance",
            )
        )

    return k_values, entries


def compute_k_values(
    crops: CropsInput,
    base_importance: Mapping[str, Optional[float]],
) -> Tuple[Dict[str, Any], CalibrationLog]:
    """
    Attaches k_values to every crop that has daily weather.

    Every input crop comes back, in input order. Crops without weather (or
    that fail) are returned unchanged and reported in the log errors; a record
    that cannot be parsed at all is returned as given. Invalid metadata fields
    that calibration does not read are dropped and reported.
    """
    log = CalibrationLog()
    out: Dict[str, Any] = {}

    if crops is None:
        raise ValueError("No crop data provided")
    items = list(crops.items() if isinstance(crops, Mapping) else parse_crops(crops).items())
    if not items:
        raise ValueError("No crop data provided")

    for name, raw in items:
        name = str(name)
        crop = raw
        if not isinstance(raw, Crop):
            issues: List[str] = []
            try:
                crop = Crop.from_dict(name, raw, issues=issues)
            except Exception as e:
                msg = f"Invalid crop record: {e}"
                logger.error("[%s] %s", name, msg)
                log.errors.append(ErrorEntry(message=msg, crop=name))
                out[name] = raw
                continue
            for issue in issues:
                log.errors.append(ErrorEntry(message=f"Invalid crop field ignored: {issue}", crop=name))

        if not crop.has_weather:
            msg = "Missing daily weather data for K-value calibration"
            logger.warning("[%s] %s", name, msg)
            log.errors.append(ErrorEntry(message=msg, crop=name))
            out[name] = crop
            continue

        try:
            k_values, entries = calibrate_crop(name, crop, base_importance)
        except Exception as e:
            msg = f"Error computing k values: {e}"
            logger.exception("[%s] %s", name, msg)
            log.errors.append(ErrorEntry(message=msg, crop=name))
            out[name] = crop
            continue

        log.entries.extend(entries)
        out[name] = crop.updated(k_values=k_values)

    logger.info(
        "K-value calibration: %d crops, %d calibrated, %d errors",
        len(out),
        sum(1 for c in out.values() if isinstance(c, Crop) and c.k_values is not None and c.has_weather),
        len(log.errors),
    )
    return out, log
