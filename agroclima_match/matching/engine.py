# agroclima_match/matching/engine.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import MatchConfig
from ..schemas.inputs import Crop, CropsInput, DailyRecord, parse_crops, parse_daily_series, sort_records
from ..schemas.outputs import (
    CropLog,
    CropMatchResult,
    ErrorEntry,
    MatchLog,
    WindowLog,
    WindowScore,
)
from .scoring import compute_score, round_score
from .weights import derive_weights
from .windows import insufficient_data_message, iter_windows, passes_completeness, valid_ratio

logger = logging.getLogger(__name__)

TOP_WINDOWS = 3


class CropStatus(str, Enum):
    SUCCESSFUL = "successful"
    DISQUALIFIED_DURATION = "disqualified_duration"
    NO_VALID_WINDOWS = "no_valid_windows"
    FAILED = "failed"


@dataclass
class CropOutcome:
    """Everything matching one crop produced; merged into the run log afterwards."""

    name: str
    status: CropStatus
    crop_log: CropLog
    result: Optional[CropMatchResult] = None
    errors: List[ErrorEntry] = field(default_factory=list)


# =============================================================================
# PER CROP
# =============================================================================

def match_crop(
    name: str,
    crop: Union[Crop, Mapping[str, Any]],
    forecast: Sequence[DailyRecord],
    config: MatchConfig,
) -> CropOutcome:
    """
    Runs one crop through the matching state machine. Never raises: any
    failure (a malformed crop record included) ends up as a FAILED outcome
    with an error entry.

    `forecast` must already be sorted by date.
    """
    crop_log = CropLog()
    outcome = CropOutcome(name=name, status=CropStatus.FAILED, crop_log=crop_log)

    try:
        if not isinstance(crop, Crop):
            crop = Crop.from_dict(name, crop)
        crop_log.region = crop.region or "Unknown"
        crop_log.variety = crop.variety or "Unknown"
        _match_crop(name, crop, forecast, config, outcome)
    except Exception as e:
        msg = f"Error processing crop '{name}': {e}"
        logger.exception(msg)
        outcome.status = CropStatus.FAILED
        outcome.result = None
        outcome.errors.append(ErrorEntry(message=msg, crop=name))
        crop_log.warnings.append(msg)

    crop_log.outcome = outcome.status.value
    return outcome


def _match_crop(
    name: str,
    crop: Crop,
    forecast: Sequence[DailyRecord],
    config: MatchConfig,
    outcome: CropOutcome,
) -> None:
    crop_log = outcome.crop_log

    if not crop.has_weather:
        msg = "Missing daily weather data"
        crop_log.warnings.append(msg)
        outcome.errors.append(ErrorEntry(message=f"{msg} for crop '{name}'", crop=name))
        logger.warning("[%s] %s", name, msg)
        outcome.status = CropStatus.FAILED
        return

    crop_days = sort_records(crop.daily_weather)
    duration = len(crop_days)
    crop_log.duration_days = duration

    # 1) duration
    if duration > len(forecast):
        warning = f"Disqualified: duration ({duration}) exceeds forecast length ({len(forecast)})"
        crop_log.warnings.append(warning)
        logger.warning("[%s] %s", name, warning)
        outcome.status = CropStatus.DISQUALIFIED_DURATION
        return

    # 2) weights
    weighting = derive_weights(crop.k_values, config)
    crop_log.warnings.extend(weighting.warnings)
    crop_log.k_values_used = dict(crop.k_values or {})
    crop_log.k_sources = weighting.k_sources()
    crop_log.normalized_weights = weighting.normalized_weights()

    # 3-5) windows
    stats = crop_log.windows_stats
    scored: List[WindowScore] = []

    for window in iter_windows(forecast, duration, config.step_size):
        stats.total_windows += 1
        start = window.start
        window_log = crop_log.windows.setdefault(start, WindowLog())

        ratio = valid_ratio(window.days, config.required_fields)
        window_log.valid_ratio = ratio
        if not passes_completeness(ratio, config):
            window_log.warnings.append(insufficient_data_message(ratio, config))
            stats.insufficient_data += 1
            continue

        try:
            window_outcome = compute_score(window.days, crop_days, weighting, config)
        except Exception as e:
            msg = f"Error scoring window starting {start}: {e}"
            logger.error("[%s] %s", name, msg)
            outcome.errors.append(ErrorEntry(message=msg, crop=name, window_start=start))
            window_log.warnings.append(msg)
            stats.no_score += 1
            continue

        window_log.variables = dict(window_outcome.variables)
        window_log.warnings.extend(window_outcome.warnings)
        outcome.errors.extend(
            ErrorEntry(message=m, crop=name, window_start=start) for m in window_outcome.errors
        )

        if window_outcome.score is None:
            window_log.warnings.append("No valid score produced")
            stats.no_score += 1
            continue

        window_log.final_score = window_outcome.score
        stats.valid_windows += 1
        scored.append(
            WindowScore(
                start=start,
                score=round_score(window_outcome.score),
                variable_details=dict(window_outcome.variables),
            )
        )

    # 6-7) ranking
    if not scored:
        crop_log.warnings.append("No valid windows found")
        outcome.status = CropStatus.NO_VALID_WINDOWS
        return

    # sorted() is stable: equal scores keep chronological order
    ranked = sorted(scored, key=lambda w: w.score, reverse=True)
    crop_log.top_windows = [w.start for w in ranked[:TOP_WINDOWS]]

    outcome.result = CropMatchResult(
        name=name,
        variety=crop.variety,
        region=crop.region,
        duration_days=duration,
        k_values_used=dict(crop.k_values or {}),
        windows=ranked,
    )
    outcome.status = CropStatus.SUCCESSFUL


# =============================================================================
# BATCH
# =============================================================================

def _merge(log: MatchLog, outcome: CropOutcome) -> None:
    summary = log.summary
    stats = outcome.crop_log.windows_stats

    summary.crops_processed += 1
    summary.total_windows_processed += stats.total_windows
    summary.windows_insufficient_data += stats.insufficient_data
    summary.windows_no_score += stats.no_score
    summary.windows_successful += stats.valid_windows

    if outcome.status is CropStatus.SUCCESSFUL:
        summary.crops_successful += 1
    elif outcome.status is CropStatus.DISQUALIFIED_DURATION:
        summary.crops_disqualified_duration += 1
    elif outcome.status is CropStatus.NO_VALID_WINDOWS:
        summary.crops_no_valid_windows += 1
    else:
        summary.crops_failed += 1

    log.crop_logs[outcome.name] = outcome.crop_log
    log.errors.extend(outcome.errors)


def _crop_items(crops: Optional[CropsInput]) -> List[Tuple[str, Union[Crop, Mapping[str, Any]]]]:
    """(name, crop) pairs; raw crop dicts are parsed later, per crop."""
    if crops is None:
        return []
    if isinstance(crops, Mapping):
        return [(str(name), crop) for name, crop in crops.items()]
    return list(parse_crops(crops).items())


def run_matching(
    crops: CropsInput,
    forecast_series: Union[Sequence[Mapping[str, Any]], Iterable[DailyRecord], None],
    config: Union[MatchConfig, Mapping[str, Any], None] = None,
    max_workers: Optional[int] = None,
) -> Tuple[List[CropMatchResult], MatchLog]:
    """
    Matches every crop against the forecast.

    Returns the crops with at least one scored window (windows ranked by
    score) and the run log. Only invalid top-level input raises; every
    per-crop problem is reported in the log.

    max_workers > 1 matches crops on a thread pool; results and log keep the
    input crop order either way.
    """
    cfg = config if isinstance(config, MatchConfig) else MatchConfig.from_overrides(config)

    items = _crop_items(crops)
    if not items:
        raise ValueError("No crop data provided")

    forecast = sort_records(parse_daily_series(forecast_series))
    if not forecast:
        raise ValueError("No forecast data provided")

    log = MatchLog(config=cfg.to_dict())

    if max_workers and max_workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(lambda item: match_crop(item[0], item[1], forecast, cfg), items))
    else:
        outcomes = [match_crop(name, crop, forecast, cfg) for name, crop in items]

    results: List[CropMatchResult] = []
    for outcome in outcomes:
        _merge(log, outcome)
        if outcome.result is not None:
            results.append(outcome.result)

    s = log.summary
    logger.info(
        "Crop matching completed: %d processed, %d disqualified by duration, "
        "%d without valid windows, %d failed, %d matched",
        s.crops_processed,
        s.crops_disqualified_duration,
        s.crops_no_valid_windows,
        s.crops_failed,
        s.crops_successful,
    )
    return results, log
