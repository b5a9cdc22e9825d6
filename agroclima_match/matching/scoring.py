# agroclima_match/matching/scoring.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config import MatchConfig
from ..schemas.inputs import DailyRecord, present_in_all, series_frame
from ..schemas.outputs import VariableDetail
from .weights import CropWeighting

logger = logging.getLogger(__name__)

EXP_CLIP = 709.0        # exp(709) is still a finite float64
DELTA_EPSILON = 1e-5    # historical value of exactly 0


def safe_exp(x):
    """exp() with the exponent clipped to [-709, 709]."""
    return np.exp(np.clip(x, -EXP_CLIP, EXP_CLIP))


def relative_deltas(forecast: np.ndarray, optimal: np.ndarray) -> np.ndarray:
    forecast = np.asarray(forecast, dtype=float)
    optimal = np.asarray(optimal, dtype=float)
    return np.abs(forecast - optimal) / (np.abs(optimal) + DELTA_EPSILON)


def logistic_score(rel_delta: np.ndarray, k: float) -> np.ndarray:
    """
    1 / (1 + exp(-k * sqrt(rel_delta))) per day.

    No bias term: rel_delta == 0 gives exactly 0.5 for any k.
    """
    rel_delta = np.asarray(rel_delta, dtype=float)
    return 1.0 / (1.0 + safe_exp(-float(k) * np.sqrt(rel_delta)))


def linear_score(rel_delta: np.ndarray, max_delta: float = 1.0) -> np.ndarray:
    """Alternative transform: 1 at rel_delta 0, falling linearly to 0 at max_delta."""
    rel_delta = np.asarray(rel_delta, dtype=float)
    return np.clip(1.0 - rel_delta / float(max_delta), 0.0, 1.0)


def round_score(score: float, digits: int = 4) -> float:
    """Half-up rounding (not banker's rounding) for reported scores."""
    factor = 10 ** digits
    return math.floor(score * factor + 0.5) / factor


@dataclass
class WindowOutcome:
    score: Optional[float]
    variables: Dict[str, VariableDetail] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def compute_score(
    window: Sequence[DailyRecord],
    crop_days: Sequence[DailyRecord],
    weighting: CropWeighting,
    config: MatchConfig,
) -> WindowOutcome:
    """
    Scores one forecast window against the crop's historical days.

    Days are paired by position. Per variable: days where either side is
    invalid are dropped, the logistic score is averaged over the remaining
    days and weighted. The window score is the weighted sum divided by the
    weights actually used.
    """
    if len(window) != len(crop_days):
        raise ValueError(
            f"window has {len(window)} days but the crop profile has {len(crop_days)}"
        )

    fields = config.required_fields
    df_window = series_frame(window, fields)
    df_crop = series_frame(crop_days, fields)

    outcome = WindowOutcome(score=None)
    weighted_sum = 0.0
    total_weight = 0.0
    scored = 0

    for var in fields:
        if not (present_in_all(window, var) and present_in_all(crop_days, var)):
            outcome.warnings.append(f"Variable '{var}' not found in data")
            continue

        forecast_vals = df_window[var].to_numpy(dtype=float)
        optimal_vals = df_crop[var].to_numpy(dtype=float)

        nan_forecast = int(np.isnan(forecast_vals).sum())
        nan_optimal = int(np.isnan(optimal_vals).sum())
        mask = ~np.isnan(forecast_vals) & ~np.isnan(optimal_vals)
        valid_count = int(mask.sum())

        if valid_count == 0:
            outcome.warnings.append(f"No valid data points for variable '{var}'")
            continue

        w = weighting.variables[var]
        try:
            rel = relative_deltas(forecast_vals[mask], optimal_vals[mask])
            daily = logistic_score(rel, w.k)
            variable_score = float(np.mean(daily))
            if not math.isfinite(variable_score):
                raise FloatingPointError(f"non-finite score {variable_score}")
            weighted = variable_score * w.weight

            outcome.variables[var] = VariableDetail(
                k_value=w.k,
                weight=w.weight,
                k_source=w.source.value,
                valid_points=valid_count,
                nan_forecast=nan_forecast,
                nan_optimal=nan_optimal,
                avg_rel_delta=float(np.mean(rel)),
                score=variable_score,
                weighted_score=weighted,
            )
        except Exception as e:
            msg = f"Error processing variable '{var}': {e}"
            logger.error(msg)
            outcome.errors.append(msg)
            outcome.warnings.append(msg)
            continue

        weighted_sum += weighted
        total_weight += w.weight
        scored += 1

    if scored == 0 or total_weight == 0:
        outcome.warnings.append("No valid scores computed")
        return outcome

    outcome.score = weighted_sum / total_weight
    return outcome
