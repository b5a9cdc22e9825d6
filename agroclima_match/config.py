# agroclima_match/config.py
from __future__ import annotations

import copy
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_REQUIRED_FIELDS: Tuple[str, ...] = (
    "soil_moisture_0_to_10cm_mean",
    "temperature_2m_max",
    "temperature_2m_min",
    "wind_speed_10m_mean",
    "relative_humidity_2m_mean",
    "precipitation_sum",
)

DEFAULT_MATCH_CONFIG: Dict[str, Any] = {
    "STEP_SIZE": 30,
    "MAX_NAN_RATIO": 0.15,
    "DEFAULT_K": 2.0,
    "REQUIRED_FIELDS": list(DEFAULT_REQUIRED_FIELDS),
}

DEFAULT_BASE_IMPORTANCE: Dict[str, float] = {
    "temperature_2m_max": 5.0,             # critical growth factor
    "temperature_2m_min": 4.5,             # frost / cold risk
    "soil_moisture_0_to_10cm_mean": 4.0,   # root zone
    "precipitation_sum": 3.0,              # can be mitigated by irrigation
    "relative_humidity_2m_mean": 2.5,      # disease pressure
    "wind_speed_10m_mean": 1.5,            # secondary effect
}

DEFAULT_WEATHER_PARAMS: Dict[str, Any] = {
    "models": "MRI_AGCM3_2_S",
    "daily": [
        "soil_moisture_0_to_10cm_mean",
        "temperature_2m_max",
        "temperature_2m_min",
        "wind_speed_10m_mean",
        "relative_humidity_2m_mean",
    ],
    "daily_2": "precipitation_sum",
    "timezone": "auto",
}

# historical year used to place each crop's planting window
REFERENCE_YEAR = 2017

DEFAULT_CALIBRATION_CONFIG: Dict[str, Any] = {
    "BASE_IMPORTANCE": DEFAULT_BASE_IMPORTANCE,
    "WEATHER_PARAMS": DEFAULT_WEATHER_PARAMS,
    "REFERENCE_YEAR": REFERENCE_YEAR,
    "VISUALIZATION_PATH": str(Path("analytics") / "visualizations"),
}

# nested maps merged key by key instead of replaced
_DEEP_MERGE_KEYS = ("BASE_IMPORTANCE", "WEATHER_PARAMS")


# =============================================================================
# MATCHING CONFIG
# =============================================================================

@dataclass(frozen=True)
class MatchConfig:
    step_size: int = 30
    max_nan_ratio: float = 0.15
    default_k: float = 2.0
    required_fields: Tuple[str, ...] = DEFAULT_REQUIRED_FIELDS

    @property
    def default_weight(self) -> float:
        """Uniform share of a single required field."""
        return 1.0 / len(self.required_fields)

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "MatchConfig":
        """
        Builds a validated config from the defaults plus caller overrides.

        Scalars are replaced field by field; REQUIRED_FIELDS replaces the whole
        list. Unknown keys are ignored (and logged).
        """
        merged: Dict[str, Any] = copy.deepcopy(DEFAULT_MATCH_CONFIG)
        for key, value in (overrides or {}).items():
            if key in DEFAULT_CALIBRATION_CONFIG:
                continue
            if key not in merged:
                logger.warning("Ignoring unknown matching option %r", key)
                continue
            if value is None:
                continue
            merged[key] = value

        cfg = cls(
            step_size=_as_int(merged["STEP_SIZE"], "STEP_SIZE"),
            max_nan_ratio=_as_float(merged["MAX_NAN_RATIO"], "MAX_NAN_RATIO"),
            default_k=_as_float(merged["DEFAULT_K"], "DEFAULT_K"),
            required_fields=_as_fields(merged["REQUIRED_FIELDS"]),
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.step_size < 1:
            raise ValueError("STEP_SIZE must be >= 1.")
        if not (0.0 <= self.max_nan_ratio <= 1.0):
            raise ValueError("MAX_NAN_RATIO must be between 0 and 1.")
        if not math.isfinite(self.default_k):
            raise ValueError("DEFAULT_K must be a finite number.")
        if not self.required_fields:
            raise ValueError("REQUIRED_FIELDS must name at least one variable.")
        if len(set(self.required_fields)) != len(self.required_fields):
            raise ValueError("REQUIRED_FIELDS contains duplicated variables.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_size": self.step_size,
            "max_nan_ratio": self.max_nan_ratio,
            "default_k": self.default_k,
            "required_fields": list(self.required_fields),
        }


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer.")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer.") from None
    if not as_float.is_integer():
        raise ValueError(f"{name} must be an integer.")
    return int(as_float)


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number.")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number.") from None


def _as_fields(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError("REQUIRED_FIELDS must be a list of variable names.")
    return tuple(str(v).strip() for v in value)


# =============================================================================
# CALIBRATION CONFIG
# =============================================================================

def merge_calibration_config(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Defaults + overrides. BASE_IMPORTANCE and WEATHER_PARAMS are merged key by
    key, everything else is replaced.
    """
    merged: Dict[str, Any] = copy.deepcopy(DEFAULT_CALIBRATION_CONFIG)
    for key, value in (overrides or {}).items():
        if key in _DEEP_MERGE_KEYS:
            if value is None:
                continue
            if not isinstance(value, Mapping):
                raise ValueError(f"{key} must be an object.")
            merged[key] = {**merged[key], **copy.deepcopy(dict(value))}
        else:
            merged[key] = copy.deepcopy(value)

    for variable, importance in merged["BASE_IMPORTANCE"].items():
        if importance is not None and not isinstance(importance, (int, float)):
            raise ValueError(f"BASE_IMPORTANCE[{variable!r}] must be a number or null.")

    return merged


# =============================================================================
# FILE LOADING
# =============================================================================

def load_config_file(path: Path | str) -> Dict[str, Any]:
    """Reads a JSON object of overrides (matching and/or calibration keys)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must hold a JSON object: {path}")
    return raw
