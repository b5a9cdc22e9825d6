# agroclima_match/schemas/outputs.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# MATCHING RESULTS
# =============================================================================

@dataclass(frozen=True)
class VariableDetail:
    k_value: float
    weight: float
    k_source: str  # explicit | defaulted | uniform
    valid_points: int
    nan_forecast: int
    nan_optimal: int
    avg_rel_delta: float
    score: float
    weighted_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "k_value": self.k_value,
            "weight": self.weight,
            "k_source": self.k_source,
            "valid_points": self.valid_points,
            "nan_forecast": self.nan_forecast,
            "nan_optimal": self.nan_optimal,
            "avg_rel_delta": self.avg_rel_delta,
            "score": self.score,
            "weighted_score": self.weighted_score,
        }


@dataclass(frozen=True)
class WindowScore:
    start: str  # YYYY-MM-DD
    score: float  # rounded, 0..1
    variable_details: Dict[str, VariableDetail] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "score": self.score,
            "variable_details": {k: v.to_dict() for k, v in self.variable_details.items()},
        }


@dataclass(frozen=True)
class CropMatchResult:
    name: str
    variety: Optional[str]
    region: Optional[str]
    duration_days: int
    k_values_used: Dict[str, Optional[float]]
    windows: List[WindowScore]

    @property
    def best(self) -> WindowScore:
        return self.windows[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "variety": self.variety,
            "region": self.region,
            "duration_days": self.duration_days,
            "k_values_used": dict(self.k_values_used),
            "windows": [w.to_dict() for w in self.windows],
        }


# =============================================================================
# MATCHING LOG
# =============================================================================

@dataclass(frozen=True)
class ErrorEntry:
    message: str
    crop: Optional[str] = None
    window_start: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"timestamp": self.timestamp, "message": self.message}
        if self.crop:
            out["crop"] = self.crop
        if self.window_start:
            out["window_start"] = self.window_start
        return out


@dataclass
class WindowLog:
    variables: Dict[str, VariableDetail] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    final_score: Optional[float] = None
    valid_ratio: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "variables": {k: v.to_dict() for k, v in self.variables.items()},
            "warnings": list(self.warnings),
        }
        if self.final_score is not None:
            out["final_score"] = self.final_score
        if self.valid_ratio is not None:
            out["valid_ratio"] = self.valid_ratio
        return out


@dataclass
class WindowStats:
    total_windows: int = 0
    insufficient_data: int = 0
    no_score: int = 0
    valid_windows: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_windows": self.total_windows,
            "insufficient_data": self.insufficient_data,
            "no_score": self.no_score,
            "valid_windows": self.valid_windows,
        }


@dataclass
class CropLog:
    duration_days: Optional[int] = None
    region: str = "Unknown"
    variety: str = "Unknown"
    outcome: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    windows: Dict[str, WindowLog] = field(default_factory=dict)
    k_values_used: Dict[str, Optional[float]] = field(default_factory=dict)
    k_sources: Dict[str, str] = field(default_factory=dict)
    normalized_weights: Dict[str, float] = field(default_factory=dict)
    windows_stats: WindowStats = field(default_factory=WindowStats)
    top_windows: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration_days": self.duration_days,
            "region": self.region,
            "variety": self.variety,
            "outcome": self.outcome,
            "warnings": list(self.warnings),
            "windows": {k: w.to_dict() for k, w in self.windows.items()},
            "k_values_used": dict(self.k_values_used),
            "k_sources": dict(self.k_sources),
            "normalized_weights": dict(self.normalized_weights),
            "windows_stats": self.windows_stats.to_dict(),
            "top_windows": list(self.top_windows),
        }


@dataclass
class MatchSummary:
    crops_processed: int = 0
    crops_disqualified_duration: int = 0
    crops_no_valid_windows: int = 0
    crops_successful: int = 0
    crops_failed: int = 0
    total_windows_processed: int = 0
    windows_insufficient_data: int = 0
    windows_no_score: int = 0
    windows_successful: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class MatchLog:
    config: Dict[str, Any]
    timestamp: str = field(default_factory=utc_now_iso)
    summary: MatchSummary = field(default_factory=MatchSummary)
    crop_logs: Dict[str, CropLog] = field(default_factory=dict)
    errors: List[ErrorEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "config": dict(self.config),
            "summary": self.summary.to_dict(),
            "crop_logs": {k: c.to_dict() for k, c in self.crop_logs.items()},
            "errors": [e.to_dict() for e in self.errors],
        }


# =============================================================================
# CALIBRATION LOG
# =============================================================================

@dataclass(frozen=True)
class CalibrationEntry:
    crop: str
    variable: str
    range: Optional[float]
    importance: Optional[float]
    variation_factor: Optional[float]
    k_value: Optional[float]
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "crop": self.crop,
            "variable": self.variable,
            "range": self.range,
            "importance": self.importance,
            "variation_factor": self.variation_factor,
            "k_value": self.k_value,
        }
        if self.note:
            out["note"] = self.note
        return out


@dataclass
class CalibrationLog:
    entries: List[CalibrationEntry] = field(default_factory=list)
    errors: List[ErrorEntry] = field(default_factory=list)

    def for_crop(self, crop: str) -> List[CalibrationEntry]:
        return [e for e in self.entries if e.crop == crop]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logs": [e.to_dict() for e in self.entries],
            "errors": [e.to_dict() for e in self.errors],
        }
