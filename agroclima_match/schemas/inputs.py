# agroclima_match/schemas/inputs.py
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd


def parse_date(value: Any) -> pd.Timestamp:
    """Any date-like value -> naive UTC Timestamp (time of day kept)."""
    ts = pd.Timestamp(value)
    if ts is pd.NaT:
        raise ValueError(f"invalid date: {value!r}")
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def coerce_value(value: Any) -> Optional[float]:
    """Numeric value or None when null, NaN, infinite or not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v):
        return None
    return v


@dataclass(frozen=True)
class DailyRecord:
    """One day of weather: the date plus whatever variables the source sent."""

    date: pd.Timestamp
    values: Mapping[str, Any] = field(default_factory=dict)

    @property
    def present(self) -> FrozenSet[str]:
        return frozenset(self.values.keys())

    def has(self, variable: str) -> bool:
        return variable in self.values

    def value(self, variable: str) -> Optional[float]:
        return coerce_value(self.values.get(variable))

    def is_valid(self, variable: str) -> bool:
        return self.value(variable) is not None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DailyRecord":
        if not isinstance(raw, Mapping):
            raise ValueError("daily record must be an object with a 'date' key.")
        if "date" not in raw:
            raise ValueError("daily record without 'date'.")
        values = {k: v for k, v in raw.items() if k != "date"}
        return cls(date=parse_date(raw["date"]), values=values)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"date": self.date.strftime("%Y-%m-%d")}
        for k, v in self.values.items():
            # NaN is not valid JSON
            out[k] = None if isinstance(v, float) and math.isnan(v) else v
        return out


def parse_daily_series(raw: Optional[Iterable[Any]]) -> List[DailyRecord]:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, Mapping)):
        raise ValueError("daily series must be a list of daily records.")
    return [r if isinstance(r, DailyRecord) else DailyRecord.from_dict(r) for r in raw]


def sort_records(records: Sequence[DailyRecord]) -> List[DailyRecord]:
    """Ascending by date; records sharing a date keep their input order."""
    return sorted(records, key=lambda r: r.date)


def present_in_all(records: Sequence[DailyRecord], variable: str) -> bool:
    return bool(records) and all(r.has(variable) for r in records)


def present_in_any(records: Sequence[DailyRecord], variable: str) -> bool:
    return any(r.has(variable) for r in records)


def series_frame(records: Sequence[DailyRecord], variables: Sequence[str]) -> pd.DataFrame:
    """
    Records -> DataFrame with columns: date + one float column per variable.

    Absent, null and non-numeric values all become NaN. Row order is the
    record order (callers sort first).
    """
    data: Dict[str, Any] = {"date": [r.date for r in records]}
    for var in variables:
        data[var] = pd.Series([coerce_value(r.values.get(var)) for r in records], dtype=float).to_numpy()
    df = pd.DataFrame(data)
    if not df.empty:
        df["date"] = pd.to_datetime(df["date"])
    return df.reset_index(drop=True)


# =============================================================================
# CROP
# =============================================================================

def _parse_coordinates(name: str, value: Any) -> Tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError(f"crop '{name}': coordinates must be [lat, lon].")
    try:
        return (float(value[0]), float(value[1]))
    except (TypeError, ValueError):
        raise ValueError(f"crop '{name}': coordinates must be [lat, lon].") from None


def _int_field(field_name: str):
    def parse(name: str, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"crop '{name}': {field_name} must be an integer.") from None
    return parse


@dataclass(frozen=True)
class Crop:
    name: str
    variety: Optional[str] = None
    region: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = None
    planting_season_month: Optional[int] = None
    duration_days: Optional[int] = None
    daily_weather: Optional[Tuple[DailyRecord, ...]] = None
    k_values: Optional[Dict[str, Optional[float]]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def updated(self, **changes: Any) -> "Crop":
        return replace(self, **changes)

    @property
    def has_weather(self) -> bool:
        return bool(self.daily_weather)

    @classmethod
    def from_dict(
        cls,
        name: str,
        raw: Mapping[str, Any],
        issues: Optional[List[str]] = None,
    ) -> "Crop":
        """
        Parses one crop record.

        With `issues` given, invalid metadata fields (coordinates, planting
        month, duration) are set to None and described in `issues` instead of
        raising. daily_weather and k_values must always be valid.
        """
        if not isinstance(raw, Mapping):
            raise ValueError(f"crop '{name}' must be an object.")

        def metadata(parser, value):
            if value is None:
                return None
            try:
                return parser(name, value)
            except ValueError as e:
                if issues is None:
                    raise
                issues.append(str(e))
                return None

        coordinates = metadata(_parse_coordinates, raw.get("coordinates"))
        month = metadata(_int_field("planting_season_month"), raw.get("planting_season_month"))
        duration = metadata(_int_field("duration_days"), raw.get("duration_days"))

        weather = raw.get("daily_weather")
        daily_weather = tuple(parse_daily_series(weather)) if weather is not None else None

        k_raw = raw.get("k_values")
        k_values: Optional[Dict[str, Optional[float]]] = None
        if k_raw is not None:
            if not isinstance(k_raw, Mapping):
                raise ValueError(f"crop '{name}': k_values must be an object.")
            k_values = {str(k): coerce_value(v) for k, v in k_raw.items()}

        return cls(
            name=str(name),
            variety=raw.get("variety"),
            region=raw.get("region"),
            coordinates=coordinates,
            planting_season_month=month,
            duration_days=duration,
            daily_weather=daily_weather,
            k_values=k_values,
            start_date=raw.get("start_date"),
            end_date=raw.get("end_date"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "variety": self.variety,
            "region": self.region,
            "coordinates": list(self.coordinates) if self.coordinates else None,
            "planting_season_month": self.planting_season_month,
            "duration_days": self.duration_days,
        }
        if self.start_date is not None:
            out["start_date"] = self.start_date
        if self.end_date is not None:
            out["end_date"] = self.end_date
        out["daily_weather"] = (
            [r.to_dict() for r in self.daily_weather] if self.daily_weather is not None else None
        )
        if self.k_values is not None:
            out["k_values"] = dict(self.k_values)
        return out


CropsInput = Union[Mapping[str, Any], Iterable[Crop]]


def parse_crops(raw: Optional[CropsInput]) -> Dict[str, Crop]:
    """
    Accepts {name: crop-dict | Crop} or an iterable of Crop, keeps input order.
    """
    if raw is None:
        return {}

    crops: Dict[str, Crop] = {}
    if isinstance(raw, Mapping):
        for name, item in raw.items():
            crops[str(name)] = item if isinstance(item, Crop) else Crop.from_dict(str(name), item)
        return crops

    for item in raw:
        if not isinstance(item, Crop):
            raise ValueError("crop list entries must be Crop objects; use a {name: crop} mapping for raw data.")
        if item.name in crops:
            raise ValueError(f"duplicated crop name: {item.name}")
        crops[item.name] = item
    return crops


def crops_to_dict(crops: Mapping[str, Crop]) -> Dict[str, Dict[str, Any]]:
    return {name: crop.to_dict() for name, crop in crops.items()}
