# agroclima_match/climate/openmeteo.py
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd
import requests_cache

from ..schemas.inputs import Crop, DailyRecord

logger = logging.getLogger(__name__)

CLIMATE_API_URL = "https://climate-api.open-meteo.com/v1/climate"
CACHE_TTL_SECONDS = 60 * 60

_SESSION: Optional[requests_cache.CachedSession] = None
_SESSION_LOCK = threading.Lock()


def build_session(expire_after: int = CACHE_TTL_SECONDS) -> requests_cache.CachedSession:
    """In-memory cached HTTP session; responses expire after `expire_after` seconds."""
    return requests_cache.CachedSession(
        cache_name="agroclima_match_openmeteo",
        backend="memory",
        expire_after=expire_after,
    )


def get_session() -> requests_cache.CachedSession:
    global _SESSION
    with _SESSION_LOCK:
        if _SESSION is None:
            _SESSION = build_session()
        return _SESSION


def clear_cache() -> None:
    get_session().cache.clear()


def daily_variables(weather_params: Mapping[str, Any]) -> List[str]:
    """The 'daily' list plus the optional extra 'daily_2' variable."""
    daily = weather_params.get("daily") or []
    if isinstance(daily, str):
        daily = [daily]
    variables = [str(v) for v in daily]
    extra = weather_params.get("daily_2")
    if extra and extra not in variables:
        variables.append(str(extra))
    return variables


def build_params(
    lat: float,
    lon: float,
    start_date: str,
    end_date: str,
    weather_params: Mapping[str, Any],
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "latitude": lat,
        "longitude": lon,
        "start_date": start_date,
        "end_date": end_date,
    }
    for key, value in weather_params.items():
        if key in ("daily", "daily_2"):
            continue
        params[key] = value
    params["daily"] = ",".join(daily_variables(weather_params))
    return params


def _get_json(params: Dict[str, Any], timeout: int) -> Dict[str, Any]:
    session = get_session()
    # drop expired responses
    session.cache.delete(expired=True)

    resp = session.get(CLIMATE_API_URL, params=params, timeout=timeout)
    resp.raise_for_status()
    if getattr(resp, "from_cache", False):
        logger.debug("Open-Meteo response served from cache")
    return resp.json()


def daily_block_to_records(daily: Mapping[str, Any], variables: List[str]) -> List[DailyRecord]:
    """Open-Meteo 'daily' block (column lists) -> DailyRecords sorted by date."""
    if not daily or not daily.get("time"):
        return []

    df = pd.DataFrame({"date": daily.get("time", [])})
    for var in variables:
        col = daily.get(var)
        if col is None:
            continue
        df[var] = pd.to_numeric(pd.Series(col), errors="coerce")

    df["date"] = pd.to_datetime(df["date"])
    df = df.sort_values("date", kind="stable").reset_index(drop=True)

    records: List[DailyRecord] = []
    for row in df.to_dict(orient="records"):
        ts = row.pop("date")
        values = {k: (None if pd.isna(v) else float(v)) for k, v in row.items()}
        records.append(DailyRecord(date=pd.Timestamp(ts), values=values))
    return records


def fetch_crop_weather(
    crop: Crop,
    weather_params: Mapping[str, Any],
    timeout: int = 60,
) -> List[DailyRecord]:
    """
    Historical/climate-model daily weather for the crop's coordinates and
    planting window (start_date / end_date must be set).

    HTTP failures propagate as requests exceptions.
    """
    if crop.coordinates is None:
        raise ValueError(f"crop '{crop.name}' has no coordinates.")
    if not crop.start_date or not crop.end_date:
        raise ValueError(f"crop '{crop.name}' has no planting window (start_date/end_date).")

    lat, lon = crop.coordinates
    params = build_params(lat, lon, crop.start_date, crop.end_date, weather_params)

    logger.info("[%s] fetching daily weather %s -> %s", crop.name, crop.start_date, crop.end_date)
    data = _get_json(params, timeout)

    daily = data.get("daily") or {}
    records = daily_block_to_records(daily, daily_variables(weather_params))
    if not records:
        raise RuntimeError("Open-Meteo returned no 'daily' data.")
    return records
