# agroclima_match/calibration/planting.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Tuple

from ..config import REFERENCE_YEAR
from ..schemas.inputs import Crop


def planting_window(
    planting_season_month: int,
    duration_days: int,
    year: int = REFERENCE_YEAR,
) -> Tuple[date, date]:
    """
    Historical growing window centred on the 15th of the planting month:
    start = mid - floor(duration / 2), end = start + duration.
    """
    if not (1 <= int(planting_season_month) <= 12):
        raise ValueError("planting_season_month must be between 1 and 12.")
    if int(duration_days) <= 0:
        raise ValueError("duration_days must be > 0.")

    mid = date(int(year), int(planting_season_month), 15)
    start = mid - timedelta(days=int(duration_days) // 2)
    end = start + timedelta(days=int(duration_days))
    return start, end


def with_planting_window(crop: Crop, year: int = REFERENCE_YEAR) -> Crop:
    if crop.planting_season_month is None or crop.duration_days is None:
        raise ValueError(f"crop '{crop.name}' needs planting_season_month and duration_days.")
    start, end = planting_window(crop.planting_season_month, crop.duration_days, year)
    return crop.updated(start_date=start.isoformat(), end_date=end.isoformat())
