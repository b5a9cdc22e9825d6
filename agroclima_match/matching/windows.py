# agroclima_match/matching/windows.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

from ..config import MatchConfig
from ..schemas.inputs import DailyRecord


@dataclass(frozen=True)
class ForecastWindow:
    offset: int
    days: Tuple[DailyRecord, ...]

    @property
    def start(self) -> str:
        return self.days[0].date.strftime("%Y-%m-%d")


def iter_windows(
    forecast: Sequence[DailyRecord],
    duration: int,
    step_size: int,
) -> Iterator[ForecastWindow]:
    """
    Windows starting at 0, step, 2*step, ... while start + duration fits.

    Consecutive windows overlap when step_size < duration.
    """
    if duration < 1:
        raise ValueError("window duration must be >= 1 day")
    if step_size < 1:
        raise ValueError("step_size must be >= 1")

    for i in range(0, len(forecast) - duration + 1, step_size):
        yield ForecastWindow(offset=i, days=tuple(forecast[i:i + duration]))


def valid_ratio(window: Sequence[DailyRecord], fields: Sequence[str]) -> float:
    """Share of (day, field) cells holding a usable number."""
    total = len(window) * len(fields)
    if total == 0:
        return 0.0
    valid = sum(1 for day in window for f in fields if day.is_valid(f))
    return valid / total


def passes_completeness(ratio: float, config: MatchConfig) -> bool:
    return ratio >= 1.0 - config.max_nan_ratio


def insufficient_data_message(ratio: float, config: MatchConfig) -> str:
    return (
        f"Insufficient data: {ratio * 100:.2f}% valid "
        f"(need >{(1.0 - config.max_nan_ratio) * 100:.2f}%)"
    )
