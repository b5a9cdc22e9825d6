from __future__ import annotations

import io
import json
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import pytest
from requests.adapters import HTTPAdapter
from urllib3 import HTTPResponse

from agroclima_match.climate import openmeteo
from agroclima_match.schemas.inputs import Crop, DailyRecord


class JsonAdapter(HTTPAdapter):
    """Answers every request with the same JSON payload; records request URLs."""

    def __init__(self, payload: Any, status: int = 200):
        super().__init__()
        self.payload = payload
        self.status = status
        self.urls: List[str] = []

    def send(self, request, **kwargs):
        self.urls.append(request.url)
        raw = HTTPResponse(
            body=io.BytesIO(json.dumps(self.payload).encode("utf-8")),
            headers={"Content-Type": "application/json"},
            status=self.status,
            preload_content=False,
        )
        return self.build_response(request, raw)


@pytest.fixture
def weather_api(monkeypatch):
    """install(payload, status=200) -> JsonAdapter behind a fresh cached session."""

    def install(payload: Any, status: int = 200) -> JsonAdapter:
        session = openmeteo.build_session()
        adapter = JsonAdapter(payload, status)
        session.mount("https://", adapter)
        monkeypatch.setattr(openmeteo, "_SESSION", session)
        return adapter

    return install


def make_days(columns: Dict[str, List[Optional[float]]], start: str = "2024-01-01") -> List[dict]:
    """{var: [v0, v1, ...]} -> list of raw daily dicts."""
    n = max(len(v) for v in columns.values())
    d0 = date.fromisoformat(start)
    days = []
    for i in range(n):
        row = {"date": (d0 + timedelta(days=i)).isoformat()}
        for var, values in columns.items():
            row[var] = values[i]
        days.append(row)
    return days


def make_records(columns: Dict[str, List[Optional[float]]], start: str = "2024-01-01") -> List[DailyRecord]:
    return [DailyRecord.from_dict(d) for d in make_days(columns, start)]


@pytest.fixture
def tmax_crop() -> Crop:
    """2-day crop profile on temperature_2m_max only."""
    return Crop.from_dict(
        "wheat",
        {
            "variety": "Durum",
            "region": "Plains",
            "coordinates": [40.0, -100.0],
            "planting_season_month": 4,
            "duration_days": 2,
            "daily_weather": make_days({"temperature_2m_max": [10.0, 12.0]}, start="2017-04-14"),
            "k_values": {"temperature_2m_max": 2.0},
        },
    )


@pytest.fixture
def tmax_config() -> dict:
    return {"STEP_SIZE": 1, "REQUIRED_FIELDS": ["temperature_2m_max"]}
