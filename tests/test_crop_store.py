from __future__ import annotations

import json

import pytest

from agroclima_match.schemas.inputs import Crop
from agroclima_match.storage.crop_store import JsonCropStore
from conftest import make_days


def test_save_and_load(tmp_path):
    store = JsonCropStore(tmp_path / "nested" / "crops.json")
    crop = Crop.from_dict(
        "beans",
        {
            "coordinates": [1.0, 2.0],
            "daily_weather": make_days({"precipitation_sum": [0.0, None]}),
            "k_values": {"precipitation_sum": 1.2},
        },
    )
    path = store.save({"beans": crop})

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["beans"]["daily_weather"][1] == {"date": "2024-01-02", "precipitation_sum": None}

    loaded = store.load()["beans"]
    assert loaded.coordinates == (1.0, 2.0)
    assert loaded.k_values == {"precipitation_sum": 1.2}
    assert loaded.daily_weather[1].has("precipitation_sum")


def test_load_errors(tmp_path):
    store = JsonCropStore(tmp_path / "crops.json")
    with pytest.raises(FileNotFoundError):
        store.load()

    store.path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        store.load()
