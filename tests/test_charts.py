from __future__ import annotations

import pytest

from agroclima_match.explain.charts import (
    CROP_CONDITIONS,
    K_VALUES,
    build_chart_spec,
    chart_filename,
    render_chart,
    save_crop_charts,
)
from agroclima_match.schemas.inputs import Crop
from conftest import make_days

PNG_MAGIC = b"\x89PNG"


@pytest.fixture
def crop() -> Crop:
    return Crop.from_dict(
        "sweet corn",
        {
            "variety": "Golden",
            "region": "Valley",
            "daily_weather": make_days(
                {"temperature_2m_max": [20.0, None, 24.0], "precipitation_sum": [0.0, 3.5, 1.0]},
                start="2017-05-01",
            ),
            "k_values": {"temperature_2m_max": 2.0, "precipitation_sum": 1.5, "wind_speed_10m_mean": None},
        },
    )


def test_conditions_spec_has_one_series_per_present_variable(crop):
    spec = build_chart_spec(CROP_CONDITIONS, crop)
    assert spec.chart_type == "line"
    assert spec.labels == ["2017-05-01", "2017-05-02", "2017-05-03"]
    assert [s.label for s in spec.series] == ["temperature_2m_max", "precipitation_sum"]
    assert spec.series[0].data == [20.0, None, 24.0]
    assert spec.title == "sweet corn (Golden, Valley) Weather Conditions"


def test_k_values_spec_is_radar_with_headroom(crop):
    spec = build_chart_spec(K_VALUES, crop)
    assert spec.chart_type == "radar"
    assert spec.labels == ["temperature_2m_max", "precipitation_sum"]
    assert spec.r_max == pytest.approx(2.2)


def test_unknown_kind_gives_placeholder(crop):
    spec = build_chart_spec("pie", crop)
    assert spec.chart_type == "bar"
    assert spec.title == "No valid visualization type"


@pytest.mark.parametrize("kind", [CROP_CONDITIONS, K_VALUES, "pie"])
def test_render_produces_png(crop, kind):
    assert render_chart(build_chart_spec(kind, crop)).startswith(PNG_MAGIC)


def test_filename_replaces_whitespace():
    assert chart_filename("sweet  corn", K_VALUES, "2024-01-01T00-00-00") == (
        "sweet-corn_k-values_2024-01-01T00-00-00.png"
    )


def test_save_reports_missing_data_and_render_errors(tmp_path, crop):
    def flaky(spec):
        if spec.title.startswith("bare"):
            raise RuntimeError("boom")
        return b"img"

    crops = {"sweet corn": crop, "empty": Crop(name="empty"), "bare": crop.updated(name="bare")}
    written, errors = save_crop_charts(crops, tmp_path, CROP_CONDITIONS, flaky)

    assert [w["crop"] for w in written] == ["sweet corn"]
    assert (tmp_path / CROP_CONDITIONS).is_dir()
    assert [(e.crop, e.message) for e in errors] == [
        ("empty", "Missing data for crop-conditions visualization"),
        ("bare", "Error generating visualization: boom"),
    ]
