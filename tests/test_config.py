from __future__ import annotations

import json

import pytest

from agroclima_match.config import (
    DEFAULT_BASE_IMPORTANCE,
    DEFAULT_REQUIRED_FIELDS,
    MatchConfig,
    load_config_file,
    merge_calibration_config,
)


def test_defaults():
    cfg = MatchConfig.from_overrides(None)
    assert cfg.step_size == 30
    assert cfg.max_nan_ratio == 0.15
    assert cfg.default_k == 2.0
    assert cfg.required_fields == DEFAULT_REQUIRED_FIELDS
    assert cfg.default_weight == pytest.approx(1 / 6)


def test_overrides_replace_fields():
    cfg = MatchConfig.from_overrides(
        {"STEP_SIZE": "7", "MAX_NAN_RATIO": 0.5, "REQUIRED_FIELDS": ["a", "b"], "DEFAULT_K": None}
    )
    assert cfg.step_size == 7
    assert cfg.max_nan_ratio == 0.5
    assert cfg.required_fields == ("a", "b")
    assert cfg.default_k == 2.0


def test_unknown_and_calibration_keys_are_ignored():
    cfg = MatchConfig.from_overrides({"BASE_IMPORTANCE": {"a": 1.0}, "SOMETHING": 3})
    assert cfg == MatchConfig.from_overrides(None)


@pytest.mark.parametrize(
    "overrides",
    [
        {"STEP_SIZE": 0},
        {"STEP_SIZE": 2.5},
        {"STEP_SIZE": True},
        {"MAX_NAN_RATIO": 1.5},
        {"MAX_NAN_RATIO": "lots"},
        {"DEFAULT_K": float("inf")},
        {"REQUIRED_FIELDS": []},
        {"REQUIRED_FIELDS": "temperature_2m_max"},
        {"REQUIRED_FIELDS": ["a", "a"]},
    ],
)
def test_invalid_matching_config(overrides):
    with pytest.raises(ValueError):
        MatchConfig.from_overrides(overrides)


def test_to_dict():
    d = MatchConfig.from_overrides({"REQUIRED_FIELDS": ["a"]}).to_dict()
    assert d == {"step_size": 30, "max_nan_ratio": 0.15, "default_k": 2.0, "required_fields": ["a"]}


def test_calibration_merge_is_deep_for_nested_maps():
    merged = merge_calibration_config(
        {"BASE_IMPORTANCE": {"temperature_2m_max": 9.0}, "WEATHER_PARAMS": {"models": "EC_Earth3P_HR"}}
    )
    assert merged["BASE_IMPORTANCE"]["temperature_2m_max"] == 9.0
    assert merged["BASE_IMPORTANCE"]["precipitation_sum"] == 3.0
    assert merged["WEATHER_PARAMS"]["models"] == "EC_Earth3P_HR"
    assert merged["WEATHER_PARAMS"]["timezone"] == "auto"
    # defaults are never mutated
    assert DEFAULT_BASE_IMPORTANCE["temperature_2m_max"] == 5.0


def test_calibration_merge_validates_importance():
    with pytest.raises(ValueError):
        merge_calibration_config({"BASE_IMPORTANCE": {"x": "high"}})
    with pytest.raises(ValueError):
        merge_calibration_config({"WEATHER_PARAMS": ["models"]})


def test_load_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"STEP_SIZE": 10}), encoding="utf-8")
    assert load_config_file(path) == {"STEP_SIZE": 10}

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config_file(path)

    with pytest.raises(FileNotFoundError):
        load_config_file(tmp_path / "missing.json")
