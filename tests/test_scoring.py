from __future__ import annotations

import math

import numpy as np
import pytest

from agroclima_match.config import MatchConfig
from agroclima_match.matching.scoring import (
    compute_score,
    linear_score,
    logistic_score,
    relative_deltas,
    round_score,
    safe_exp,
)
from agroclima_match.matching.weights import derive_weights
from conftest import make_records


def test_safe_exp_clips_large_exponents():
    out = safe_exp(np.array([1000.0, -1000.0, 0.0]))
    assert np.isfinite(out).all()
    assert out[0] == pytest.approx(math.exp(709))
    assert out[2] == 1.0


def test_relative_delta_uses_epsilon_for_zero_history():
    rel = relative_deltas(np.array([1.0]), np.array([0.0]))
    assert rel[0] == pytest.approx(1.0 / 1e-5)


def test_logistic_exact_match_is_one_half():
    assert logistic_score(np.array([0.0, 0.0]), 2.0).tolist() == [0.5, 0.5]
    assert logistic_score(np.array([0.0]), 37.0)[0] == 0.5


def test_logistic_follows_formula():
    d = 0.25
    expected = 1.0 / (1.0 + math.exp(-3.0 * math.sqrt(d)))
    assert logistic_score(np.array([d]), 3.0)[0] == pytest.approx(expected)


def test_linear_score_is_clipped():
    out = linear_score(np.array([0.0, 0.5, 2.0]))
    assert out.tolist() == [1.0, 0.5, 0.0]


def test_round_score_half_up():
    assert round_score(0.12346) == 0.1235
    assert round_score(0.12344) == 0.1234
    assert round_score(0.5) == 0.5


def _score(window_cols, crop_cols, k_values, fields):
    cfg = MatchConfig.from_overrides({"REQUIRED_FIELDS": fields})
    window = make_records(window_cols, start="2024-01-01")
    crop = make_records(crop_cols, start="2017-01-01")
    return compute_score(window, crop, derive_weights(k_values, cfg), cfg)


def test_exact_match_window_scores_one_half():
    out = _score(
        {"temperature_2m_max": [10.0, 12.0]},
        {"temperature_2m_max": [10.0, 12.0]},
        {"temperature_2m_max": 2.0},
        ["temperature_2m_max"],
    )
    assert out.score == 0.5
    detail = out.variables["temperature_2m_max"]
    assert detail.valid_points == 2
    assert detail.avg_rel_delta == 0.0
    assert detail.weight == 1.0
    assert detail.k_source == "explicit"


def test_window_score_renormalizes_over_weights_used():
    # humidity has no valid pair, so only temperature contributes
    out = _score(
        {"temperature_2m_max": [10.0, 12.0], "relative_humidity_2m_mean": [None, None]},
        {"temperature_2m_max": [12.0, 10.0], "relative_humidity_2m_mean": [80.0, 82.0]},
        {"temperature_2m_max": 3.0, "relative_humidity_2m_mean": 1.0},
        ["temperature_2m_max", "relative_humidity_2m_mean"],
    )
    detail = out.variables["temperature_2m_max"]
    assert detail.weight == pytest.approx(0.75)
    assert out.score == pytest.approx(detail.weighted_score / 0.75)
    assert out.score == pytest.approx(detail.score)
    assert "No valid data points for variable 'relative_humidity_2m_mean'" in out.warnings


def test_weighted_average_of_two_variables():
    out = _score(
        {"a": [1.0, 2.0], "b": [5.0, 5.0]},
        {"a": [2.0, 2.0], "b": [5.0, 5.0]},
        {"a": 1.0, "b": 3.0},
        ["a", "b"],
    )
    a, b = out.variables["a"], out.variables["b"]
    assert b.score == 0.5
    expected = (a.score * 0.25 + b.score * 0.75) / 1.0
    assert out.score == pytest.approx(expected)
    assert 0.0 <= out.score <= 1.0


def test_nan_pairs_are_dropped_and_counted():
    out = _score(
        {"a": [1.0, None, 3.0]},
        {"a": [1.0, 2.0, float("nan")]},
        {"a": 2.0},
        ["a"],
    )
    detail = out.variables["a"]
    assert detail.valid_points == 1
    assert detail.nan_forecast == 1
    assert detail.nan_optimal == 1
    assert out.score == 0.5


def test_variable_absent_from_one_side_is_skipped():
    cfg = MatchConfig.from_overrides({"REQUIRED_FIELDS": ["a", "b"]})
    window = make_records({"a": [1.0, 1.0], "b": [1.0, 1.0]})
    crop = make_records({"a": [1.0, 1.0]})
    out = compute_score(window, crop, derive_weights({"a": 1.0, "b": 1.0}, cfg), cfg)
    assert "Variable 'b' not found in data" in out.warnings
    assert set(out.variables) == {"a"}
    assert out.score == 0.5


def test_no_scorable_variable_gives_none():
    out = _score({"a": [None, None]}, {"a": [1.0, 2.0]}, {"a": 1.0}, ["a"])
    assert out.score is None
    assert "No valid scores computed" in out.warnings


def test_missing_k_uses_default_k_and_uniform_share():
    cfg = MatchConfig.from_overrides({"REQUIRED_FIELDS": ["a", "b"], "DEFAULT_K": 4.0})
    window = make_records({"a": [1.0], "b": [2.0]})
    crop = make_records({"a": [1.0], "b": [1.0]})
    out = compute_score(window, crop, derive_weights({"a": 1.0}, cfg), cfg)
    b = out.variables["b"]
    assert b.k_value == 4.0
    assert b.weight == 0.5
    assert b.k_source == "defaulted"
    assert b.score == pytest.approx(1.0 / (1.0 + math.exp(-4.0 * math.sqrt(1.0 / (1.0 + 1e-5)))))


def test_length_mismatch_raises():
    cfg = MatchConfig.from_overrides({"REQUIRED_FIELDS": ["a"]})
    with pytest.raises(ValueError):
        compute_score(make_records({"a": [1.0]}), make_records({"a": [1.0, 2.0]}), derive_weights({}, cfg), cfg)
