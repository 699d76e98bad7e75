"""Feature extraction and data-quality tests."""

from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from src.engine.features import (
    build_data_quality,
    build_feature_vector,
    extract_series,
    extrapolate_delta30,
    ndvi_delta7,
    ndvi_delta30,
    seasonal_index,
    short_term_momentum,
    trend_acceleration,
)
from src.engine.types import InferenceRequest


def test_empty_request_uses_documented_defaults(july):
    fv = build_feature_vector(InferenceRequest(), now=july)

    assert fv.ndvi_mean == 0.45
    assert fv.ndvi_min == 0.25
    assert fv.ndvi_max == 0.65
    assert fv.ndvi_spread == 0.4
    assert fv.temperature == 24.0
    assert fv.humidity == 55.0
    assert fv.precipitation == 1.2
    assert fv.soil_moisture_mean == 0.24
    assert fv.et_mean == 3.4
    assert fv.moisture_deficit_index == pytest.approx(0.072)
    assert fv.weather_stress_index == 0.0
    assert fv.ndvi_delta7 == 0.0
    assert fv.ndvi_delta30 == 0.0
    assert fv.ndvi_volatility == 0.0
    assert fv.data_latency_penalty == 0.0


def test_every_field_is_finite_and_bounded(rich_request, july):
    fv = build_feature_vector(rich_request, now=july)
    values = fv.model_dump()

    assert len(values) == 19
    assert all(math.isfinite(v) for v in values.values())
    for name in ("ndvi_min", "ndvi_max", "ndvi_mean"):
        assert -1.0 <= values[name] <= 1.0
    assert 0.0 <= fv.soil_moisture_mean <= 1.0
    assert 0.0 <= fv.humidity <= 100.0
    for name in ("moisture_deficit_index", "weather_stress_index", "seasonal_index", "data_latency_penalty"):
        assert 0.0 <= values[name] <= 1.0
    assert all(round(v, 4) == v for v in values.values())


def test_selected_cell_blends_into_mean():
    request = InferenceRequest.model_validate({
        "ndviData": {"stats": {"mean": 0.5}},
        "selectedCell": "1-1",
        "context": {"grid3x3": [{"cellId": "1-1", "mean": 0.2}, {"cellId": "0-0", "mean": 0.9}]},
    })
    assert build_feature_vector(request).ndvi_mean == pytest.approx(0.41)


def test_selected_cell_without_grid_entry_is_ignored():
    request = InferenceRequest.model_validate({"ndviData": {"stats": {"mean": 0.5}}, "selectedCell": "2-2"})
    assert build_feature_vector(request).ndvi_mean == 0.5


def test_mean_falls_back_to_last_series_value():
    request = InferenceRequest.model_validate({"timeSeriesData": {"points": [{"ndvi": 0.3}, {"ndvi": 0.62}]}})
    assert build_feature_vector(request).ndvi_mean == 0.62


def test_non_finite_and_out_of_range_weather():
    request = InferenceRequest.model_validate({
        "weatherData": {"current": {"temperature": float("nan"), "humidity": 150, "precipitation": -3}},
    })
    fv = build_feature_vector(request)
    assert fv.temperature == 24.0
    assert fv.humidity == 100.0
    assert fv.precipitation == 0.0


def test_series_drops_non_finite_points():
    request = InferenceRequest.model_validate({
        "timeSeriesData": {"points": [{"ndvi": 0.4}, {"ndvi": None}, {"ndvi": float("inf")}, {"ndvi": 0.5}]},
    })
    assert extract_series(request) == [0.4, 0.5]


def test_context_series_used_when_top_level_missing():
    request = InferenceRequest.model_validate({"context": {"timeSeries": {"points": [{"ndvi": 0.33}]}}})
    assert extract_series(request) == [0.33]


def test_deltas_on_linear_series():
    series = [0.3 + 0.01 * i for i in range(10)]
    delta7 = ndvi_delta7(series)
    assert delta7 == pytest.approx(0.07)
    assert ndvi_delta30(series, delta7) == pytest.approx(extrapolate_delta30(delta7))
    assert extrapolate_delta30(0.1) == pytest.approx(0.18)


def test_delta7_with_exactly_seven_samples_uses_first_sample():
    series = [0.3, 0.31, 0.32, 0.33, 0.34, 0.35, 0.36]
    assert ndvi_delta7(series) == pytest.approx(0.05)


def test_short_history_deltas_are_zero():
    assert ndvi_delta7([0.4, 0.5, 0.6]) == 0.0
    assert trend_acceleration([0.4] * 7) == 0.0
    assert short_term_momentum([0.4, 0.5, 0.6]) == 0.0


def test_delta30_with_long_history():
    series = [0.2] * 6 + [0.5] * 30
    assert ndvi_delta30(series, 0.0) == pytest.approx(0.3)


def test_trend_acceleration_detects_bend():
    flat_then_rising = [0.4, 0.4, 0.4, 0.4, 0.4, 0.45, 0.5, 0.55]
    assert trend_acceleration(flat_then_rising) > 0


def test_seasonal_index_peaks_mid_year():
    assert seasonal_index(datetime(2026, 7, 1, tzinfo=timezone.utc)) == pytest.approx(1.0)
    assert seasonal_index(datetime(2026, 1, 1, tzinfo=timezone.utc)) == pytest.approx(0.0)


def test_latency_penalty_saturates():
    request = InferenceRequest.model_validate({"context": {"dataLatencyHours": 500}})
    assert build_feature_vector(request).data_latency_penalty == 1.0


def test_data_quality_with_no_inputs():
    report = build_data_quality(InferenceRequest())
    assert report.completeness == 0.0
    assert report.provider_quality == 0.75
    assert report.score == pytest.approx(0.2625)
    assert report.is_simulated_inputs is False
    assert report.warnings == ["Limited input coverage; recommendations are conservative."]


def test_data_quality_flags_providers_and_simulation():
    request = InferenceRequest.model_validate({
        "ndviData": {"stats": {"mean": 0.5}},
        "weatherData": {"current": {"temperature": 20}, "isSimulated": True},
        "soilData": {"stats": {"mean": 0.3}},
        "etData": {"stats": {"mean": 3.0}},
        "timeSeriesData": {"points": [{"ndvi": 0.5}]},
        "providersTried": [
            {"provider": "a", "ok": True},
            {"provider": "b", "ok": False},
            {"provider": "c", "ok": False},
        ],
    })
    report = build_data_quality(request)

    assert report.completeness == 1.0
    assert report.provider_quality == pytest.approx(0.3333)
    assert report.is_simulated_inputs is True
    assert report.warnings == [
        "One or more upstream providers reported degraded reliability.",
        "Some inputs are simulated due to provider outages.",
    ]
    assert report.score == pytest.approx(0.65 + 0.35 / 3 - 0.12, abs=1e-4)


def test_series_accepts_time_series_key():
    request = InferenceRequest.model_validate(
        {"timeSeriesData": {"timeSeries": [{"ndvi": 0.5}, {"ndvi": 0.45}, {"ndvi": 0.4}]}}
    )
    assert extract_series(request) == [0.5, 0.45, 0.4]
    assert build_data_quality(request).completeness == 0.2


def test_time_series_key_wins_over_points():
    request = InferenceRequest.model_validate(
        {"timeSeriesData": {"timeSeries": [{"ndvi": 0.3}], "points": [{"ndvi": 0.9}]}}
    )
    assert extract_series(request) == [0.3]


def test_series_summary_object_is_accepted():
    request = InferenceRequest.model_validate(
        {
            "timeSeriesData": {
                "points": [{"ndvi": 0.5}, {"ndvi": 0.4}],
                "summary": {"trend": "declining", "averageNDVI": 0.45, "totalPoints": 2, "seasonality": {}},
            }
        }
    )
    summary = request.time_series_data.summary
    assert summary.trend == "declining"
    assert summary.average_ndvi == 0.45
    assert summary.total_points == 2
    assert InferenceRequest.model_validate({"timeSeriesData": {"summary": "flat"}}).time_series_data.summary == "flat"


@pytest.mark.parametrize(
    "weather",
    [
        {"current": {"temperature_2m": 31.0, "relative_humidity_2m": 88}},
        {"weather": {"temperature": 31.0, "humidity": 88}},
        {"weather": {"temperature_2m": 31.0, "relative_humidity_2m": 88}},
    ],
)
def test_weather_provider_shapes(weather, july):
    fv = build_feature_vector(InferenceRequest.model_validate({"weatherData": weather}), now=july)
    assert fv.temperature == 31.0
    assert fv.humidity == 88.0
