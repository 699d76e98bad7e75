"""Shared fixtures for the FieldPulse tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.engine.engine import FieldEngine
from src.engine.types import FeatureVector, InferenceRequest

DECLINING_SERIES = [0.52, 0.53, 0.55, 0.54, 0.56, 0.55, 0.53, 0.51, 0.50, 0.48, 0.47, 0.45, 0.44, 0.42]

BASE_FEATURES = dict(
    ndvi_min=0.35,
    ndvi_max=0.55,
    ndvi_mean=0.45,
    ndvi_spread=0.2,
    ndvi_delta7=0.0,
    ndvi_delta30=0.0,
    ndvi_trend_slope=0.0,
    trend_acceleration=0.0,
    ndvi_volatility=0.02,
    soil_moisture_mean=0.26,
    moisture_deficit_index=0.0,
    et_mean=3.4,
    weather_stress_index=0.0,
    temperature=22.0,
    precipitation=0.0,
    humidity=50.0,
    seasonal_index=0.5,
    short_term_momentum=0.0,
    data_latency_penalty=0.0,
)


def make_features(**overrides) -> FeatureVector:
    return FeatureVector(**{**BASE_FEATURES, **overrides})


@pytest.fixture
def calm_features() -> FeatureVector:
    return make_features()


@pytest.fixture
def dry_features() -> FeatureVector:
    return make_features(
        ndvi_mean=0.31,
        soil_moisture_mean=0.12,
        moisture_deficit_index=0.62,
        weather_stress_index=0.35,
        temperature=33.0,
        et_mean=6.1,
    )


@pytest.fixture
def rich_payload() -> dict:
    """A fully populated request in the camelCase wire format."""
    return {
        "objective": "balanced",
        "ndviData": {"stats": {"min": 0.18, "max": 0.71, "mean": 0.46}},
        "weatherData": {"current": {"temperature": 27.5, "humidity": 63, "precipitation": 0.4}},
        "soilData": {"stats": {"mean": 0.21}},
        "etData": {"stats": {"mean": 4.6}},
        "timeSeriesData": {
            "points": [{"date": f"2026-06-{i + 1:02d}", "ndvi": v} for i, v in enumerate(DECLINING_SERIES)],
            "summary": "Two weeks of Sentinel-2 composites",
        },
        "context": {
            "grid3x3": [
                {"cellId": f"{r}-{c}", "mean": round(0.4 + 0.02 * (r * 3 + c), 2)}
                for r in range(3)
                for c in range(3)
            ],
            "dataLatencyHours": 12,
        },
        "providersTried": [
            {"provider": "sentinel", "ok": True},
            {"provider": "landsat", "ok": False, "reason": "timeout"},
        ],
    }


@pytest.fixture
def rich_request(rich_payload) -> InferenceRequest:
    return InferenceRequest.model_validate(rich_payload)


@pytest.fixture
def july() -> datetime:
    return datetime(2026, 7, 15, tzinfo=timezone.utc)


@pytest.fixture
def engine(july) -> FieldEngine:
    return FieldEngine(now=lambda: july)


@pytest.fixture
def rich_inference(engine, rich_request):
    return engine.run_inference(rich_request)
