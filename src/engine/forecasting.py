"""NDVI forecaster: additive Holt-Winters smoothing plus horizon risk.

Projects the NDVI series 30 steps ahead, summarizes the first 7 and all 30
steps, and converts each projection into a 0-1 risk using the water, heat
and ET stress already captured in the feature vector.
"""

from __future__ import annotations

import numpy as np

from src.engine.types import FeatureVector, Forecast, Trend
from src.engine.utils import clamp, mean, round4

LEVEL_WEIGHT = 0.45
TREND_WEIGHT = 0.25
SEASONAL_WEIGHT = 0.2
HORIZON = 30
SHORT_HORIZON = 7

NDVI_FLOOR = -0.3
NDVI_CEILING = 0.95
TREND_THRESHOLD = 0.04


def season_length(n_samples: int) -> int:
    """Adaptive season: 12 for long histories, 7 for medium, else 4.

    Bounded by half the series so every seasonal slot has at least two
    observations, and never below 2.
    """
    inferred = 12 if n_samples >= 24 else 7 if n_samples >= 14 else 4
    return max(2, min(inferred, n_samples // 2))


def holt_winters_additive(series: list[float], horizon: int = HORIZON) -> np.ndarray:
    values = np.asarray(series, dtype=float)
    season = season_length(len(values))

    level = values[0]
    trend = values[1] - values[0] if len(values) > 1 else 0.0
    seasonals = np.zeros(season)
    head = values[:season]
    seasonals[:len(head)] = head - level

    for i, value in enumerate(values):
        slot = i % season
        seasonal = seasonals[slot]
        prev_level = level
        level = LEVEL_WEIGHT * (value - seasonal) + (1 - LEVEL_WEIGHT) * (level + trend)
        trend = TREND_WEIGHT * (level - prev_level) + (1 - TREND_WEIGHT) * trend
        seasonals[slot] = SEASONAL_WEIGHT * (value - level) + (1 - SEASONAL_WEIGHT) * seasonal

    steps = np.arange(1, horizon + 1)
    future_seasonals = seasonals[(len(values) + steps - 1) % season]
    return level + trend * steps + future_seasonals


def trend_label(series: list[float]) -> Trend:
    """Compare the second half of the series with the first half."""
    if len(series) < 3:
        return "stable"
    half = len(series) // 2
    delta = mean(series[half:]) - mean(series[:half])
    if delta > TREND_THRESHOLD:
        return "improving"
    if delta < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def horizon_risk(forecast_ndvi: float, features: FeatureVector) -> float:
    canopy_risk = clamp((0.42 - forecast_ndvi) * 1.8, 0.0, 1.0)
    water_stress = clamp((0.2 - features.soil_moisture_mean) * 2.4, 0.0, 1.0)
    heat_stress = clamp((features.temperature - 30) / 12, 0.0, 1.0)
    et_stress = clamp((features.et_mean - 5.5) / 5, 0.0, 1.0)
    return clamp(0.45 * canopy_risk + 0.25 * water_stress + 0.2 * heat_stress + 0.1 * et_stress, 0.0, 1.0)


def forecast_ndvi(features: FeatureVector, series: list[float]) -> Forecast:
    """Forecast NDVI at 7 and 30 steps; an empty series degrades to the current mean."""
    if not series:
        series = [features.ndvi_mean] * 4

    projection = holt_winters_additive(series, HORIZON)
    ndvi7d = clamp(float(np.mean(projection[:SHORT_HORIZON])), NDVI_FLOOR, NDVI_CEILING)
    ndvi30d = clamp(float(np.mean(projection)), NDVI_FLOOR, NDVI_CEILING)

    return Forecast(
        ndvi7d=round4(ndvi7d),
        ndvi30d=round4(ndvi30d),
        risk7d=round4(horizon_risk(ndvi7d, features)),
        risk30d=round4(horizon_risk(ndvi30d, features)),
        trend=trend_label(series),
    )
