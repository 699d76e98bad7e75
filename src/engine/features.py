"""Feature extraction: raw field request -> fixed numeric feature vector.

All defaulting for the optional request record lives here. Downstream
components (forecaster, anomaly scorer, zone clusterer, recommendations,
scenario simulator) only ever see the coerced, bounded FeatureVector plus
the cleaned NDVI series.

Defaults when an input is missing or non-finite:
- NDVI mean 0.45 (or the latest series value), min/max = mean -/+ 0.2
- temperature 24 C, humidity 55 %, precipitation 1.2 mm
- soil moisture 0.24 (volumetric fraction), ET 3.4 mm/day
- deltas, acceleration and momentum 0 when history is too short
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from src.engine.types import (
    DataQualityReport,
    FeatureVector,
    InferenceRequest,
    StatsBlock,
)
from src.engine.utils import clamp, linear_slope, mean, population_std, round4, to_float

DEFAULT_NDVI_MEAN = 0.45
DEFAULT_TEMPERATURE_C = 24.0
DEFAULT_HUMIDITY_PCT = 55.0
DEFAULT_PRECIPITATION_MM = 1.2
DEFAULT_SOIL_MOISTURE = 0.24
DEFAULT_ET_MM = 3.4
DEFAULT_PROVIDER_QUALITY = 0.75
LATENCY_HORIZON_HOURS = 96.0

AREA_WEIGHT = 0.7
CELL_WEIGHT = 0.3
DELTA30_FROM_DELTA7 = 1.8

INPUT_CATEGORIES = 5


# ---------------------------------------------------------------------------
# Input resolution
# ---------------------------------------------------------------------------

def extract_series(request: InferenceRequest) -> list[float]:
    """Ordered NDVI values from the request; non-finite samples are dropped."""
    source = request.time_series_data or request.context.time_series
    if source is None:
        return []
    values = [to_float(point.ndvi, math.nan) for point in source.points]
    return [value for value in values if math.isfinite(value)]


def _ndvi_stats(request: InferenceRequest) -> StatsBlock | None:
    if request.ndvi_data is not None and request.ndvi_data.stats is not None:
        return request.ndvi_data.stats
    return request.context.ndvi_stats


def _soil_stats(request: InferenceRequest) -> StatsBlock | None:
    if request.soil_data is not None and request.soil_data.stats is not None:
        return request.soil_data.stats
    return request.context.soil_stats


def _et_stats(request: InferenceRequest) -> StatsBlock | None:
    if request.et_data is not None and request.et_data.stats is not None:
        return request.et_data.stats
    return request.context.et_stats


def _selected_cell_mean(request: InferenceRequest) -> float | None:
    selected = request.resolved_selected_cell()
    if not selected:
        return None
    for cell in request.context.grid3x3:
        if str(cell.cell_id) == str(selected):
            value = to_float(cell.mean, math.nan)
            return value if math.isfinite(value) else None
    return None


# ---------------------------------------------------------------------------
# Series statistics
# ---------------------------------------------------------------------------

def _window_mean(series: list[float], start: int, stop: int) -> float:
    """Mean of series[start:stop]; the first sample stands in for an empty window."""
    window = series[max(0, start):max(0, stop)]
    return mean(window or series[:1])


def ndvi_delta7(series: list[float]) -> float:
    n = len(series)
    if n < 7:
        return 0.0
    return mean(series[-3:]) - _window_mean(series, n - 10, n - 7)


def extrapolate_delta30(delta7: float) -> float:
    """Approximate the 30-day change from the 7-day change.

    Used only when fewer than 30 samples exist. This is a fixed multiplier,
    not a fitted relationship; replace it here once a calibrated
    long-horizon estimate is available.
    """
    return delta7 * DELTA30_FROM_DELTA7


def ndvi_delta30(series: list[float], delta7: float) -> float:
    n = len(series)
    if n < 30:
        return extrapolate_delta30(delta7)
    return mean(series[-6:]) - _window_mean(series, n - 36, n - 30)


def trend_acceleration(series: list[float]) -> float:
    n = len(series)
    if n < 8:
        return 0.0
    return linear_slope(series[-4:]) - linear_slope(series[n - 8:n - 4])


def short_term_momentum(series: list[float]) -> float:
    if len(series) < 4:
        return 0.0
    prior = series[-6:-3] or series[-3:]
    return mean(series[-3:]) - mean(prior)


def seasonal_index(now: datetime | None = None) -> float:
    """Sinusoid over the calendar year, peaking mid-year (month index 6)."""
    now = now or datetime.now(timezone.utc)
    month = now.month - 1
    return 0.5 + 0.5 * math.sin((month / 12) * math.pi * 2 - math.pi / 2)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_feature_vector(
    request: InferenceRequest,
    series: list[float] | None = None,
    now: datetime | None = None,
) -> FeatureVector:
    """Build the 19-field feature vector for one request."""
    if series is None:
        series = extract_series(request)
    stats = _ndvi_stats(request) or StatsBlock()

    fallback_mean = series[-1] if series else DEFAULT_NDVI_MEAN
    base_mean = to_float(stats.mean, fallback_mean)
    cell_mean = _selected_cell_mean(request)
    ndvi_mean = base_mean * AREA_WEIGHT + cell_mean * CELL_WEIGHT if cell_mean is not None else base_mean
    ndvi_mean = clamp(ndvi_mean, -1.0, 1.0)

    ndvi_min = clamp(to_float(stats.min, max(-0.2, ndvi_mean - 0.2)), -1.0, 1.0)
    ndvi_max = clamp(to_float(stats.max, min(0.95, ndvi_mean + 0.2)), -1.0, 1.0)
    spread = max(0.0, ndvi_max - ndvi_min)

    delta7 = ndvi_delta7(series)
    delta30 = ndvi_delta30(series, delta7)
    slope = linear_slope(series if series else [ndvi_mean, ndvi_mean])

    weather_source = request.weather_data or request.context.weather
    current = weather_source.current if weather_source is not None else None
    temperature = to_float(current.temperature if current else None, DEFAULT_TEMPERATURE_C)
    humidity = clamp(to_float(current.humidity if current else None, DEFAULT_HUMIDITY_PCT), 0.0, 100.0)
    precipitation = max(0.0, to_float(current.precipitation if current else None, DEFAULT_PRECIPITATION_MM))

    soil = _soil_stats(request)
    et = _et_stats(request)
    soil_moisture = clamp(to_float(soil.mean if soil else None, DEFAULT_SOIL_MOISTURE), 0.0, 1.0)
    et_mean = max(0.0, to_float(et.mean if et else None, DEFAULT_ET_MM))

    moisture_deficit = clamp((0.28 - soil_moisture) * 3.2 + (et_mean - 4.1) * 0.08, 0.0, 1.0)
    weather_stress = clamp(
        (temperature - 30) * 0.05 + (0.2 if humidity > 84 else 0.0) + precipitation * 0.015,
        0.0,
        1.0,
    )
    latency_hours = max(0.0, to_float(request.context.data_latency_hours, 0.0))
    latency_penalty = clamp(latency_hours / LATENCY_HORIZON_HOURS, 0.0, 1.0)

    return FeatureVector(
        ndvi_min=round4(ndvi_min),
        ndvi_max=round4(ndvi_max),
        ndvi_mean=round4(ndvi_mean),
        ndvi_spread=round4(spread),
        ndvi_delta7=round4(delta7),
        ndvi_delta30=round4(delta30),
        ndvi_trend_slope=round4(slope),
        trend_acceleration=round4(trend_acceleration(series)),
        ndvi_volatility=round4(population_std(series)),
        soil_moisture_mean=round4(soil_moisture),
        moisture_deficit_index=round4(moisture_deficit),
        et_mean=round4(et_mean),
        weather_stress_index=round4(weather_stress),
        temperature=round4(temperature),
        precipitation=round4(precipitation),
        humidity=round4(humidity),
        seasonal_index=round4(seasonal_index(now)),
        short_term_momentum=round4(short_term_momentum(series)),
        data_latency_penalty=round4(latency_penalty),
    )


def build_data_quality(request: InferenceRequest) -> DataQualityReport:
    """Score input coverage and upstream provider reliability."""
    ctx = request.context
    checks = [
        _ndvi_stats(request) is not None,
        request.time_series_data is not None or ctx.time_series is not None,
        request.weather_data is not None or ctx.weather is not None,
        request.soil_data is not None or ctx.soil_stats is not None,
        request.et_data is not None or ctx.et_stats is not None,
    ]
    completeness = sum(checks) / INPUT_CATEGORIES

    providers = request.resolved_providers()
    if providers:
        provider_quality = sum(1 for diag in providers if diag.ok) / len(providers)
    else:
        provider_quality = DEFAULT_PROVIDER_QUALITY

    simulated_flags = [
        block.is_simulated
        for block in (
            request.ndvi_data,
            request.weather_data,
            request.soil_data,
            request.et_data,
            request.time_series_data,
            ctx.weather,
            ctx.time_series,
        )
        if block is not None
    ]
    is_simulated = any(simulated_flags)

    warnings: list[str] = []
    if completeness < 0.7:
        warnings.append("Limited input coverage; recommendations are conservative.")
    if provider_quality < 0.6:
        warnings.append("One or more upstream providers reported degraded reliability.")
    if is_simulated:
        warnings.append("Some inputs are simulated due to provider outages.")

    score = clamp(completeness * 0.65 + provider_quality * 0.35 - (0.12 if is_simulated else 0.0), 0.0, 1.0)

    return DataQualityReport(
        completeness=round4(completeness),
        provider_quality=round4(provider_quality),
        score=round4(score),
        is_simulated_inputs=is_simulated,
        warnings=warnings,
    )
