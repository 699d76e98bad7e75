"""Anomaly scorer: robust deviation, momentum and volatility signals.

Score components (summed, clamped to [0, 1]):
- 0.35 x |robust z| of the latest NDVI sample against the series median,
  using the median absolute deviation (MAD) as scale
- 0.35 x momentum penalty: max(0, -2.8 x EWMA of first differences)
- volatility penalty: max(0, volatility - 0.09) x 2.4
- 0.12 when relative humidity exceeds 84 %

Levels: high > 0.66, moderate > 0.38, otherwise low.
"""

from __future__ import annotations

import numpy as np

from src.engine.types import Anomaly, AnomalyLevel, FeatureVector
from src.engine.utils import clamp, round4

HIGH_THRESHOLD = 0.66
MODERATE_THRESHOLD = 0.38
EWMA_ALPHA = 0.3
MAD_FLOOR = 1e-6
MAX_SIGNALS = 4


def ewma(values: np.ndarray, alpha: float = EWMA_ALPHA) -> float:
    if values.size == 0:
        return 0.0
    acc = float(values[0])
    for value in values[1:]:
        acc = alpha * float(value) + (1 - alpha) * acc
    return acc


def robust_z(values: np.ndarray) -> float:
    median = float(np.median(values))
    mad = float(np.median(np.abs(values - median))) or MAD_FLOOR
    return 0.6745 * (float(values[-1]) - median) / mad


def anomaly_level(score: float) -> AnomalyLevel:
    if score > HIGH_THRESHOLD:
        return "high"
    if score > MODERATE_THRESHOLD:
        return "moderate"
    return "low"


def compute_anomaly(features: FeatureVector, series: list[float]) -> Anomaly:
    values = np.asarray(series if series else [features.ndvi_mean, features.ndvi_mean], dtype=float)

    z = robust_z(values)
    momentum_penalty = max(0.0, -ewma(np.diff(values)) * 2.8)
    volatility_penalty = max(0.0, features.ndvi_volatility - 0.09) * 2.4
    humidity_penalty = 0.12 if features.humidity > 84 else 0.0

    score = clamp(abs(z) * 0.35 + momentum_penalty * 0.35 + volatility_penalty + humidity_penalty, 0.0, 1.0)

    signals: list[str] = []
    if abs(z) > 1.6:
        signals.append("Current NDVI deviates strongly from recent median.")
    if momentum_penalty > 0.2:
        signals.append("Short-term NDVI momentum is negative.")
    if volatility_penalty > 0.14:
        signals.append("NDVI variance is elevated versus typical baseline.")
    if humidity_penalty > 0:
        signals.append("High humidity can elevate disease pressure.")
    if not signals:
        signals.append("No major anomaly signal detected.")

    score = round4(score)
    return Anomaly(score=score, level=anomaly_level(score), signals=signals[:MAX_SIGNALS])
