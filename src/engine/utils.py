"""Small numeric helpers shared by the inference components.

Every helper is total: missing or non-finite input falls back to a default
instead of raising, so the pipeline always produces a complete result.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_float(value: Any, default: float) -> float:
    """Coerce to a finite float, or return `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def round4(value: float) -> float:
    return round(float(value), 4)


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.std(values))


def linear_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of `values` against their sample index."""
    n = len(values)
    if n < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(n, dtype=float)
    x_centered = x - x.mean()
    denominator = float(np.sum(x_centered ** 2))
    if denominator == 0:
        return 0.0
    return float(np.sum(x_centered * (y - y.mean())) / denominator)


def sigmoid(value: float) -> float:
    return 1.0 / (1.0 + math.exp(-value))
