"""What-if scenario simulator.

Pure function of (features, scenario): no I/O, no randomness, no clock, so
identical arguments always return identical results.
"""

from __future__ import annotations

from src.engine.types import FeatureVector, ScenarioInput, ScenarioResult
from src.engine.utils import clamp, round4, to_float

IRRIGATION_RANGE = (-0.35, 0.6)
WATER_BUDGET_RANGE = (0.0, 1.0)
FERTILIZER_RANGE = (-0.2, 0.3)
TARGET_RISK_RANGE = (0.05, 0.95)

IMPROVES_TEXT = "Scenario reduces near-term risk; use as next irrigation schedule candidate."
WORSENS_TEXT = "Scenario does not reduce near-term risk; tighten water plan or reduce stress drivers."


def baseline_risk7d(features: FeatureVector) -> float:
    return clamp(
        features.moisture_deficit_index * 0.45
        + features.weather_stress_index * 0.25
        + max(0.0, 0.42 - features.ndvi_mean) * 0.8,
        0.0,
        1.0,
    )


def intervention_magnitude(irrigation_delta: float, fertilizer_delta: float) -> float:
    """0 for no change, 1 for the largest irrigation change (or combined equivalent)."""
    return min(1.0, abs(irrigation_delta) / IRRIGATION_RANGE[1] + 0.5 * abs(fertilizer_delta) / FERTILIZER_RANGE[1])


def run_what_if(features: FeatureVector, scenario: ScenarioInput) -> ScenarioResult:
    irrigation = clamp(to_float(scenario.irrigation_delta, 0.0), *IRRIGATION_RANGE)
    water_budget = clamp(to_float(scenario.water_budget, 0.5), *WATER_BUDGET_RANGE)
    fertilizer = clamp(to_float(scenario.fertilizer_delta, 0.0), *FERTILIZER_RANGE)
    target_risk = clamp(to_float(scenario.target_risk, 0.35), *TARGET_RISK_RANGE)

    baseline_risk = baseline_risk7d(features)
    baseline_ndvi30d = clamp(features.ndvi_mean + features.ndvi_delta30, -0.2, 0.95)

    # the water budget scales how much of the irrigation change is delivered
    moisture_lift = irrigation * 0.52 + irrigation * water_budget * 0.14
    ndvi_lift = irrigation * 0.1 + fertilizer * 0.06
    if irrigation or fertilizer:
        ndvi_lift -= features.data_latency_penalty * 0.02

    scenario_ndvi30d = clamp(baseline_ndvi30d + ndvi_lift, -0.2, 0.95)
    scenario_risk = clamp(baseline_risk - moisture_lift * 0.55 + max(0.0, target_risk - 0.55) * 0.05, 0.0, 1.0)

    confidence = clamp(
        0.35 + (1 - features.data_latency_penalty) * 0.2 + (1 - intervention_magnitude(irrigation, fertilizer)) * 0.37,
        0.35,
        0.92,
    )

    return ScenarioResult(
        baseline_risk7d=round4(baseline_risk),
        scenario_risk7d=round4(scenario_risk),
        baseline_ndvi30d=round4(baseline_ndvi30d),
        scenario_ndvi30d=round4(scenario_ndvi30d),
        water_use_delta_pct=round(irrigation * 100, 1),
        yield_proxy_delta_pct=round((scenario_ndvi30d - baseline_ndvi30d) * 65, 1),
        recommendation=IMPROVES_TEXT if scenario_risk < baseline_risk else WORSENS_TEXT,
        confidence=round4(confidence),
    )
