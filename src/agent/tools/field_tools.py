"""LangChain tools exposing the FieldPulse engine.

Thin wrappers: each tool validates its JSON-ish arguments into the request
records and returns the camelCase result dict the HTTP API returns.
"""

from __future__ import annotations

from typing import Any

from langchain_core.tools import tool

from src.engine.engine import FieldEngine
from src.engine.types import FeatureVector, InferenceRequest, ScenarioInput

_engine = FieldEngine()


@tool
def run_field_inference(request: dict[str, Any], objective: str = "balanced") -> dict[str, Any]:
    """Run the field inference pipeline on observed field signals.

    Produces the NDVI forecast, anomaly score, management zones, ranked
    recommendations and tasks for one field.

    Args:
        request: Inference request (camelCase keys): ndviData, weatherData,
            soilData, etData, timeSeriesData, context, providersTried,
            selectedCell. Missing inputs fall back to climatological defaults.
        objective: "balanced", "yield" or "water".

    Returns:
        The inference result as a JSON-compatible dict.
    """
    parsed = InferenceRequest.model_validate({**request, "objective": objective})
    return _engine.run_inference(parsed).model_dump(by_alias=True)


@tool
def simulate_field_scenario(
    features: dict[str, Any],
    irrigation_delta: float = 0.0,
    water_budget: float = 0.5,
    fertilizer_delta: float = 0.0,
    target_risk: float = 0.35,
) -> dict[str, Any]:
    """Simulate a what-if irrigation/fertilizer change against a feature vector.

    Args:
        features: featureVector from a previous run_field_inference result.
        irrigation_delta: Relative irrigation change, -0.35 to 0.6 (0.1 = +10%).
        water_budget: Share of the irrigation change actually delivered, 0-1.
        fertilizer_delta: Relative fertilizer change, -0.2 to 0.3.
        target_risk: Acceptable 7-day risk, 0.05-0.95.

    Returns:
        Baseline vs scenario risk and NDVI, water and yield-proxy deltas.
    """
    scenario = ScenarioInput(
        irrigation_delta=irrigation_delta,
        water_budget=water_budget,
        fertilizer_delta=fertilizer_delta,
        target_risk=target_risk,
    )
    result = _engine.run_scenario(FeatureVector.model_validate(features), scenario)
    return result.model_dump(by_alias=True)


FIELD_TOOLS = [run_field_inference, simulate_field_scenario]
