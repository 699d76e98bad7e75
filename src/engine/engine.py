"""Inference orchestrator.

Sequencing per call:
    features -> {forecast, anomaly, zones} (parallel) -> recommendations -> aggregate

Every result is built fresh per call. The only side effects are the two
best-effort persistence writes, which are handed to a background executor
and never awaited.
"""

from __future__ import annotations

import logging
import os
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import Callable, Optional

from src.agent.chat import compose_chat_response
from src.agent.llm_chat import compose_llm_chat_response
from src.engine.anomaly import compute_anomaly
from src.engine.cache import ProviderRuntime
from src.engine.features import build_data_quality, build_feature_vector, extract_series
from src.engine.forecasting import forecast_ndvi
from src.engine.persistence import ENGINE_VERSION, BackgroundPersistence
from src.engine.recommendations import build_recommendations, build_tasks, objective_risk
from src.engine.simulation import run_what_if
from src.engine.types import (
    Anomaly,
    ChatResponse,
    ChatResult,
    FeatureVector,
    Forecast,
    InferenceRequest,
    InferenceResult,
    Objective,
    Recommendation,
    ScenarioInput,
    ScenarioResult,
    Summary,
)
from src.engine.utils import clamp, round4
from src.engine.zones import compute_zones

logger = logging.getLogger(__name__)

LLMComposer = Callable[[InferenceRequest, InferenceResult], Optional[ChatResponse]]


def normalize_objective(value: str | None) -> Objective:
    if value in ("yield", "water", "balanced"):
        return value  # type: ignore[return-value]
    return "balanced"


def derive_summary(forecast: Forecast, anomaly: Anomaly, recommendations: list[Recommendation]) -> Summary:
    if anomaly.level == "high":
        what_changed = f"NDVI volatility is elevated and anomaly risk is {round(anomaly.score * 100)}%."
    else:
        what_changed = f"Field trend is {forecast.trend} with {round(forecast.risk7d * 100)}% 7-day risk."
    why = anomaly.signals[0] if anomaly.signals else (
        "Signals across NDVI, weather, and moisture are within expected range."
    )
    next_actions = recommendations[0].title if recommendations else "Continue baseline monitoring."
    return Summary(
        what_changed=what_changed,
        why=why,
        next_actions=next_actions,
        recheck_in="24-48 hours" if anomaly.level == "high" else "5-7 days",
    )


def aggregate_confidence(data_quality_score: float, risk7d: float, anomaly_score: float, obj_risk: float) -> float:
    agreement = 1 - min(1.0, abs(risk7d - anomaly_score))
    return clamp(data_quality_score * 0.6 + agreement * 0.25 + (1 - obj_risk) * 0.15, 0.2, 0.99)


class FieldEngine:
    """Composes the pipeline stages for inference, chat and scenario calls.

    Args:
        persistence: background dispatcher for heartbeat/feedback writes, or
            None to skip persistence entirely.
        llm_composer: callable returning a ChatResponse, None when no LLM is
            configured, or raising on failure. None disables the LLM path.
        now: clock override for the seasonal index.
    """

    def __init__(
        self,
        persistence: BackgroundPersistence | None = None,
        llm_composer: LLMComposer | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.persistence = persistence
        self.llm_composer = llm_composer
        self._now = now

    def run_inference(self, request: InferenceRequest) -> InferenceResult:
        objective = normalize_objective(request.objective)
        series = extract_series(request)
        features = build_feature_vector(request, series, now=self._now() if self._now else None)
        data_quality = build_data_quality(request)

        with ThreadPoolExecutor(max_workers=3) as pool:
            forecast_future = pool.submit(forecast_ndvi, features, series)
            anomaly_future = pool.submit(compute_anomaly, features, series)
            zones_future = pool.submit(compute_zones, request, features)
            forecast = forecast_future.result()
            anomaly = anomaly_future.result()
            zones = zones_future.result()

        recommendations = build_recommendations(features, objective, anomaly.score)
        confidence = aggregate_confidence(
            data_quality.score, forecast.risk7d, anomaly.score, objective_risk(features, objective),
        )

        result = InferenceResult(
            engine=ENGINE_VERSION,
            objective=objective,
            confidence=round4(confidence),
            data_quality=data_quality,
            is_simulated_inputs=data_quality.is_simulated_inputs,
            feature_vector=features,
            forecast=forecast,
            anomaly=anomaly,
            zones=zones,
            recommendations=recommendations,
            tasks=build_tasks(recommendations),
            summary=derive_summary(forecast, anomaly, recommendations),
            providers_tried=request.resolved_providers(),
            warnings=list(data_quality.warnings),
        )

        if self.persistence is not None:
            self.persistence.record(str(uuid.uuid4()), result)
        return result

    def run_chat(self, request: InferenceRequest) -> ChatResult:
        inference = self.run_inference(request)
        chat: ChatResponse | None = None
        if self.llm_composer is not None:
            try:
                chat = self.llm_composer(request, inference)
            except Exception as exc:
                logger.info("LLM chat unavailable, using deterministic composer: %s", exc)
                chat = None

        if chat is None:
            chat = compose_chat_response(
                prompt=request.prompt,
                inference=inference,
                mode=request.mode,
                selected_cell=request.resolved_selected_cell(),
                history=request.history,
            )
        return ChatResult(inference=inference, chat=chat)

    def run_scenario(self, features: FeatureVector, scenario: ScenarioInput) -> ScenarioResult:
        return run_what_if(features, scenario)


def create_engine() -> FieldEngine:
    """Engine wired with file persistence and the LLM collaborator."""
    persist = os.getenv("FIELDPULSE_PERSIST", "1") not in ("0", "false", "no")
    runtime = ProviderRuntime()
    return FieldEngine(
        persistence=BackgroundPersistence() if persist else None,
        llm_composer=partial(compose_llm_chat_response, runtime=runtime),
    )
