"""FieldPulse FastAPI backend.

Serves the inference, chat and scenario operations to the web front end.
Request and response bodies use the camelCase wire format of the records
in src.engine.types; malformed bodies are rejected with 422 by FastAPI.

Run with:
    uvicorn src.api.main:app --reload --port 8000
"""

from __future__ import annotations

from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import Field

load_dotenv()

from src.agent import llm as llm_config  # noqa: E402
from src.engine.cache import TTLStore  # noqa: E402
from src.engine.engine import FieldEngine, create_engine  # noqa: E402
from src.engine.persistence import ENGINE_VERSION  # noqa: E402
from src.engine.types import (  # noqa: E402
    FeatureVector,
    FieldModel,
    InferenceRequest,
    ScenarioInput,
)

# Chat response cache TTL (10 minutes)
CHAT_CACHE_TTL = 600


class ScenarioRequest(FieldModel):
    features: FeatureVector
    scenario: ScenarioInput = Field(default_factory=ScenarioInput)


def create_app(engine: FieldEngine | None = None, cache: TTLStore | None = None) -> FastAPI:
    """Build the API around an engine and chat cache (both injectable for tests)."""
    app = FastAPI(
        title="FieldPulse API",
        description="Field inference, forecasting and recommendation engine",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.engine = engine if engine is not None else create_engine()
    app.state.chat_cache = cache if cache is not None else TTLStore()

    @app.post("/api/ml/infer")
    def infer(body: InferenceRequest, request: Request) -> dict[str, Any]:
        """Run the inference pipeline for one field."""
        result = request.app.state.engine.run_inference(body)
        return result.model_dump(by_alias=True)

    @app.post("/api/ml/chat")
    def chat(body: InferenceRequest, request: Request) -> dict[str, Any]:
        """Answer a field question; cached for identical requests."""
        cache: TTLStore = request.app.state.chat_cache
        key = TTLStore.make_key("chat", body.model_dump_json(by_alias=True))
        cached = cache.get(key)
        if cached is not None:
            return {**cached, "cached": True}

        result = request.app.state.engine.run_chat(body)
        data = result.model_dump(by_alias=True)
        cache.set(key, data, CHAT_CACHE_TTL)
        return {**data, "cached": False}

    @app.post("/api/ml/scenario")
    def scenario(body: ScenarioRequest, request: Request) -> dict[str, Any]:
        """Counterfactual irrigation/fertilizer simulation against a feature vector."""
        result = request.app.state.engine.run_scenario(body.features, body.scenario)
        return result.model_dump(by_alias=True)

    @app.get("/api/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "engine": ENGINE_VERSION,
            "model": llm_config.DEFAULT_MODEL,
            "llm_configured": bool(llm_config.LLM_TOKEN),
            "persistence_enabled": request.app.state.engine.persistence is not None,
        }

    return app


app = create_app()
