"""LLM chat collaborator.

Builds a context packet from the request and its InferenceResult, asks the
configured chat model(s) for a strict-JSON answer and converts the reply
into a ChatResponse.

Returns None when no LLM token is configured. Raises LLMUnavailableError
when every candidate model failed; the orchestrator catches that and falls
back to the deterministic composer.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from src.agent import llm as llm_config
from src.agent.chat import compact_evidence, legacy_text
from src.agent.intent import classify_intent
from src.agent.prompts.system import FIELDPULSE_SYSTEM, OUTPUT_CONTRACT
from src.engine.cache import ProviderRuntime
from src.engine.types import ChatMode, ChatResponse, ChatSections, ChatTurn, InferenceRequest, InferenceResult, RenderModel

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
HISTORY_TURNS = 10
HISTORY_CHARS = 600
QUESTION_CHARS = 4000
MAX_ACTIONS = 5
MAX_DIAGNOSTICS = 12

CHAT_MODES: tuple[str, ...] = (
    "status", "irrigation-plan", "stress-debug", "forecast", "next-actions", "what-if-explainer",
)

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_ANSWER_FIELD = re.compile(r'"answer"\s*:\s*"([\s\S]*?)"', re.IGNORECASE)


class LLMUnavailableError(Exception):
    """Every candidate model failed or returned no usable answer."""

    def __init__(self, last_failure: str, attempted_models: list[str], retries: int) -> None:
        super().__init__(f"llm_all_models_failed: {last_failure}")
        self.last_failure = last_failure
        self.attempted_models = attempted_models
        self.retries = retries


def to_mode(value: Any) -> ChatMode:
    return value if value in CHAT_MODES else "status"


def to_render_model(mode: ChatMode) -> RenderModel:
    if mode == "what-if-explainer":
        return "what-if"
    if mode == "status":
        return "status"
    return "qa"


def parse_json_from_text(text: str) -> Any:
    """Parse a JSON reply, also accepting one wrapped in a code fence."""
    trimmed = text.strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        block = _FENCED.search(trimmed)
        if not block:
            return None
        try:
            return json.loads(block.group(1).strip())
        except json.JSONDecodeError:
            return None


def sanitize_answer_text(raw: Any) -> str:
    """Reduce a model answer to one plain-text paragraph.

    Unwraps code fences and JSON envelopes ({"answer": ...}, {"data": {...}})
    that some models return despite the prompt.
    """
    text = str(raw or "").strip()
    if not text:
        return ""

    fenced = _FENCED.search(text)
    if fenced:
        text = fenced.group(1).strip()

    if (text.startswith("{") and text.endswith("}")) or (text.startswith("[") and text.endswith("]")):
        parsed = parse_json_from_text(text)
        if isinstance(parsed, dict):
            nested = parsed.get("data") if isinstance(parsed.get("data"), dict) else {}
            resolved = str(
                parsed.get("answer") or parsed.get("response") or parsed.get("text")
                or nested.get("answer") or nested.get("text") or ""
            ).strip()
            if resolved:
                text = resolved

    if text.startswith("{") or text.startswith("["):
        match = _ANSWER_FIELD.search(text)
        if match:
            text = match.group(1).replace("\\n", "\n").replace('\\"', '"').strip()

    text = re.sub(r"^[\"'`{\[]+", "", text)
    text = re.sub(r"[\"'`\]}]+$", "", text)
    return re.sub(r"\s+", " ", text).strip()


def sanitize_actions(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    actions = [str(entry).strip() for entry in raw if entry is not None]
    return [a for a in actions if a][:MAX_ACTIONS]


def normalize_history(history: list[ChatTurn]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for turn in history[-HISTORY_TURNS:]:
        text = turn.text[:HISTORY_CHARS]
        if not text:
            continue
        messages.append(AIMessage(content=text) if turn.role == "assistant" else HumanMessage(content=text))
    return messages


def series_summary(request: InferenceRequest) -> Any:
    source = request.time_series_data or request.context.time_series
    if source is None or source.summary is None:
        return None
    if isinstance(source.summary, str):
        return source.summary
    return source.summary.model_dump(by_alias=True, exclude_none=True)


def build_context_packet(request: InferenceRequest, inference: InferenceResult) -> dict[str, Any]:
    ctx = request.context
    grid = ctx.grid3x3[:9]
    selected = request.resolved_selected_cell()
    selected_data = next((cell for cell in grid if cell.cell_id == selected), None) if selected else None

    def dump(model: Any) -> Any:
        return model.model_dump(by_alias=True) if model is not None else None

    return {
        "objective": request.objective or inference.objective,
        "mode": to_mode(request.mode),
        "selectedCell": selected,
        "selectedCellData": dump(selected_data),
        "inference": {
            "summary": dump(inference.summary),
            "confidence": inference.confidence,
            "dataQuality": dump(inference.data_quality),
            "forecast": dump(inference.forecast),
            "anomaly": dump(inference.anomaly),
            "featureVector": dump(inference.feature_vector),
            "recommendations": [
                {
                    "title": item.title,
                    "priority": item.priority,
                    "reason": item.reason,
                    "actions": item.actions[:4],
                    "expectedImpact": item.expected_impact,
                    "confidence": item.confidence,
                    "timeWindow": item.time_window,
                }
                for item in inference.recommendations[:4]
            ],
            "tasks": [dump(task) for task in inference.tasks[:5]],
        },
        "observed": {
            "ndviStats": dump(ctx.ndvi_stats),
            "soilStats": dump(ctx.soil_stats),
            "etStats": dump(ctx.et_stats),
            "weather": dump(ctx.weather),
            "timeSeriesSummary": series_summary(request),
            "grid3x3": [dump(cell) for cell in grid],
        },
        "providerDiagnostics": {
            "providersTried": [dump(diag) for diag in request.resolved_providers()[:MAX_DIAGNOSTICS]],
            "warnings": ctx.warnings[:MAX_DIAGNOSTICS] + inference.warnings[:MAX_DIAGNOSTICS],
        },
    }


def build_messages(request: InferenceRequest, inference: InferenceResult) -> list[BaseMessage]:
    payload = {
        "question": request.prompt[:QUESTION_CHARS],
        "context": build_context_packet(request, inference),
        "outputContract": OUTPUT_CONTRACT,
    }
    return [
        SystemMessage(content=FIELDPULSE_SYSTEM),
        *normalize_history(request.history),
        HumanMessage(content=json.dumps(payload)),
    ]


def model_candidates(
    primary: str | None = None,
    fallbacks: list[str] | None = None,
) -> list[str]:
    """Primary model followed by configured fallbacks, deduplicated in order."""
    names = [primary or llm_config.DEFAULT_MODEL, *(llm_config.FALLBACK_MODELS if fallbacks is None else fallbacks)]
    candidates: list[str] = []
    for name in names:
        name = name.strip().removeprefix("models/")
        if name and name not in candidates:
            candidates.append(name)
    return candidates


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = [part.get("text", "") if isinstance(part, dict) else str(part) for part in content]
    return "".join(parts).strip()


def compose_llm_chat_response(
    request: InferenceRequest,
    inference: InferenceResult,
    runtime: ProviderRuntime | None = None,
    llm_factory: Callable[[str], BaseChatModel] | None = None,
    models: list[str] | None = None,
    backoff: float = 0.35,
) -> ChatResponse | None:
    """Ask the chat model for an answer grounded in `inference`.

    Args:
        runtime: provider cooldown state; models in cooldown are skipped.
        llm_factory: builds a chat model for a model name. Defaults to
            get_llm; when None and no token is configured, returns None.
        models: candidate model names, defaults to model_candidates().
        backoff: base sleep in seconds between retries of the same model.

    Raises:
        LLMUnavailableError: no candidate produced a usable answer.
    """
    if llm_factory is None:
        if not llm_config.LLM_TOKEN:
            return None
        llm_factory = llm_config.get_llm

    intent, intent_confidence = classify_intent(request.prompt)
    messages = build_messages(request, inference)
    used_history = len(messages) > 2
    requested_mode = to_mode(request.mode)

    attempted: list[str] = []
    retries = 0
    last_failure = "llm_failed"

    for model in models if models is not None else model_candidates():
        if runtime is not None and runtime.should_skip(model):
            logger.info("Skipping model %s during cooldown", model)
            continue
        attempted.append(model)
        chat_model = llm_factory(model)

        for attempt in range(MAX_RETRIES + 1):
            if attempt:
                retries += 1
                time.sleep(backoff * attempt)
            try:
                reply = chat_model.invoke(messages)
            except Exception as exc:
                last_failure = f"{type(exc).__name__}: {exc}"
                logger.warning("LLM call to %s failed (attempt %d): %s", model, attempt + 1, last_failure)
                continue

            raw_text = _message_text(reply)
            if not raw_text:
                last_failure = "llm_empty_response"
                continue

            parsed = parse_json_from_text(raw_text)
            parsed = parsed if isinstance(parsed, dict) else {}
            answer = sanitize_answer_text(parsed.get("answer") or raw_text)
            if not answer:
                last_failure = "llm_missing_answer"
                continue

            if runtime is not None:
                runtime.mark_success(model)
            mode = to_mode(parsed.get("mode") or requested_mode)
            sections = ChatSections(
                rationale=str(parsed.get("rationale") or "").strip() or None,
                actions=sanitize_actions(parsed.get("actions")),
                forecast=str(parsed.get("forecast") or "").strip() or None,
            )
            evidence = compact_evidence(inference)
            return ChatResponse(
                mode=mode,
                render_model=to_render_model(mode),
                backend="llm",
                intent=intent,
                intent_confidence=intent_confidence,
                used_history=used_history,
                answer=answer,
                sections=sections,
                evidence=evidence,
                tasks=inference.tasks[:5],
                text=legacy_text(answer, sections, evidence),
                llm_attempted_models=list(attempted),
                llm_final_model=model,
                llm_retries=retries,
                llm_degraded=retries > 0 or len(attempted) > 1,
            )

        if runtime is not None:
            runtime.mark_failure(model)

    raise LLMUnavailableError(last_failure, attempted, retries)
