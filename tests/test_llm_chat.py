"""LLM chat collaborator tests, run against LangChain fake chat models."""

from __future__ import annotations

import json
from typing import Any

import pytest
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatResult

from src.agent import llm as llm_config
from src.agent.llm_chat import (
    LLMUnavailableError,
    build_messages,
    compose_llm_chat_response,
    model_candidates,
    parse_json_from_text,
    sanitize_actions,
    sanitize_answer_text,
    to_render_model,
)
from src.engine.cache import ProviderRuntime
from src.engine.types import ChatTurn, InferenceRequest

GOOD_REPLY = json.dumps(
    {
        "answer": "Irrigate P3 tonight and re-check moisture tomorrow.",
        "mode": "irrigation-plan",
        "rationale": "Soil moisture is below the stress line.",
        "actions": ["Run drip for 2 hours", "", "  Check valve pressure  "],
        "forecast": "7-day risk should ease.",
    }
)


class FailingChatModel(BaseChatModel):
    @property
    def _llm_type(self) -> str:
        return "failing"

    def _generate(self, messages: Any, stop: Any = None, run_manager: Any = None, **kwargs: Any) -> ChatResult:
        raise TimeoutError("upstream timed out")


def fake_factory(responses_by_model: dict[str, list[str]]):
    models = {name: FakeListChatModel(responses=replies) for name, replies in responses_by_model.items()}

    def factory(model: str) -> BaseChatModel:
        return models.get(model) or FailingChatModel()

    return factory


@pytest.fixture
def chat_request(rich_request):
    return rich_request.model_copy(update={"prompt": "Should I irrigate the dry corner?"})


def test_json_answer_becomes_chat_response(chat_request, rich_inference):
    chat = compose_llm_chat_response(
        chat_request, rich_inference, llm_factory=fake_factory({"m1": [GOOD_REPLY]}), models=["m1"], backoff=0
    )

    assert chat.backend == "llm"
    assert chat.answer == "Irrigate P3 tonight and re-check moisture tomorrow."
    assert chat.mode == "irrigation-plan"
    assert chat.render_model == "qa"
    assert chat.sections.actions == ["Run drip for 2 hours", "Check valve pressure"]
    assert chat.sections.rationale == "Soil moisture is below the stress line."
    assert chat.evidence[0].startswith("NDVI mean")
    assert len(chat.evidence) == 6
    assert chat.tasks == rich_inference.tasks[:5]
    assert chat.text.startswith(chat.answer + "\n\nWhy: ")
    assert chat.llm_final_model == "m1"
    assert chat.llm_attempted_models == ["m1"]
    assert chat.llm_retries == 0
    assert chat.llm_degraded is False
    assert chat.used_history is False


def test_plain_text_reply_is_accepted(chat_request, rich_inference):
    chat = compose_llm_chat_response(
        chat_request,
        rich_inference,
        llm_factory=fake_factory({"m1": ["Hold irrigation for now."]}),
        models=["m1"],
        backoff=0,
    )
    assert chat.answer == "Hold irrigation for now."
    assert chat.mode == "status"
    assert chat.render_model == "status"


def test_empty_reply_is_retried(chat_request, rich_inference):
    chat = compose_llm_chat_response(
        chat_request, rich_inference, llm_factory=fake_factory({"m1": ["", GOOD_REPLY]}), models=["m1"], backoff=0
    )
    assert chat.llm_retries == 1
    assert chat.llm_degraded is True


def test_falls_through_to_next_model(chat_request, rich_inference):
    chat = compose_llm_chat_response(
        chat_request, rich_inference, llm_factory=fake_factory({"m2": [GOOD_REPLY]}), models=["m1", "m2"], backoff=0
    )
    assert chat.llm_final_model == "m2"
    assert chat.llm_attempted_models == ["m1", "m2"]
    assert chat.llm_retries == 2
    assert chat.llm_degraded is True


def test_all_models_failing_raises(chat_request, rich_inference):
    with pytest.raises(LLMUnavailableError) as info:
        compose_llm_chat_response(
            chat_request, rich_inference, llm_factory=fake_factory({"m1": [""], "m2": [""]}), models=["m1", "m2"], backoff=0
        )
    assert info.value.attempted_models == ["m1", "m2"]
    assert info.value.retries == 4
    assert info.value.last_failure == "llm_empty_response"


def test_exceptions_are_reported(chat_request, rich_inference):
    with pytest.raises(LLMUnavailableError) as info:
        compose_llm_chat_response(chat_request, rich_inference, llm_factory=fake_factory({}), models=["m1"], backoff=0)
    assert info.value.last_failure == "TimeoutError: upstream timed out"


def test_failing_model_enters_cooldown(chat_request, rich_inference):
    runtime = ProviderRuntime(threshold=1)
    factory = fake_factory({"m2": [GOOD_REPLY]})

    compose_llm_chat_response(chat_request, rich_inference, runtime=runtime, llm_factory=factory, models=["m1", "m2"], backoff=0)
    assert runtime.should_skip("m1")

    chat = compose_llm_chat_response(
        chat_request, rich_inference, runtime=runtime, llm_factory=factory, models=["m1", "m2"], backoff=0
    )
    assert chat.llm_attempted_models == ["m2"]
    assert chat.llm_degraded is False


def test_not_configured_returns_none(monkeypatch, chat_request, rich_inference):
    monkeypatch.setattr(llm_config, "LLM_TOKEN", "")
    assert compose_llm_chat_response(chat_request, rich_inference) is None


def test_history_is_forwarded(chat_request, rich_inference):
    request = chat_request.model_copy(
        update={
            "history": [
                ChatTurn(role="user", text="How is P3?"),
                ChatTurn(role="assistant", text="P3 is drying out."),
                ChatTurn(role="user", text=""),
            ]
        }
    )
    messages = build_messages(request, rich_inference)

    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage)
    assert isinstance(messages[2], AIMessage)
    assert len(messages) == 4
    payload = json.loads(messages[-1].content)
    assert payload["question"] == "Should I irrigate the dry corner?"
    assert "outputContract" in payload
    assert payload["context"]["inference"]["featureVector"]["ndviMean"] == rich_inference.feature_vector.ndvi_mean
    assert [p["provider"] for p in payload["context"]["providerDiagnostics"]["providersTried"]] == ["sentinel", "landsat"]

    chat = compose_llm_chat_response(
        request, rich_inference, llm_factory=fake_factory({"m1": [GOOD_REPLY]}), models=["m1"], backoff=0
    )
    assert chat.used_history is True


def test_sanitize_answer_text():
    assert sanitize_answer_text('```json\n{"answer": "Scout the\\nnorth edge."}\n```') == "Scout the north edge."
    assert sanitize_answer_text('{"data": {"answer": "Nested answer"}}') == "Nested answer"
    assert sanitize_answer_text('"quoted"') == "quoted"
    assert sanitize_answer_text(None) == ""


def test_parse_json_from_text():
    assert parse_json_from_text("not json") is None
    assert parse_json_from_text("") is None
    assert parse_json_from_text('```json\n{"a": 1}\n```') == {"a": 1}


def test_small_helpers():
    assert sanitize_actions(["a", None, " ", "b", "c", "d", "e", "f"]) == ["a", "b", "c", "d", "e"]
    assert sanitize_actions("do it") == []
    assert to_render_model("what-if-explainer") == "what-if"
    assert to_render_model("forecast") == "qa"
    assert model_candidates("a", ["b", "a", " c ", "models/d"]) == ["a", "b", "c", "d"]


def test_series_summary_object_reaches_context(rich_payload, engine):
    payload = {**rich_payload}
    payload["timeSeriesData"] = {
        **rich_payload["timeSeriesData"],
        "summary": {"trend": "declining", "averageNDVI": 0.49, "totalPoints": 14},
    }
    request = InferenceRequest.model_validate(payload)
    messages = build_messages(request, engine.run_inference(request))

    packet = json.loads(messages[-1].content)["context"]
    assert packet["observed"]["timeSeriesSummary"] == {"trend": "declining", "averageNDVI": 0.49, "totalPoints": 14}
