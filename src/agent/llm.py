"""OpenAI-compatible LLM client for the FieldPulse chat collaborator.

Calls the OpenAI Responses API (/v1/responses) and wraps it as a
LangChain-compatible ChatModel, so callers build prompts from LangChain
messages and tests can swap in any other BaseChatModel.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv
from langchain_core.callbacks import CallbackManagerForLLMRun
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from openai import OpenAI

load_dotenv()

LLM_TOKEN = os.getenv("FIELDPULSE_LLM_TOKEN", "")
LLM_BASE_URL = os.getenv("FIELDPULSE_LLM_BASE_URL", "https://api.openai.com/v1")
DEFAULT_MODEL = os.getenv("FIELDPULSE_LLM_MODEL", "gpt-4o-mini")
FALLBACK_MODELS = [
    name.strip() for name in os.getenv("FIELDPULSE_LLM_FALLBACK_MODELS", "").split(",") if name.strip()
]
REQUEST_TIMEOUT_S = 25.0
MAX_OUTPUT_TOKENS = 720


def _get_openai_client() -> OpenAI:
    return OpenAI(base_url=LLM_BASE_URL, api_key=LLM_TOKEN, timeout=REQUEST_TIMEOUT_S, max_retries=0)


class FieldChatModel(BaseChatModel):
    """LangChain ChatModel backed by the Responses API.

    API errors propagate to the caller, which owns retry and fallback.
    """

    model: str = DEFAULT_MODEL
    temperature: float = 0.25
    max_output_tokens: int = MAX_OUTPUT_TOKENS

    @property
    def _llm_type(self) -> str:
        return "fieldpulse-responses"

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: Optional[list[str]] = None,
        run_manager: Optional[CallbackManagerForLLMRun] = None,
        **kwargs: Any,
    ) -> ChatResult:
        client = _get_openai_client()
        response = client.responses.create(
            model=self.model,
            input=_messages_to_input(messages),
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=response.output_text or ""))])


def _messages_to_input(messages: list[BaseMessage]) -> list[dict]:
    """Convert LangChain messages to Responses API input items."""
    items = []
    for msg in messages:
        content = msg.content if isinstance(msg.content, str) else str(msg.content)
        if isinstance(msg, SystemMessage):
            items.append({"role": "system", "content": content})
        elif isinstance(msg, HumanMessage):
            items.append({"role": "user", "content": content})
        elif isinstance(msg, AIMessage):
            items.append({"role": "assistant", "content": content})
    return items


def get_llm(model: str | None = None, temperature: float = 0.25) -> FieldChatModel:
    """Create a FieldChatModel instance.

    Raises:
        ValueError: FIELDPULSE_LLM_TOKEN is not configured.
    """
    if not LLM_TOKEN:
        raise ValueError("FIELDPULSE_LLM_TOKEN not set. Add it to your .env file to enable LLM chat answers.")

    return FieldChatModel(model=model or DEFAULT_MODEL, temperature=temperature)
