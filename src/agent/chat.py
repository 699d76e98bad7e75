"""Deterministic chat composer.

Used whenever the LLM collaborator is not configured or fails. Answers are
templated from the InferenceResult: the question is classified into an ask
type (what-if, forecast, stress/why, compare, action, status), a grid cell
is resolved from the prompt, the selected cell or recent history, and one
of six answer shapes is rendered.

Grid cells are addressed either as plot points P1-P9 (row-major) or as
"row-col" ids (0-0 .. 2-2).
"""

from __future__ import annotations

import re
from typing import Literal

from src.agent.intent import classify_intent
from src.engine.types import ChatMode, ChatResponse, ChatSections, ChatTurn, InferenceResult, RenderModel

AskType = Literal["status", "why", "compare", "action", "forecast", "stress", "what-if"]

CLARIFIER_ANSWER = (
    "I can answer that precisely once you pick a plot point (P1-P9) or mention a specific cell like 1-2."
)
CLARIFIER_ACTIONS = ["Select a plot point on the 3x3 grid.", "Ask again with that point in scope."]

CELL_PRONOUNS = ("that cell", "this cell", "same cell", "that zone", "this zone", "that one", "this one")

_PLOT_POINT = re.compile(r"\bp\s*([1-9])\b", re.IGNORECASE)
_GRID_CELL = re.compile(r"\b([0-2])\s*[-,:]\s*([0-2])\b")

_MODE_ASK: dict[str, AskType] = {
    "what-if-explainer": "what-if",
    "stress-debug": "stress",
    "next-actions": "action",
    "irrigation-plan": "action",
    "forecast": "forecast",
}

# Keyword groups checked in order; first match wins.
_ASK_KEYWORDS: list[tuple[AskType, tuple[str, ...]]] = [
    ("what-if", ("what if", "simulate", "scenario")),
    ("forecast", ("forecast", "next week", "next month", "outlook")),
    ("stress", ("anomaly", "stress", "hotspot")),
    ("why", ("why", "reason", "cause")),
    ("compare", ("compare", "difference", "changed", "versus")),
    ("action", ("what should i do", "next action", "plan", "should i")),
]


def pct(value: float) -> str:
    return f"{round(value * 100)}%"


def cell_label(cell_id: str | None) -> str | None:
    """Map a row-col id such as 1-2 to its plot point label (P6)."""
    if not cell_id or "-" not in cell_id:
        return None
    row_text, _, col_text = cell_id.partition("-")
    try:
        row, col = int(row_text), int(col_text)
    except ValueError:
        return None
    return f"P{row * 3 + col + 1}"


def read_cell_from_text(text: str) -> str | None:
    """Cell id mentioned in text, as row-col: P5 gives 1-1, 2-0 stays 2-0."""
    match = _PLOT_POINT.search(text)
    if match:
        row, col = divmod(int(match.group(1)) - 1, 3)
        return f"{row}-{col}"
    match = _GRID_CELL.search(text)
    if match:
        return f"{match.group(1)}-{match.group(2)}"
    return None


def resolve_cell(prompt: str, selected_cell: str | None, history: list[ChatTurn]) -> tuple[str | None, bool]:
    """Return (cell_id, used_history)."""
    from_prompt = read_cell_from_text(prompt)
    if from_prompt:
        return from_prompt, False
    if selected_cell:
        return selected_cell, False
    for turn in reversed(history):
        found = read_cell_from_text(turn.text)
        if found:
            return found, True
    return None, False


def needs_cell_clarifier(prompt: str) -> bool:
    text = prompt.lower()
    return any(p in text for p in CELL_PRONOUNS) and read_cell_from_text(prompt) is None


def infer_ask_type(prompt: str, mode: str | None = None) -> AskType:
    text = prompt.lower()
    for ask, keywords in _ASK_KEYWORDS:
        if any(k in text for k in keywords):
            return ask
    if not mode:
        return "status"
    return _MODE_ASK.get(mode, "status")


def compact_evidence(inference: InferenceResult) -> list[str]:
    fv = inference.feature_vector
    return [
        f"NDVI mean {fv.ndvi_mean}",
        f"7-day delta {fv.ndvi_delta7}",
        f"30-day delta {fv.ndvi_delta30}",
        f"Risk 7d {pct(inference.forecast.risk7d)}",
        f"Anomaly {pct(inference.anomaly.score)}",
        f"Confidence {pct(inference.confidence)}",
    ]


def data_note(inference: InferenceResult) -> str:
    if inference.data_quality.completeness < 0.65:
        return "Data coverage is partial, so recommendations are intentionally conservative."
    return "Data coverage is strong enough for tactical field decisions."


def primary_actions(inference: InferenceResult) -> list[str]:
    if not inference.recommendations:
        return []
    return inference.recommendations[0].actions[:3]


def legacy_text(
    answer: str,
    sections: ChatSections,
    evidence: list[str],
    note: str | None = None,
) -> str:
    """Flatten an answer into the plain-text layout older clients render."""
    lines = [answer]
    if sections.rationale:
        lines.append(f"Why: {sections.rationale}")
    if sections.actions:
        numbered = "\n".join(f"{i}. {action}" for i, action in enumerate(sections.actions, start=1))
        lines.append(f"Actions:\n{numbered}")
    if sections.forecast:
        lines.append(f"Forecast: {sections.forecast}")
    if note:
        lines.append(f"Data note: {note}")
    if evidence:
        lines.append("Evidence:\n- " + "\n- ".join(evidence))
    return "\n\n".join(lines)


def _shape_answer(
    ask: AskType, inference: InferenceResult, cell_id: str | None
) -> tuple[str, ChatSections, RenderModel, ChatMode]:
    plot_point = cell_label(cell_id)
    forecast = inference.forecast
    risk7 = pct(forecast.risk7d)
    risk30 = pct(forecast.risk30d)
    anomaly = pct(inference.anomaly.score)

    if ask == "what-if":
        start = f", starting with {plot_point}" if plot_point else ""
        answer = (
            "Use a small scenario first: irrigation +10% with target risk <= 35%. Then compare NDVI30 and "
            f"water-use deltas before scaling across the full field{start}."
        )
        sections = ChatSections(
            rationale=(
                f"Current baseline risk is {risk7} over 7 days with {forecast.trend} trend, so moderate "
                "adjustments are safer than large jumps."
            ),
            actions=[
                "Run a +10% irrigation scenario.",
                "Compare baseline vs scenario NDVI30 and risk7.",
                "If risk drops without excess water cost, expand to adjacent plot points.",
            ],
            forecast=f"Baseline: risk7 {risk7}, risk30 {risk30}, trend {forecast.trend}.",
        )
        return answer, sections, "what-if", "what-if-explainer"

    if ask == "forecast":
        answer = (
            f"The near-term outlook is {forecast.trend}. Expected NDVI is {forecast.ndvi7d} in 7 days and "
            f"{forecast.ndvi30d} in 30 days, with risk at {risk7} / {risk30}."
        )
        sections = ChatSections(
            rationale=f"Anomaly signal is {anomaly}, which indicates {inference.anomaly.level} instability right now.",
            actions=primary_actions(inference),
            forecast=f"Trend: {forecast.trend}; NDVI7: {forecast.ndvi7d}; NDVI30: {forecast.ndvi30d}.",
        )
        return answer, sections, "qa", "forecast"

    if ask in ("stress", "why"):
        focus = f" for {plot_point}" if plot_point else ""
        driver = inference.anomaly.signals[0] if inference.anomaly.signals else "a combined NDVI/moisture anomaly"
        answer = f"The main stress driver{focus} is {driver} with anomaly score {anomaly}."
        sections = ChatSections(
            rationale=inference.summary.why,
            actions=primary_actions(inference),
            forecast=f"Risk over 7 days is {risk7}. Re-check window: {inference.summary.recheck_in}.",
        )
        return answer, sections, "qa", "stress-debug"

    if ask == "compare":
        fv = inference.feature_vector
        answer = (
            f"Compared with the recent baseline, field risk is {risk7} over 7 days and the trend is "
            f"{forecast.trend}. NDVI deltas are {fv.ndvi_delta7} (7d) and {fv.ndvi_delta30} (30d)."
        )
        sections = ChatSections(
            rationale=inference.summary.what_changed,
            actions=primary_actions(inference),
            forecast=f"Anomaly: {anomaly}; confidence: {pct(inference.confidence)}.",
        )
        return answer, sections, "qa", "status"

    if ask == "action":
        focus = f" prioritizing {plot_point}" if plot_point else ""
        answer = (
            f"Start with targeted scouting and irrigation checks{focus}, then re-run analysis after the next "
            "intervention cycle."
        )
        sections = ChatSections(
            rationale=inference.summary.why,
            actions=primary_actions(inference),
            forecast=f"Current risk: {risk7}; confidence: {pct(inference.confidence)}.",
        )
        return answer, sections, "qa", "next-actions"

    focus = f" at focus {plot_point}" if plot_point else ""
    answer = f"Current status: trend is {forecast.trend} with {risk7} 7-day risk{focus}."
    sections = ChatSections(
        rationale=inference.summary.what_changed,
        actions=primary_actions(inference),
        forecast=f"Anomaly {anomaly}; NDVI7 {forecast.ndvi7d}; NDVI30 {forecast.ndvi30d}.",
    )
    return answer, sections, "status", "status"


def compose_chat_response(
    prompt: str,
    inference: InferenceResult,
    mode: str | None = None,
    selected_cell: str | None = None,
    history: list[ChatTurn] | None = None,
) -> ChatResponse:
    prompt = (prompt or "").strip()
    history = history or []
    intent, intent_confidence = classify_intent(prompt)
    cell_id, used_history = resolve_cell(prompt, selected_cell, history)
    note = data_note(inference)

    if needs_cell_clarifier(prompt) and cell_id is None:
        sections = ChatSections(actions=list(CLARIFIER_ACTIONS))
        evidence = compact_evidence(inference)[:4]
        return ChatResponse(
            mode="status",
            render_model="qa",
            backend="deterministic",
            intent=intent,
            intent_confidence=intent_confidence,
            used_history=used_history,
            answer=CLARIFIER_ANSWER,
            sections=sections,
            evidence=evidence,
            tasks=inference.tasks[:3],
            text=legacy_text(CLARIFIER_ANSWER, sections, evidence, note),
        )

    answer, sections, render_model, chat_mode = _shape_answer(infer_ask_type(prompt, mode), inference, cell_id)
    evidence = compact_evidence(inference)[:5]
    return ChatResponse(
        mode=chat_mode,
        render_model=render_model,
        backend="deterministic",
        intent=intent,
        intent_confidence=intent_confidence,
        used_history=used_history,
        answer=answer,
        sections=sections,
        evidence=evidence,
        tasks=inference.tasks[:4],
        text=legacy_text(answer, sections, evidence, note),
    )
