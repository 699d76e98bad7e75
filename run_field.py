#!/usr/bin/env python3
"""FieldPulse CLI - run the field engine from the command line.

Usage:
    python run_field.py infer request.json
    python run_field.py chat request.json "Why is P5 stressed?"
    python run_field.py scenario request.json --irrigation 0.1 --water-budget 0.6
    python run_field.py chat request.json          # interactive mode
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from src.engine.engine import create_engine  # noqa: E402
from src.engine.types import MAX_HISTORY_TURNS, ChatTurn, InferenceRequest, ScenarioInput  # noqa: E402

EXAMPLE_QUESTIONS = [
    "What is the current status of the field?",
    "Why is P5 showing stress?",
    "What is the forecast for next week?",
    "What should I do next?",
    "What if we irrigate 10% more?",
]


def _load_request(path: str) -> InferenceRequest:
    return InferenceRequest.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2))


def _chat_loop(engine, request: InferenceRequest) -> None:
    print("\n" + "=" * 60)
    print("  FieldPulse - Field Inference Assistant")
    print("  Type a question or 'quit' to exit.")
    print("=" * 60)
    print("\nExample questions:")
    for i, q in enumerate(EXAMPLE_QUESTIONS, 1):
        print(f"  {i}. {q}")
    print()

    history = list(request.history)
    while True:
        try:
            question = input("FieldPulse> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye!")
            break

        if not question:
            continue
        if question.lower() in ("quit", "exit", "q"):
            print("Goodbye!")
            break

        # Allow selecting example by number
        if question.isdigit() and 1 <= int(question) <= len(EXAMPLE_QUESTIONS):
            question = EXAMPLE_QUESTIONS[int(question) - 1]
            print(f"-> {question}\n")

        turn_request = request.model_copy(update={"prompt": question, "history": history})
        chat = engine.run_chat(turn_request).chat
        print(chat.text)
        print(f"\n[{chat.backend} | intent {chat.intent} {chat.intent_confidence}]\n")
        history.extend([ChatTurn(role="user", text=question), ChatTurn(role="assistant", text=chat.answer)])
        history = history[-MAX_HISTORY_TURNS:]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the FieldPulse engine on a request JSON file.")
    parser.add_argument("command", choices=["infer", "chat", "scenario"])
    parser.add_argument("request", help="Path to an inference request JSON file")
    parser.add_argument("prompt", nargs="*", help="Chat question (interactive mode when omitted)")
    parser.add_argument("--objective", choices=["balanced", "yield", "water"])
    parser.add_argument("--irrigation", type=float, default=0.0, help="Irrigation delta, e.g. 0.1 for +10%%")
    parser.add_argument("--water-budget", type=float, default=0.5)
    parser.add_argument("--fertilizer", type=float, default=0.0)
    parser.add_argument("--target-risk", type=float, default=0.35)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    request = _load_request(args.request)
    if args.objective:
        request = request.model_copy(update={"objective": args.objective})

    engine = create_engine()

    if args.command == "infer":
        _print_json(engine.run_inference(request).model_dump(by_alias=True))
    elif args.command == "scenario":
        features = engine.run_inference(request).feature_vector
        scenario = ScenarioInput(
            irrigation_delta=args.irrigation,
            water_budget=args.water_budget,
            fertilizer_delta=args.fertilizer,
            target_risk=args.target_risk,
        )
        _print_json(engine.run_scenario(features, scenario).model_dump(by_alias=True))
    elif args.prompt:
        chat = engine.run_chat(request.model_copy(update={"prompt": " ".join(args.prompt)})).chat
        print(chat.text)
    else:
        _chat_loop(engine, request)

    if engine.persistence is not None:
        engine.persistence.shutdown(wait=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
