"""Chat intent classification via TF-IDF cosine similarity.

Each intent is a short keyword document. The query is vectorized together
with the intent corpus (smoothed idf) and assigned the intent with the
highest cosine similarity, plus a few phrase boosts for wordings that
single keywords miss.
"""

from __future__ import annotations

import re

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from src.engine.types import ChatIntent

INTENT_DOCS: dict[str, list[str]] = {
    "irrigation": ["irrigation", "water", "moisture", "drip", "schedule", "soil", "stress", "evapotranspiration", "et"],
    "stress": ["stress", "ndvi", "decline", "canopy", "health", "yellow", "wilt", "anomaly", "hotspot"],
    "fertility": ["fertility", "nutrient", "nitrogen", "phosphorus", "potassium", "soil test", "deficiency"],
    "disease-risk": ["disease", "fungal", "blight", "humidity", "outbreak", "pest", "leaf spot"],
    "forecast": ["forecast", "next week", "next month", "trend", "predict", "projection", "outlook"],
    "actions": ["what should i do", "next step", "plan", "action", "recommendation", "task list"],
    "what-if": ["what if", "simulate", "scenario", "tradeoff", "water budget", "yield target"],
    "general": ["overview", "summary", "status", "field"],
}

PHRASE_BOOSTS: dict[str, tuple[float, tuple[str, ...]]] = {
    "what-if": (0.22, ("what if", "simulate", "scenario")),
    "actions": (0.2, ("what should i do", "next actions")),
    "irrigation": (0.12, ("water", "irrigation")),
}


def tokenize(text: str) -> list[str]:
    return re.sub(r"[^a-z0-9\s-]", " ", text.lower()).split()


def classify_intent(query: str) -> tuple[ChatIntent, float]:
    """Return (intent, confidence); confidence is clamped to [0.2, 0.99]."""
    tokens = tokenize(query)
    if not tokens:
        return "general", 0.3

    intents = list(INTENT_DOCS)
    docs = [" ".join(tokenize(" ".join(INTENT_DOCS[name]))) for name in intents]
    docs.append(" ".join(tokens))

    vectorizer = TfidfVectorizer(tokenizer=str.split, token_pattern=None, lowercase=False, smooth_idf=True)
    matrix = vectorizer.fit_transform(docs)
    scores = cosine_similarity(matrix[-1], matrix[:-1])[0]

    phrase = query.lower()
    best_intent: ChatIntent = "general"
    best_score = 0.0
    for name, score in zip(intents, scores):
        score = float(score)
        boost = PHRASE_BOOSTS.get(name)
        if boost and any(p in phrase for p in boost[1]):
            score += boost[0]
        if score > best_score:
            best_intent, best_score = name, score  # type: ignore[assignment]

    return best_intent, round(max(0.2, min(0.99, best_score)), 3)
