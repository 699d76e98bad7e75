"""Recommendation synthesizer: objective-weighted risk and fixed-order rules.

Rules fire in a fixed order (irrigation, zone scouting, disease watch) and
the list is not re-ranked afterwards. When no rule fires a single baseline
recommendation is emitted instead.
"""

from __future__ import annotations

from src.engine.types import FeatureVector, Objective, Priority, Recommendation, Task, TaskOwner
from src.engine.utils import clamp, sigmoid

MAX_RECOMMENDATIONS = 4
RISK_BIAS = 1.26

# Weights per objective: ndvi deficit, water deficit, heat, volatility, momentum
OBJECTIVE_WEIGHTS: dict[str, dict[str, float]] = {
    "yield": {"ndvi": 1.0, "water": 0.58, "heat": 0.52, "volatility": 0.42, "momentum": 0.35},
    "water": {"ndvi": 0.72, "water": 1.08, "heat": 0.44, "volatility": 0.36, "momentum": 0.32},
    "balanced": {"ndvi": 0.88, "water": 0.88, "heat": 0.5, "volatility": 0.4, "momentum": 0.34},
}


def priority_from(score: float) -> Priority:
    if score > 0.72:
        return "high"
    if score > 0.45:
        return "medium"
    return "low"


def sub_risks(features: FeatureVector) -> dict[str, float]:
    return {
        "ndvi": clamp((0.44 - features.ndvi_mean) * 3.2, 0.0, 1.0),
        "water": clamp(features.moisture_deficit_index * 0.9 + (0.22 - features.soil_moisture_mean) * 2.6, 0.0, 1.0),
        "heat": clamp(features.weather_stress_index * 0.8 + (features.temperature - 30) / 12, 0.0, 1.0),
        "volatility": clamp((features.ndvi_volatility - 0.1) * 5, 0.0, 1.0),
        "momentum": clamp(-features.ndvi_delta7 * 2.2 - features.trend_acceleration * 1.6, 0.0, 1.0),
    }


def objective_risk(features: FeatureVector, objective: Objective) -> float:
    weights = OBJECTIVE_WEIGHTS.get(objective, OBJECTIVE_WEIGHTS["balanced"])
    risks = sub_risks(features)
    linear = sum(risks[name] * weight for name, weight in weights.items()) - RISK_BIAS
    return clamp(sigmoid(linear), 0.0, 1.0)


def _impact(value: float) -> float:
    return round(max(0.0, value), 1)


def _confidence(value: float) -> float:
    return round(clamp(value, 0.0, 1.0), 3)


def build_recommendations(features: FeatureVector, objective: Objective, anomaly_score: float) -> list[Recommendation]:
    risk = objective_risk(features, objective)
    items: list[Recommendation] = []

    if features.soil_moisture_mean < 0.2 or risk > 0.7:
        items.append(Recommendation(
            id="irrigation-tighten",
            title="Tighten irrigation scheduling",
            priority=priority_from(max(risk, anomaly_score)),
            reason="Soil moisture trend indicates high water stress probability for the next cycle.",
            actions=[
                "Apply shorter, higher-frequency irrigation events for the next 72 hours.",
                "Inspect emitter uniformity in low-vigor zones.",
                "Re-check NDVI and soil moisture after two irrigation cycles.",
            ],
            expected_impact=_impact(8 + risk * 12),
            confidence=_confidence(0.62 + (1 - anomaly_score) * 0.2),
            time_window="24-72h",
            evidence=[
                f"Moisture deficit index {features.moisture_deficit_index:.2f}",
                f"Objective risk {round(risk * 100)}%",
            ],
        ))

    if features.ndvi_spread > 0.38 or features.ndvi_volatility > 0.12:
        items.append(Recommendation(
            id="zone-scouting",
            title="Run targeted zone scouting",
            priority=priority_from(features.ndvi_spread),
            reason="Canopy variability is elevated, which suggests non-uniform stress drivers.",
            actions=[
                "Scout low-vigor and transition zones first.",
                "Record pest pressure and irrigation delivery observations.",
                "Sample soil nutrients in two representative low-NDVI patches.",
            ],
            expected_impact=_impact(5 + features.ndvi_spread * 15),
            confidence=_confidence(0.58 + (1 - features.ndvi_volatility) * 0.22),
            time_window="48h",
            evidence=[
                f"NDVI spread {features.ndvi_spread:.2f}",
                f"NDVI volatility {features.ndvi_volatility:.2f}",
            ],
        ))

    if features.humidity > 82 and features.temperature > 24:
        items.append(Recommendation(
            id="disease-watch",
            title="Increase disease surveillance",
            priority=priority_from(0.63),
            reason="Warm and humid conditions can increase disease pressure during canopy stress.",
            actions=[
                "Inspect for foliar disease symptoms in dense canopy sections.",
                "Prioritize morning scouting to detect early infection signs.",
                "Track humidity trend over the next 3 days before intervention.",
            ],
            expected_impact=_impact(4.5 + features.weather_stress_index * 9),
            confidence=_confidence(0.56 + (1 - anomaly_score) * 0.18),
            time_window="48-96h",
            evidence=[
                f"Humidity {features.humidity:.0f}%",
                f"Weather stress index {features.weather_stress_index:.2f}",
            ],
        ))

    if not items:
        items.append(Recommendation(
            id="maintain-baseline",
            title="Maintain baseline operations",
            priority="low",
            reason="Current indicators show stable conditions with manageable risk.",
            actions=[
                "Continue standard irrigation schedule.",
                "Re-run analysis in 5-7 days for drift detection.",
                "Log field notes to improve future recommendation tuning.",
            ],
            expected_impact=2.8,
            confidence=0.69,
            time_window="5-7d",
            evidence=["Risk profile within baseline thresholds."],
        ))

    return items[:MAX_RECOMMENDATIONS]


def task_owner(recommendation_id: str) -> TaskOwner:
    if "irrigation" in recommendation_id:
        return "irrigation"
    if "zone" in recommendation_id:
        return "scouting"
    return "operations"


def build_tasks(recommendations: list[Recommendation]) -> list[Task]:
    return [
        Task(
            id=f"task-{index}-{item.id}",
            title=item.title,
            impact=item.expected_impact,
            confidence=item.confidence,
            time_window=item.time_window,
            owner=task_owner(item.id),
        )
        for index, item in enumerate(recommendations[:MAX_RECOMMENDATIONS], start=1)
    ]
