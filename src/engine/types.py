"""FieldPulse data model.

Request records and result entities for the inference pipeline. All models
serialize with camelCase aliases (``ndviMean``, ``risk7d``) so the JSON wire
format matches the front end, while Python code uses snake_case. Result
entities are frozen: each one is built once per call and never updated.
"""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Objective = Literal["balanced", "yield", "water"]
Priority = Literal["high", "medium", "low"]
Trend = Literal["improving", "declining", "stable"]
AnomalyLevel = Literal["low", "moderate", "high"]
TaskOwner = Literal["irrigation", "scouting", "operations"]
ChatMode = Literal[
    "status", "irrigation-plan", "stress-debug", "forecast", "next-actions", "what-if-explainer",
]
RenderModel = Literal["qa", "status", "what-if"]
ChatIntent = Literal[
    "irrigation", "stress", "fertility", "disease-risk", "forecast", "actions", "what-if", "general",
]

MAX_HISTORY_TURNS = 20


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class FieldModel(BaseModel):
    """Base for request records: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True, extra="ignore")


class FrozenModel(FieldModel):
    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True, extra="ignore", frozen=True)


# ---------------------------------------------------------------------------
# Request records
# ---------------------------------------------------------------------------

class ProviderDiagnostic(FrozenModel):
    provider: str
    ok: bool
    reason: str | None = None
    status: int | None = None
    duration_ms: float | None = None


class StatsBlock(FieldModel):
    min: float | None = None
    max: float | None = None
    mean: float | None = None


class SeriesPoint(FieldModel):
    date: str | None = None
    ndvi: float | None = None


class NdviData(FieldModel):
    stats: StatsBlock | None = None
    preview_png: str | None = None
    is_simulated: bool = False


class WeatherSnapshot(FieldModel):
    """Current conditions; also accepts Open-Meteo style keys (temperature_2m)."""

    temperature: float | None = Field(
        default=None, validation_alias=AliasChoices("temperature", "temperature_2m"), serialization_alias="temperature"
    )
    humidity: float | None = Field(
        default=None,
        validation_alias=AliasChoices("humidity", "relative_humidity_2m", "relativeHumidity2m"),
        serialization_alias="humidity",
    )
    precipitation: float | None = None


class WeatherData(FieldModel):
    current: WeatherSnapshot | None = Field(
        default=None, validation_alias=AliasChoices("current", "weather"), serialization_alias="current"
    )
    is_simulated: bool = False


class StatsData(FieldModel):
    """Soil-moisture or evapotranspiration statistics from an upstream provider."""

    stats: StatsBlock | None = None
    is_simulated: bool = False


class TimeSeriesSummary(FieldModel):
    trend: str | None = None
    average_ndvi: float | None = Field(
        default=None, validation_alias=AliasChoices("averageNDVI", "averageNdvi", "average_ndvi"),
        serialization_alias="averageNDVI",
    )
    total_points: int | None = None


class TimeSeriesData(FieldModel):
    # Upstream providers send the series as either `timeSeries` or `points`.
    points: list[SeriesPoint] = Field(
        default_factory=list, validation_alias=AliasChoices("timeSeries", "points"), serialization_alias="points"
    )
    summary: str | TimeSeriesSummary | None = None
    is_simulated: bool = False


class GridCell(FieldModel):
    cell_id: str
    mean: float | None = None
    min: float | None = None
    max: float | None = None


class FieldContext(FieldModel):
    """Convenience bag the front end sends alongside (or instead of) the
    top-level data blocks. Every field is optional; the feature extractor
    owns the defaulting."""

    ndvi_stats: StatsBlock | None = None
    soil_stats: StatsBlock | None = None
    et_stats: StatsBlock | None = None
    weather: WeatherData | None = None
    time_series: TimeSeriesData | None = None
    grid3x3: list[GridCell] = Field(default_factory=list)
    selected_cell: str | None = None
    data_latency_hours: float | None = None
    ndvi_preview_png: str | None = None
    providers_tried: list[ProviderDiagnostic] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ScenarioInput(FieldModel):
    irrigation_delta: float = 0.0
    water_budget: float = 0.5
    target_risk: float | None = None
    fertilizer_delta: float | None = None


class ChatTurn(FieldModel):
    role: Literal["user", "assistant"]
    text: str = ""


class InferenceRequest(FieldModel):
    prompt: str = ""
    analysis_type: str | None = None
    mode: str | None = None
    objective: str | None = None
    ndvi_data: NdviData | None = None
    weather_data: WeatherData | None = None
    soil_data: StatsData | None = None
    et_data: StatsData | None = None
    time_series_data: TimeSeriesData | None = None
    context: FieldContext = Field(default_factory=FieldContext)
    providers_tried: list[ProviderDiagnostic] = Field(default_factory=list)
    selected_cell: str | None = None
    scenario: ScenarioInput | None = None
    history: list[ChatTurn] = Field(default_factory=list)

    @field_validator("history")
    @classmethod
    def _bound_history(cls, value: list[ChatTurn]) -> list[ChatTurn]:
        return value[-MAX_HISTORY_TURNS:]

    def resolved_selected_cell(self) -> str | None:
        return self.selected_cell or self.context.selected_cell or None

    def resolved_providers(self) -> list[ProviderDiagnostic]:
        return self.providers_tried or self.context.providers_tried


# ---------------------------------------------------------------------------
# Result entities
# ---------------------------------------------------------------------------

class FeatureVector(FrozenModel):
    ndvi_min: float
    ndvi_max: float
    ndvi_mean: float
    ndvi_spread: float
    ndvi_delta7: float
    ndvi_delta30: float
    ndvi_trend_slope: float
    trend_acceleration: float
    ndvi_volatility: float
    soil_moisture_mean: float
    moisture_deficit_index: float
    et_mean: float
    weather_stress_index: float
    temperature: float
    precipitation: float
    humidity: float
    seasonal_index: float
    short_term_momentum: float
    data_latency_penalty: float


class DataQualityReport(FrozenModel):
    completeness: float
    provider_quality: float
    score: float
    is_simulated_inputs: bool
    warnings: list[str]


class Forecast(FrozenModel):
    ndvi7d: float
    ndvi30d: float
    risk7d: float
    risk30d: float
    trend: Trend


class Anomaly(FrozenModel):
    score: float
    level: AnomalyLevel
    signals: list[str]


class ZoneCluster(FrozenModel):
    id: int
    count: int
    centroid: list[float]


class Zones(FrozenModel):
    k: int
    clusters: list[ZoneCluster]


class Recommendation(FrozenModel):
    id: str
    title: str
    priority: Priority
    reason: str
    actions: list[str]
    expected_impact: float
    confidence: float
    time_window: str
    evidence: list[str]


class Task(FrozenModel):
    id: str
    title: str
    impact: float
    confidence: float
    time_window: str
    owner: TaskOwner


class Summary(FrozenModel):
    what_changed: str
    why: str
    next_actions: str
    recheck_in: str


class InferenceResult(FrozenModel):
    engine: str
    objective: Objective
    confidence: float
    data_quality: DataQualityReport
    is_simulated_inputs: bool
    feature_vector: FeatureVector
    forecast: Forecast
    anomaly: Anomaly
    zones: Zones
    recommendations: list[Recommendation]
    tasks: list[Task]
    summary: Summary
    providers_tried: list[ProviderDiagnostic]
    warnings: list[str]


class ScenarioResult(FrozenModel):
    baseline_risk7d: float
    scenario_risk7d: float
    baseline_ndvi30d: float
    scenario_ndvi30d: float
    water_use_delta_pct: float
    yield_proxy_delta_pct: float
    recommendation: str
    confidence: float


class ChatSections(FrozenModel):
    rationale: str | None = None
    actions: list[str] = Field(default_factory=list)
    forecast: str | None = None


class ChatResponse(FrozenModel):
    mode: ChatMode
    render_model: RenderModel
    backend: Literal["llm", "deterministic"] = "deterministic"
    intent: ChatIntent
    intent_confidence: float
    used_history: bool
    answer: str
    sections: ChatSections = Field(default_factory=ChatSections)
    evidence: list[str]
    tasks: list[Task]
    text: str
    llm_attempted_models: list[str] = Field(default_factory=list)
    llm_final_model: str | None = None
    llm_retries: int = 0
    llm_degraded: bool = False


class ChatResult(FrozenModel):
    inference: InferenceResult
    chat: ChatResponse
