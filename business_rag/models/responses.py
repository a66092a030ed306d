# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data going OUT of the API. The internal pipeline works on
# frozen dataclasses; these models are the public contract, so internal
# fields (raw backend metadata, per-intent raw score maps keyed by enum)
# are flattened or left out here.
# =============================================================================

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str
    service: str
    vectorstore: str


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class ClassificationModel(BaseModel):
    intent: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[str] = []
    specificity: str
    urgency: str
    scope: str
    secondary_intents: list[str] = []
    complexity_factors: list[str] = []


class FrameworkModel(BaseModel):
    name: str
    display_name: str
    relevance: float
    matched_components: list[str] = []


class MetricModel(BaseModel):
    name: str
    display_name: str
    category: str
    matched_variant: str
    confidence: float


class BusinessContextModel(BaseModel):
    frameworks: list[FrameworkModel] = []
    metrics: list[MetricModel] = []
    stage: str | None = None
    scenarios: list[str] = []
    industries: list[str] = []


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class CitationModel(BaseModel):
    label: str = Field(description="Citation label, e.g. '[1]'")
    title: str | None = None
    source_url: str | None = None
    authority_level: str | None = None
    published_at: str | None = None


class ResultModel(BaseModel):
    """One ranked passage with its score breakdown and citation."""

    rank: int
    candidate_id: str
    excerpt: str
    combined_score: float = Field(ge=0.0, le=1.0)
    scores: dict[str, float]
    match_quality: str
    citation: CitationModel
    tags: list[str] = []
    strategy: str = ""
    reasons: list[str] = []
    guidance: list[str] = []


class StrategyModel(BaseModel):
    name: str
    kind: str
    returned: int
    error: str | None = None
    elapsed_ms: int


class RetrievalReportModel(BaseModel):
    strategies: list[StrategyModel] = []
    cache_hit: bool = False
    merged_count: int = 0
    similarity_distribution: dict[str, int] = {}


class AnswerModel(BaseModel):
    text: str
    model: str
    cited_labels: list[str] = []
    input_tokens: int = 0
    output_tokens: int = 0


class QueryResponse(BaseModel):
    """
    Response for POST /query (and the final line of POST /query/stream).

    `no_results` with an empty `results` list is a normal outcome, not an
    error: `suggestions` then says how to rephrase.
    """

    question: str
    classification: ClassificationModel
    context: BusinessContextModel
    expanded_query: str
    results: list[ResultModel]
    no_results: bool = False
    suggestions: list[str] = []
    retrieval: RetrievalReportModel
    answer: AnswerModel | None = None
    latency_ms: int
