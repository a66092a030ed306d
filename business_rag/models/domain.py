# =============================================================================
# Domain Models — Query, Classification, Candidates
# =============================================================================
#
# Value types that flow through the retrieval pipeline:
#
#   question ─▶ ClassifiedIntent + BusinessContext ─▶ Query
#            ─▶ SearchCandidate[] (retrieval) ─▶ RankedCandidate[] (ranking)
#
# DESIGN DECISION: Frozen dataclasses, not Pydantic models.
# These objects never cross the HTTP boundary directly (the API layer maps
# them to response schemas), so validation overhead buys nothing. Freezing
# them means a cached candidate list or a Query handed to several stages can
# be shared without anyone mutating it; "changes" go through
# dataclasses.replace() and produce new values.
#
# DESIGN DECISION: String enums (like DocumentStatus in the ORM layer).
# Human-readable in logs and JSON, and the value doubles as the tag string
# stored on corpus passages.
# =============================================================================

from __future__ import annotations

import enum
import hashlib
import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Intent(str, enum.Enum):
    """
    The caller's high-level goal.

    Declaration order is significant: it breaks ties between equally
    scored intents (first declared wins).
    """

    LEARNING = "learning"
    IMPLEMENTATION = "implementation"
    TROUBLESHOOTING = "troubleshooting"
    OPTIMIZATION = "optimization"
    BENCHMARKING = "benchmarking"
    PLANNING = "planning"
    RESEARCH = "research"


class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Specificity(str, enum.Enum):
    BROAD = "broad"
    FOCUSED = "focused"
    SPECIFIC = "specific"
    HIGHLY_SPECIFIC = "highly_specific"


class Scope(str, enum.Enum):
    CONCEPTUAL = "conceptual"
    TACTICAL = "tactical"
    OPERATIONAL = "operational"
    STRATEGIC = "strategic"


class LifecycleStage(str, enum.Enum):
    IDEATION = "ideation"
    STARTUP = "startup"
    EARLY_SCALING = "early_scaling"
    SCALING = "scaling"
    GROWTH = "growth"
    ENTERPRISE = "enterprise"
    EXIT_PREP = "exit_prep"


class Industry(str, enum.Enum):
    SAAS = "saas"
    FITNESS = "fitness"
    ECOMMERCE = "ecommerce"
    PROFESSIONAL_SERVICES = "professional_services"
    REAL_ESTATE = "real_estate"


class Scenario(str, enum.Enum):
    LAUNCHING_NEW_PRODUCT = "launching_new_product"
    SCALING_TEAM = "scaling_team"
    IMPROVING_CONVERSION = "improving_conversion"
    RAISING_CAPITAL = "raising_capital"
    EXPANDING_MARKETS = "expanding_markets"
    OPTIMIZING_COSTS = "optimizing_costs"
    BUILDING_SYSTEMS = "building_systems"
    CRISIS_MANAGEMENT = "crisis_management"
    COMPETITIVE_RESPONSE = "competitive_response"
    EXIT_PREPARATION = "exit_preparation"


class Framework(str, enum.Enum):
    """Named business methodologies the corpus is organised around."""

    GRAND_SLAM_OFFERS = "grand_slam_offers"
    CORE_FOUR = "core_four"
    VALUE_EQUATION = "value_equation"
    CLOSER_FRAMEWORK = "closer_framework"
    LTV_CAC_OPTIMIZATION = "ltv_cac_optimization"
    LEAD_MAGNETS = "lead_magnets"
    PRICING_PSYCHOLOGY = "pricing_psychology"
    CASH_FLOW_MANAGEMENT = "cash_flow_management"
    TEAM_BUILDING = "team_building"


class MetricCategory(str, enum.Enum):
    REVENUE = "revenue"
    COST = "cost"
    PROFITABILITY = "profitability"
    GROWTH = "growth"
    RETENTION = "retention"
    EFFICIENCY = "efficiency"
    CASH_FLOW = "cash_flow"
    VALUATION = "valuation"


class AuthorityLevel(str, enum.Enum):
    """Provenance of a corpus passage, strongest first."""

    PRIMARY_SOURCE = "primary_source"
    AUTHOR_TEAM = "author_team"
    VERIFIED_CASE_STUDY = "verified_case_study"
    EXPERT_INTERPRETATION = "expert_interpretation"
    COMMUNITY_VALIDATED = "community_validated"
    UNVERIFIED = "unverified"


# ---------------------------------------------------------------------------
# Classification Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassifiedIntent:
    """
    Primary intent plus the deterministic tags derived alongside it.

    `scores` keeps every intent's raw weighted score so callers can see
    how close the runner-up was. It is a read-only mapping.
    """

    intent: Intent
    confidence: float
    evidence: tuple[str, ...] = ()
    specificity: Specificity = Specificity.BROAD
    urgency: Urgency = Urgency.LOW
    scope: Scope = Scope.TACTICAL
    secondary: tuple[Intent, ...] = ()
    complexity_factors: tuple[str, ...] = ()
    scores: Mapping[Intent, float] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False,
    )


@dataclass(frozen=True)
class FrameworkMatch:
    framework: Framework
    display_name: str
    relevance: float
    matched_components: tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricMatch:
    name: str
    display_name: str
    category: MetricCategory
    matched_variant: str
    confidence: float


@dataclass(frozen=True)
class StageSignal:
    """A lifecycle stage inferred from the question or the caller's profile."""

    stage: LifecycleStage
    source: str  # "query" or "user_context"
    evidence: str


@dataclass(frozen=True)
class BusinessContext:
    """
    Everything the classifier inferred about the business behind a question.

    Frameworks are sorted by relevance (descending), metrics by confidence
    (descending). Each framework/metric appears at most once.
    """

    frameworks: tuple[FrameworkMatch, ...] = ()
    metrics: tuple[MetricMatch, ...] = ()
    stage_signals: tuple[StageSignal, ...] = ()
    scenarios: tuple[Scenario, ...] = ()
    industries: tuple[Industry, ...] = ()

    @property
    def primary_stage(self) -> LifecycleStage | None:
        """A stage stated by the caller's profile beats one guessed from text."""
        for signal in self.stage_signals:
            if signal.source == "user_context":
                return signal.stage
        return self.stage_signals[0].stage if self.stage_signals else None

    def framework_relevance(self, name: str) -> float:
        for match in self.frameworks:
            if match.framework.value == name:
                return match.relevance
        return 0.0

    def tag_vocabulary(self) -> frozenset[str]:
        """Tag strings a corpus passage can share with this context."""
        tags = {m.framework.value for m in self.frameworks}
        for metric in self.metrics:
            tags.add(metric.name)
            tags.add(metric.category.value)
        return frozenset(tags)

    @property
    def is_empty(self) -> bool:
        return not (
            self.frameworks or self.metrics or self.stage_signals
            or self.scenarios or self.industries
        )


# ---------------------------------------------------------------------------
# Search Parameters
# ---------------------------------------------------------------------------

WEIGHT_FIELDS = (
    "semantic_weight",
    "keyword_weight",
    "recency_weight",
    "authority_weight",
    "context_weight",
)


@dataclass(frozen=True)
class SearchParameters:
    """
    Per-query retrieval and ranking knobs.

    Five signal weights drive the four ranking sub-scores: semantic and
    keyword weights both apply to the semantic sub-score (the hybrid
    strategy already folds keyword overlap into similarity), recency
    drives freshness. Weights need not sum to 1; `combination_weights()`
    re-normalizes them.
    """

    semantic_weight: float = 0.4
    keyword_weight: float = 0.1
    recency_weight: float = 0.1
    authority_weight: float = 0.2
    context_weight: float = 0.2
    max_results: int = 10
    similarity_threshold: float = 0.7

    def __post_init__(self) -> None:
        for name in WEIGHT_FIELDS:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.max_results < 1:
            raise ValueError("max_results must be >= 1")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")

    def combination_weights(self) -> dict[str, float]:
        """Convex weights over the four ranking sub-scores (sum to 1.0)."""
        raw = {
            "semantic": self.semantic_weight + self.keyword_weight,
            "context_match": self.context_weight,
            "authority": self.authority_weight,
            "freshness": self.recency_weight,
        }
        total = sum(raw.values())
        if total <= 0:
            return {key: 0.25 for key in raw}
        return {key: value / total for key, value in raw.items()}

    def fingerprint(self) -> str:
        """Stable short hash of every field, used in cache keys."""
        payload = json.dumps(asdict(self), sort_keys=True)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Query:
    """A classified question, fixed for the rest of the request."""

    original_text: str
    normalized_text: str
    intent: ClassifiedIntent
    context: BusinessContext
    params: SearchParameters


# ---------------------------------------------------------------------------
# Retrieval and Ranking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchCandidate:
    """
    A passage returned by a search backend.

    `tags` holds framework and metric tags; `stage` is a lifecycle stage
    value or "all". Authority/freshness are optional backend hints in [0, 1].
    """

    candidate_id: str
    text: str
    similarity: float
    tags: tuple[str, ...] = ()
    stage: str | None = None
    intent: str | None = None
    authority: float | None = None
    freshness: float | None = None
    strategy: str = ""
    metadata: dict[str, Any] = field(
        default_factory=dict, compare=False, hash=False,
    )


@dataclass(frozen=True)
class RankedCandidate:
    """A candidate with its four sub-scores and the combined score."""

    candidate: SearchCandidate
    semantic: float
    context_match: float
    authority: float
    freshness: float
    combined: float
    reasons: tuple[str, ...] = ()

    @property
    def candidate_id(self) -> str:
        return self.candidate.candidate_id
