# =============================================================================
# Relevance Ranker — Multi-Signal Candidate Scoring
# =============================================================================
#
# Re-orders the merged retrieval surplus into the final result list.
# Every candidate gets four sub-scores, each clamped to [0, 1]:
#
#   context_match = 0.3 × matching tags (frameworks / metrics)
#                 + 0.2 if the stage tag equals the detected stage or is "all"
#                 + 0.15 × detected scenarios found in the passage text
#   semantic      = backend similarity
#                 + 0.1 if the passage's intent tag equals the query intent
#                 + 0.15 × context_match
#                 + 0.1 × relevance of the best matching framework
#   authority     = backend hint → citation authority level → default 0.7
#   freshness     = backend hint → citation recency band → default 0.8
#
# combined = convex combination of the four, using the query's
# SearchParameters weights re-normalized to sum to 1. Sorted by combined
# score descending, ties broken by candidate ID so identical inputs always
# produce identical orderings.
#
# DESIGN DECISION: Per-intent weight presets, fixed not learned.
# An implementation question cares more about proven, context-fitting
# material; a learning question about the closest explanation; a
# troubleshooting question about the caller's exact situation, even at
# lower similarity. resolve_parameters() applies the preset for the
# classified intent, then any caller overrides on top.
#
# Ranking never mutates its input: it builds new RankedCandidate values.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from business_rag.config import settings
from business_rag.models.domain import (
    WEIGHT_FIELDS,
    BusinessContext,
    Intent,
    Query,
    RankedCandidate,
    SearchCandidate,
    SearchParameters,
)
from business_rag.services.citations import CitationSource
from business_rag.services.vocabulary import SCENARIO_KEYWORDS

logger = logging.getLogger(__name__)

TAG_MATCH_SCORE = 0.3
STAGE_MATCH_SCORE = 0.2
SCENARIO_MATCH_SCORE = 0.15

INTENT_MATCH_BOOST = 0.1
CONTEXT_BOOST_FACTOR = 0.15
FRAMEWORK_BOOST_FACTOR = 0.1


# ---------------------------------------------------------------------------
# Per-Intent Presets
# ---------------------------------------------------------------------------
# Weights are relative; threshold_offset shifts the configured similarity
# threshold (settings.retrieval_similarity_threshold).
# ---------------------------------------------------------------------------

INTENT_PRESETS: dict[Intent, dict[str, float]] = {
    Intent.LEARNING: {
        "semantic_weight": 0.5, "keyword_weight": 0.1, "recency_weight": 0.05,
        "authority_weight": 0.2, "context_weight": 0.15, "threshold_offset": -0.1,
    },
    Intent.IMPLEMENTATION: {
        "semantic_weight": 0.25, "keyword_weight": 0.05, "recency_weight": 0.05,
        "authority_weight": 0.3, "context_weight": 0.35, "threshold_offset": 0.0,
    },
    Intent.TROUBLESHOOTING: {
        "semantic_weight": 0.3, "keyword_weight": 0.1, "recency_weight": 0.05,
        "authority_weight": 0.15, "context_weight": 0.4, "threshold_offset": -0.15,
    },
    Intent.OPTIMIZATION: {
        "semantic_weight": 0.35, "keyword_weight": 0.1, "recency_weight": 0.05,
        "authority_weight": 0.2, "context_weight": 0.3, "threshold_offset": 0.05,
    },
    Intent.BENCHMARKING: {
        "semantic_weight": 0.25, "keyword_weight": 0.1, "recency_weight": 0.15,
        "authority_weight": 0.35, "context_weight": 0.15, "threshold_offset": 0.0,
    },
    Intent.PLANNING: {
        "semantic_weight": 0.35, "keyword_weight": 0.05, "recency_weight": 0.05,
        "authority_weight": 0.25, "context_weight": 0.3, "threshold_offset": 0.0,
    },
    Intent.RESEARCH: {
        "semantic_weight": 0.3, "keyword_weight": 0.1, "recency_weight": 0.15,
        "authority_weight": 0.3, "context_weight": 0.15, "threshold_offset": 0.0,
    },
}

_OVERRIDABLE = frozenset(WEIGHT_FIELDS) | {"max_results", "similarity_threshold"}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def weights_for_intent(intent: Intent) -> SearchParameters:
    """The preset SearchParameters for a classified intent."""
    preset = INTENT_PRESETS[intent]
    threshold = settings.retrieval_similarity_threshold + preset["threshold_offset"]
    return SearchParameters(
        semantic_weight=preset["semantic_weight"],
        keyword_weight=preset["keyword_weight"],
        recency_weight=preset["recency_weight"],
        authority_weight=preset["authority_weight"],
        context_weight=preset["context_weight"],
        max_results=settings.retrieval_max_results,
        similarity_threshold=round(min(1.0, max(0.0, threshold)), 4),
    )


def resolve_parameters(
    intent: Intent,
    overrides: Mapping[str, Any] | None = None,
) -> SearchParameters:
    """
    Intent preset with caller overrides applied on top.

    Raises:
        ValueError: Unknown override key or an invalid resulting value.
    """
    params = weights_for_intent(intent)
    if not overrides:
        return params

    unknown = set(overrides) - _OVERRIDABLE
    if unknown:
        raise ValueError(f"Unknown search parameter(s): {', '.join(sorted(unknown))}")

    values = {
        "semantic_weight": params.semantic_weight,
        "keyword_weight": params.keyword_weight,
        "recency_weight": params.recency_weight,
        "authority_weight": params.authority_weight,
        "context_weight": params.context_weight,
        "max_results": params.max_results,
        "similarity_threshold": params.similarity_threshold,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SearchParameters(**values)


def rank(
    candidates: Iterable[SearchCandidate],
    query: Query,
    citations: CitationSource | None = None,
    *,
    now: datetime | None = None,
) -> list[RankedCandidate]:
    """
    Score and order candidates for a classified query.

    Args:
        candidates: Merged retrieval output (read-only).
        query: The classified query; its params carry the weights.
        citations: Optional authority/recency lookup.
        now: Reference time for freshness (defaults to current UTC time).

    Returns:
        RankedCandidate list, combined score descending, ties by ID.
        Empty input gives an empty list.
    """
    weights = query.params.combination_weights()
    ranked = [
        score_candidate(candidate, query, weights, citations, now)
        for candidate in candidates
    ]
    ranked.sort(key=lambda r: (-r.combined, r.candidate_id))

    if ranked:
        logger.info(
            "Ranked %d candidates for intent=%s (top=%s, %.3f)",
            len(ranked), query.intent.intent.value,
            ranked[0].candidate_id, ranked[0].combined,
        )
    return ranked


def score_candidate(
    candidate: SearchCandidate,
    query: Query,
    weights: Mapping[str, float],
    citations: CitationSource | None = None,
    now: datetime | None = None,
) -> RankedCandidate:
    context = query.context
    reasons: list[str] = []

    context_match = business_context_match(candidate, context, reasons)

    framework_relevance = max(
        (context.framework_relevance(tag) for tag in candidate.tags),
        default=0.0,
    )
    semantic = candidate.similarity
    if candidate.intent and candidate.intent == query.intent.intent.value:
        semantic += INTENT_MATCH_BOOST
        reasons.append(f"intent:{candidate.intent}")
    semantic += CONTEXT_BOOST_FACTOR * context_match
    semantic += FRAMEWORK_BOOST_FACTOR * framework_relevance
    semantic = _clamp(semantic)

    record = citations.lookup(candidate.candidate_id) if citations else None
    authority = _first_known(
        candidate.authority,
        record.authority_score() if record else None,
        settings.default_authority_score,
    )
    freshness = _first_known(
        candidate.freshness,
        record.freshness_score(now) if record else None,
        settings.default_freshness_score,
    )

    combined = _clamp(
        semantic * weights["semantic"]
        + context_match * weights["context_match"]
        + authority * weights["authority"]
        + freshness * weights["freshness"]
    )

    return RankedCandidate(
        candidate=candidate,
        semantic=semantic,
        context_match=context_match,
        authority=authority,
        freshness=freshness,
        combined=combined,
        reasons=tuple(reasons),
    )


def business_context_match(
    candidate: SearchCandidate,
    context: BusinessContext,
    reasons: list[str] | None = None,
) -> float:
    """How well a passage's tags and text fit the detected business context."""
    score = 0.0

    matched_tags = sorted({t.lower() for t in candidate.tags} & context.tag_vocabulary())
    score += TAG_MATCH_SCORE * len(matched_tags)

    stage = context.primary_stage
    if candidate.stage == "all" or (stage is not None and candidate.stage == stage.value):
        score += STAGE_MATCH_SCORE
        if reasons is not None:
            reasons.append(f"stage:{candidate.stage}")

    text = candidate.text.lower()
    matched_scenarios = [
        scenario.value
        for scenario in context.scenarios
        if any(phrase in text for phrase in SCENARIO_KEYWORDS.get(scenario, ()))
    ]
    score += SCENARIO_MATCH_SCORE * len(matched_scenarios)

    if reasons is not None:
        reasons.extend(f"tag:{tag}" for tag in matched_tags)
        reasons.extend(f"scenario:{name}" for name in matched_scenarios)
    return _clamp(score)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _first_known(*values: float | None) -> float:
    for value in values:
        if value is not None:
            return _clamp(value)
    return 0.0
