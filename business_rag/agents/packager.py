# =============================================================================
# Result Packager — Citations & Implementation Guidance
# =============================================================================
#
# Turns the top-K ranked candidates into display-ready records: numbered
# citation labels ([1], [2], ...), trimmed excerpts, score breakdowns, a
# coarse match-quality label and a few lines of guidance tied to the
# caller's intent, urgency and detected frameworks.
#
# An empty ranking is not an error. It packages into a "no results"
# response with rephrasing suggestions, which the API returns with 200.
#
# DESIGN DECISION: Labels match the analyst's context numbering.
# The optional answer composer formats passages with the same [n] labels,
# so citations in a composed answer point straight at these records.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from business_rag.config import settings
from business_rag.models.domain import Intent, Query, RankedCandidate, Urgency
from business_rag.services.citations import CitationSource, record_from_metadata
from business_rag.services.vocabulary import FRAMEWORKS, METRICS

logger = logging.getLogger(__name__)

# (exclusive lower bound, label), checked in order
MATCH_QUALITY_BANDS: tuple[tuple[float, str], ...] = (
    (0.9, "excellent"),
    (0.8, "very_good"),
    (0.7, "good"),
    (0.6, "moderate"),
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class Citation:
    label: str
    title: str | None = None
    source_url: str | None = None
    authority_level: str | None = None
    published_at: str | None = None


@dataclass
class PackagedResult:
    """One display-ready ranked passage."""

    rank: int
    candidate_id: str
    excerpt: str
    text: str
    combined_score: float
    scores: dict[str, float]
    match_quality: str
    citation: Citation
    tags: list[str] = field(default_factory=list)
    strategy: str = ""
    reasons: list[str] = field(default_factory=list)
    guidance: list[str] = field(default_factory=list)


@dataclass
class PackagedResponse:
    results: list[PackagedResult]
    no_results: bool = False
    suggestions: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def package_results(
    ranked: list[RankedCandidate],
    query: Query,
    citations: CitationSource | None = None,
    top_k: int | None = None,
) -> PackagedResponse:
    """
    Package the top-K ranked candidates for display.

    Args:
        ranked: Ranker output, best first.
        query: The classified query (drives guidance).
        citations: Citation lookup; falls back to candidate metadata.
        top_k: Number of records (defaults to settings.results_top_k).
    """
    top_k = top_k or settings.results_top_k

    if not ranked:
        logger.info("No ranked candidates; returning rephrasing suggestions")
        return PackagedResponse(
            results=[], no_results=True, suggestions=rephrasing_suggestions(query),
        )

    results = [
        _package_one(position, item, query, citations)
        for position, item in enumerate(ranked[:top_k], start=1)
    ]
    return PackagedResponse(results=results)


def match_quality(score: float) -> str:
    for floor, label in MATCH_QUALITY_BANDS:
        if score > floor:
            return label
    return "basic"


def implementation_guidance(item: RankedCandidate, query: Query) -> list[str]:
    """Short, deterministic next-step hints for one passage."""
    intent = query.intent
    guidance: list[str] = []

    if intent.intent == Intent.IMPLEMENTATION and intent.confidence > 0.8:
        guidance.append("You appear ready to implement: focus on the execution steps.")
    elif intent.intent in (
        Intent.IMPLEMENTATION, Intent.OPTIMIZATION, Intent.TROUBLESHOOTING,
    ):
        guidance.append("Consider a short planning pass before implementing.")
    else:
        guidance.append("Start with the fundamentals before implementing.")

    if intent.urgency in (Urgency.HIGH, Urgency.CRITICAL):
        guidance.append("Prioritise this: the question signals urgency.")

    tags = set(item.candidate.tags)
    framework = next(
        (m for m in query.context.frameworks if m.framework.value in tags),
        query.context.frameworks[0] if query.context.frameworks else None,
    )
    if framework is not None:
        components = FRAMEWORKS[framework.framework].key_components[:3]
        guidance.append(
            f"Focus on the {framework.display_name} components: {', '.join(components)}."
        )

    for metric in query.context.metrics:
        if metric.name in tags and metric.name in METRICS:
            guidance.append(f"Track {METRICS[metric.name].display_name} as you apply this.")
            break

    return guidance


def rephrasing_suggestions(query: Query) -> list[str]:
    suggestions = [
        "Rephrase the question around the specific outcome you want.",
    ]
    if not query.context.frameworks and not query.context.metrics:
        suggestions.append(
            "Name a framework (e.g. Core Four) or a metric (e.g. CAC) to narrow the search."
        )
    if query.params.similarity_threshold >= 0.7:
        suggestions.append(
            "Use broader wording: passages below the "
            f"{query.params.similarity_threshold:.2f} similarity threshold are excluded."
        )
    return suggestions


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _package_one(
    position: int,
    item: RankedCandidate,
    query: Query,
    citations: CitationSource | None,
) -> PackagedResult:
    candidate = item.candidate
    record = citations.lookup(candidate.candidate_id) if citations else None
    if record is None:
        record = record_from_metadata(candidate.candidate_id, candidate.metadata)

    return PackagedResult(
        rank=position,
        candidate_id=candidate.candidate_id,
        excerpt=_excerpt(candidate.text, settings.excerpt_max_chars),
        text=candidate.text,
        combined_score=round(item.combined, 4),
        scores={
            "semantic": round(item.semantic, 4),
            "context_match": round(item.context_match, 4),
            "authority": round(item.authority, 4),
            "freshness": round(item.freshness, 4),
        },
        match_quality=match_quality(item.combined),
        citation=Citation(
            label=f"[{position}]",
            title=record.title,
            source_url=record.source_url,
            authority_level=record.authority_level.value if record.authority_level else None,
            published_at=record.published_at.date().isoformat() if record.published_at else None,
        ),
        tags=list(candidate.tags),
        strategy=candidate.strategy,
        reasons=list(item.reasons),
        guidance=implementation_guidance(item, query),
    )


def _excerpt(text: str, max_chars: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars].rsplit(" ", 1)[0]
    return f"{cut}..."
