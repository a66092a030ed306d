# =============================================================================
# Query Expander — Framework & Metric Vocabulary Augmentation
# =============================================================================
#
# Appends search vocabulary to the question so the retrieval backends see
# the terms the corpus actually uses ("payback period", "warm outreach")
# rather than only the caller's phrasing.
#
#   "How do I calculate LTV to CAC ratio"
#     → "How do I calculate LTV to CAC ratio calculate cac cac formula ..."
#
# RULES:
# - Contributors are the detected frameworks and metrics, ordered by
#   relevance / confidence (ties by canonical name), capped at 3 so a
#   question touching many topics does not dilute into noise.
# - Each contributor appends up to 3 terms. Metrics pick their vocabulary
#   by intent: calculation terms for learning / implementation / planning,
#   optimization terms for optimization / troubleshooting, benchmark terms
#   for benchmarking / research.
# - Terms already present in the question as whole words, or already
#   appended, are skipped (case-insensitive). "ratio" is still added to a
#   question that only says "ratios".
#
# Pure text transformation: deterministic, no I/O.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass

from business_rag.config import settings
from business_rag.models.domain import BusinessContext, Intent
from business_rag.services.classifier import contains_phrase
from business_rag.services.vocabulary import FRAMEWORKS, METRICS, MetricDefinition


@dataclass(frozen=True)
class _Contributor:
    name: str
    score: float
    terms: tuple[str, ...]


def expand(
    query: str,
    context: BusinessContext,
    intent: Intent | None = None,
    *,
    max_contributors: int | None = None,
    terms_per_contributor: int | None = None,
) -> str:
    """
    Return the question with framework / metric vocabulary appended.

    Args:
        query: The question text. Returned unchanged (apart from trimming)
            when the context has no frameworks or metrics.
        context: Business context from the classifier.
        intent: Classified intent; selects which metric vocabulary applies.
            Defaults to calculation vocabulary.
        max_contributors: Override for settings.expansion_max_contributors.
        terms_per_contributor: Override for
            settings.expansion_terms_per_contributor.
    """
    max_contributors = max_contributors or settings.expansion_max_contributors
    per_contributor = terms_per_contributor or settings.expansion_terms_per_contributor

    base = " ".join(query.split())
    seen = base.lower()
    emitted: set[str] = set()
    appended: list[str] = []

    for contributor in contributors(context, intent)[:max_contributors]:
        added = 0
        for term in contributor.terms:
            if added >= per_contributor:
                break
            key = term.lower()
            if key in emitted or contains_phrase(seen, key):
                continue
            emitted.add(key)
            appended.append(term)
            added += 1

    if not appended:
        return base
    return f"{base} {' '.join(appended)}"


def contributors(
    context: BusinessContext,
    intent: Intent | None = None,
) -> list[_Contributor]:
    """Frameworks and metrics with their vocabulary, highest score first."""
    items = [
        _Contributor(
            name=match.framework.value,
            score=match.relevance,
            terms=FRAMEWORKS[match.framework].expansion_terms,
        )
        for match in context.frameworks
    ]
    items.extend(
        _Contributor(
            name=metric.name,
            score=metric.confidence,
            terms=_metric_terms(METRICS[metric.name], intent),
        )
        for metric in context.metrics
        if metric.name in METRICS
    )
    items.sort(key=lambda c: (-c.score, c.name))
    return items


def _metric_terms(definition: MetricDefinition, intent: Intent | None) -> tuple[str, ...]:
    if intent in (Intent.OPTIMIZATION, Intent.TROUBLESHOOTING):
        return definition.optimization_terms
    if intent in (Intent.BENCHMARKING, Intent.RESEARCH):
        return definition.benchmark_terms
    return definition.calculation_terms
