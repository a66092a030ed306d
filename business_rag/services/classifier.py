# =============================================================================
# Query Classifier — Intent + Business Context Detection
# =============================================================================
#
# Turns a raw business question into:
#   1. ClassifiedIntent — one primary intent (with confidence), secondary
#      intents, evidence phrases, urgency / specificity / scope tags
#   2. BusinessContext — frameworks, financial metrics, lifecycle stage
#      signals, scenarios and industries mentioned or implied
#
# ALGORITHM:
#   intent score      = Σ pattern.weight × occurrences, per intent
#   primary intent    = highest nonzero score (ties → enum declaration order)
#   confidence        = min(1, score / CONFIDENCE_NORMALIZER)
#   framework score   = 0.8 direct mention + 0.3 per key component
#                       + 0.2 per contextual indicator, clamped to 1.0,
#                       kept only above FRAMEWORK_INCLUSION_FLOOR
#   metric confidence = 0.9 on an exact variant, otherwise the best
#                       word-overlap ratio × 0.7
#
# DESIGN DECISION: Rule-based, not LLM-based.
# Zero latency, zero cost, and bit-for-bit reproducible, which the ranking
# and caching layers downstream depend on. A question with no recognisable
# signal is not an error: it classifies as "research" with confidence 0
# and an empty context.
#
# DESIGN DECISION: The two tuning constants are named and overridable.
# CONFIDENCE_NORMALIZER and FRAMEWORK_INCLUSION_FLOOR default from
# Settings and can be overridden per call. Changing either silently
# changes classifier output, so they are never inferred or adapted.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from business_rag.config import settings
from business_rag.models.domain import (
    BusinessContext,
    ClassifiedIntent,
    FrameworkMatch,
    Industry,
    Intent,
    LifecycleStage,
    MetricMatch,
    Scenario,
    Scope,
    Specificity,
    StageSignal,
    Urgency,
)
from business_rag.services.vocabulary import (
    FRAMEWORKS,
    INDUSTRY_KEYWORDS,
    INTENT_PATTERNS,
    METRICS,
    OPERATIONAL_SCOPE_KEYWORDS,
    SCENARIO_KEYWORDS,
    STAGE_KEYWORDS,
    STRATEGIC_SCOPE_KEYWORDS,
    URGENCY_KEYWORDS,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Scoring Constants
# ---------------------------------------------------------------------------

CONFIDENCE_NORMALIZER = 10.0
FRAMEWORK_INCLUSION_FLOOR = 0.3
METRIC_DETECTION_FLOOR = 0.3

DIRECT_MENTION_SCORE = 0.8
KEY_COMPONENT_SCORE = 0.3
CONTEXTUAL_INDICATOR_SCORE = 0.2

EXACT_METRIC_CONFIDENCE = 0.9
PARTIAL_METRIC_FACTOR = 0.7

# Frameworks carried over from the previous turn count at half relevance
HISTORY_CARRY_OVER_FACTOR = 0.5

_NUMBER_RE = re.compile(r"\d+")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def classify(
    query: Any,
    user_context: Mapping[str, Any] | None = None,
    history: Sequence[Any] | None = None,
    *,
    confidence_normalizer: float | None = None,
    framework_floor: float | None = None,
) -> tuple[ClassifiedIntent, BusinessContext]:
    """
    Classify a question into an intent and a business context.

    Args:
        query: The raw question. Anything that is not a non-empty string
            classifies as the default (research, confidence 0).
        user_context: Optional caller profile. Recognised keys: `stage`,
            `monthly_revenue`, `industry`. Unrecognised values are ignored.
        history: Optional previous questions, oldest first. Used only to
            carry frameworks forward into follow-up questions.
        confidence_normalizer: Override for CONFIDENCE_NORMALIZER.
        framework_floor: Override for FRAMEWORK_INCLUSION_FLOOR.

    Returns:
        (ClassifiedIntent, BusinessContext). Never raises for bad input.
    """
    normalizer = confidence_normalizer or settings.classifier_confidence_normalizer
    floor = (
        framework_floor if framework_floor is not None
        else settings.framework_inclusion_floor
    )
    profile = user_context if isinstance(user_context, Mapping) else {}

    normalized = normalize_query(query)

    scores, evidence = score_intents(normalized)
    primary, confidence = _pick_primary(scores, normalizer)
    secondary = tuple(
        intent
        for intent in sorted(
            (i for i in Intent if scores[i] > 0),
            key=lambda i: -scores[i],
        )
        if intent != primary
    )

    frameworks = detect_frameworks(normalized, floor)
    if not frameworks and history:
        frameworks = _carry_over_frameworks(history, floor)

    metrics = detect_metrics(normalized, settings.metric_detection_floor)
    stage_signals = detect_stage_signals(normalized, profile)
    context = BusinessContext(
        frameworks=tuple(frameworks),
        metrics=tuple(metrics),
        stage_signals=tuple(stage_signals),
        scenarios=tuple(detect_scenarios(normalized)),
        industries=tuple(detect_industries(normalized, profile)),
    )

    scope = _detect_scope(normalized, primary, confidence)
    classified = ClassifiedIntent(
        intent=primary,
        confidence=confidence,
        evidence=tuple(evidence),
        specificity=_detect_specificity(normalized, evidence, context),
        urgency=_detect_urgency(normalized),
        scope=scope,
        secondary=secondary,
        complexity_factors=_complexity_factors(context, scope),
        scores=MappingProxyType(dict(scores)),
    )

    logger.debug(
        "Classified query='%s' intent=%s confidence=%.2f frameworks=%d "
        "metrics=%d stage=%s",
        normalized[:80], primary.value, confidence, len(context.frameworks),
        len(context.metrics),
        context.primary_stage.value if context.primary_stage else None,
    )
    return classified, context


def normalize_query(text: Any) -> str:
    """Lowercase, trim and collapse whitespace. Non-strings become ""."""
    if not isinstance(text, str):
        return ""
    return " ".join(text.lower().split())


def count_phrase(text: str, phrase: str) -> int:
    """Whole-phrase occurrences of `phrase` in already-normalized text."""
    return len(_phrase_regex(phrase).findall(text))


def contains_phrase(text: str, phrase: str) -> bool:
    return _phrase_regex(phrase).search(text) is not None


def score_intents(normalized: str) -> tuple[dict[Intent, float], list[str]]:
    """Weighted pattern score per intent, plus the phrases that matched."""
    scores: dict[Intent, float] = {}
    evidence: list[str] = []
    for intent in Intent:
        total = 0.0
        for group in INTENT_PATTERNS.get(intent, ()):
            for phrase in group.phrases:
                hits = count_phrase(normalized, phrase)
                if hits:
                    total += group.weight * hits
                    if phrase not in evidence:
                        evidence.append(phrase)
        scores[intent] = total
    return scores, evidence


def detect_frameworks(
    normalized: str,
    floor: float = FRAMEWORK_INCLUSION_FLOOR,
) -> list[FrameworkMatch]:
    """Frameworks scoring above `floor`, most relevant first."""
    matches: list[FrameworkMatch] = []
    for framework, signature in FRAMEWORKS.items():
        score = 0.0
        matched: list[str] = []

        direct = next(
            (m for m in signature.direct_mentions if contains_phrase(normalized, m)),
            None,
        )
        if direct is not None:
            score += DIRECT_MENTION_SCORE
            matched.append(direct)

        for component in signature.key_components:
            if contains_phrase(normalized, component):
                score += KEY_COMPONENT_SCORE
                matched.append(component)

        for indicator in signature.contextual_indicators:
            if contains_phrase(normalized, indicator):
                score += CONTEXTUAL_INDICATOR_SCORE
                matched.append(indicator)

        score = round(min(1.0, score), 4)
        if score > floor:
            matches.append(FrameworkMatch(
                framework=framework,
                display_name=signature.display_name,
                relevance=score,
                matched_components=tuple(matched),
            ))

    matches.sort(key=lambda m: (-m.relevance, m.framework.value))
    return matches


def detect_metrics(
    normalized: str,
    floor: float = METRIC_DETECTION_FLOOR,
) -> list[MetricMatch]:
    """
    Financial metrics mentioned in the question, most confident first.

    A variant found anywhere in the question, even inside a longer word
    ("costs", "ratios"), scores 0.9. Otherwise each multi-word variant is
    scored by the share of its words found in the question (× 0.7) and
    the best variant is kept.
    """
    matches: list[MetricMatch] = []

    for name, definition in METRICS.items():
        exact = [v for v in definition.variants if v in normalized]
        if exact:
            variant = max(exact, key=len)
            confidence = EXACT_METRIC_CONFIDENCE
        else:
            variant, confidence = "", 0.0
            for candidate in definition.variants:
                variant_words = candidate.split()
                if len(variant_words) < 2:
                    continue
                hit_count = sum(1 for w in variant_words if w in normalized)
                partial = hit_count / len(variant_words) * PARTIAL_METRIC_FACTOR
                if partial > confidence:
                    variant, confidence = candidate, partial

        confidence = round(confidence, 4)
        if confidence > floor:
            matches.append(MetricMatch(
                name=name,
                display_name=definition.display_name,
                category=definition.category,
                matched_variant=variant,
                confidence=confidence,
            ))

    matches.sort(key=lambda m: (-m.confidence, m.name))
    return matches


def detect_stage_signals(
    normalized: str,
    user_context: Mapping[str, Any] | None = None,
) -> list[StageSignal]:
    """
    Lifecycle stage signals: the caller's profile first, then question
    keywords ordered by number of hits.
    """
    signals: list[StageSignal] = []
    profile_signal = _stage_from_user_context(user_context or {})
    if profile_signal is not None:
        signals.append(profile_signal)

    ranked: list[tuple[int, int, LifecycleStage, str]] = []
    for order, (stage, keywords) in enumerate(STAGE_KEYWORDS.items()):
        hits = [kw for kw in keywords if contains_phrase(normalized, kw)]
        if hits:
            ranked.append((len(hits), order, stage, hits[0]))
    ranked.sort(key=lambda item: (-item[0], item[1]))

    signals.extend(
        StageSignal(stage=stage, source="query", evidence=evidence)
        for _, _, stage, evidence in ranked
    )
    return signals


def detect_scenarios(normalized: str) -> list[Scenario]:
    return [
        scenario
        for scenario, keywords in SCENARIO_KEYWORDS.items()
        if any(contains_phrase(normalized, kw) for kw in keywords)
    ]


def detect_industries(
    normalized: str,
    user_context: Mapping[str, Any] | None = None,
) -> list[Industry]:
    industries: list[Industry] = []
    declared = (user_context or {}).get("industry")
    if declared:
        try:
            industries.append(Industry(str(declared).lower()))
        except ValueError:
            logger.debug("Ignoring unknown industry in user context: %s", declared)

    for industry, keywords in INDUSTRY_KEYWORDS.items():
        if industry in industries:
            continue
        if any(contains_phrase(normalized, kw) for kw in keywords):
            industries.append(industry)
    return industries


def stage_for_revenue(monthly_revenue: float) -> LifecycleStage:
    """Map monthly revenue (USD) to a lifecycle stage."""
    if monthly_revenue < 10_000:
        return LifecycleStage.STARTUP
    if monthly_revenue < 100_000:
        return LifecycleStage.EARLY_SCALING
    if monthly_revenue < 1_000_000:
        return LifecycleStage.SCALING
    if monthly_revenue < 10_000_000:
        return LifecycleStage.GROWTH
    return LifecycleStage.ENTERPRISE


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1024)
def _phrase_regex(phrase: str) -> re.Pattern[str]:
    # Alphanumeric lookarounds instead of \b so phrases such as "ltv/cac"
    # or "3:1 ratio" match on their own edges.
    return re.compile(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])")


def _pick_primary(
    scores: dict[Intent, float],
    normalizer: float,
) -> tuple[Intent, float]:
    best: Intent | None = None
    best_score = 0.0
    for intent in Intent:
        if scores[intent] > best_score:
            best, best_score = intent, scores[intent]

    if best is None:
        return Intent.RESEARCH, 0.0
    return best, round(min(1.0, best_score / normalizer), 4)


def _carry_over_frameworks(
    history: Sequence[Any],
    floor: float,
) -> list[FrameworkMatch]:
    """Frameworks from the most recent textual turn, at half relevance."""
    previous = next(
        (turn for turn in reversed(list(history)) if isinstance(turn, str) and turn.strip()),
        None,
    )
    if previous is None:
        return []

    carried = []
    for match in detect_frameworks(normalize_query(previous), floor=0.0):
        relevance = round(match.relevance * HISTORY_CARRY_OVER_FACTOR, 4)
        if relevance > floor:
            carried.append(FrameworkMatch(
                framework=match.framework,
                display_name=match.display_name,
                relevance=relevance,
                matched_components=match.matched_components,
            ))
    if carried:
        logger.debug(
            "Carried %d framework(s) over from conversation history", len(carried),
        )
    return carried


def _stage_from_user_context(profile: Mapping[str, Any]) -> StageSignal | None:
    declared = profile.get("stage")
    if declared:
        try:
            stage = LifecycleStage(str(declared).lower())
            return StageSignal(stage=stage, source="user_context", evidence=f"stage={stage.value}")
        except ValueError:
            logger.debug("Ignoring unknown stage in user context: %s", declared)

    revenue = profile.get("monthly_revenue")
    if revenue is None or isinstance(revenue, bool):
        return None
    try:
        amount = float(revenue)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-numeric monthly_revenue: %r", revenue)
        return None
    return StageSignal(
        stage=stage_for_revenue(amount),
        source="user_context",
        evidence=f"monthly_revenue={amount:g}",
    )


def _detect_urgency(normalized: str) -> Urgency:
    for urgency, keywords in URGENCY_KEYWORDS:
        if any(contains_phrase(normalized, kw) for kw in keywords):
            return urgency
    return Urgency.LOW


def _detect_specificity(
    normalized: str,
    evidence: list[str],
    context: BusinessContext,
) -> Specificity:
    signals = (
        len(evidence)
        + len(context.frameworks)
        + len(context.metrics)
        + len(_NUMBER_RE.findall(normalized))
    )
    length = len(normalized)
    if signals >= 3 and length > 50:
        return Specificity.HIGHLY_SPECIFIC
    if signals >= 2 or length > 30:
        return Specificity.SPECIFIC
    if signals >= 1 or length > 15:
        return Specificity.FOCUSED
    return Specificity.BROAD


def _detect_scope(normalized: str, intent: Intent, confidence: float) -> Scope:
    if intent == Intent.LEARNING and confidence > 0:
        return Scope.CONCEPTUAL
    if any(contains_phrase(normalized, kw) for kw in STRATEGIC_SCOPE_KEYWORDS):
        return Scope.STRATEGIC
    if any(contains_phrase(normalized, kw) for kw in OPERATIONAL_SCOPE_KEYWORDS):
        return Scope.OPERATIONAL
    return Scope.TACTICAL


def _complexity_factors(context: BusinessContext, scope: Scope) -> tuple[str, ...]:
    factors = []
    if len(context.frameworks) >= 2:
        factors.append("multi_framework")
    if len(context.metrics) >= 2:
        factors.append("multi_metric")
    if scope == Scope.STRATEGIC:
        factors.append("strategic_scope")
    if len({s.stage for s in context.stage_signals}) >= 2:
        factors.append("cross_stage")
    return tuple(factors)
