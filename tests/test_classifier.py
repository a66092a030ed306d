# =============================================================================
# Unit Tests — Query Classifier
# =============================================================================
#
# Rule-based classification is pure and deterministic, so these tests run
# without API keys, databases or an event loop.
# =============================================================================

from __future__ import annotations

import pytest

from business_rag.models.domain import (
    Framework,
    Industry,
    Intent,
    LifecycleStage,
    Scenario,
    Scope,
    Urgency,
)
from business_rag.services.classifier import (
    classify,
    count_phrase,
    detect_frameworks,
    detect_metrics,
    normalize_query,
    stage_for_revenue,
)

LTV_CAC_QUESTION = "How do I calculate LTV to CAC ratio for my SaaS startup"


# ---------------------------------------------------------------------------
# Test: Intent Scoring
# ---------------------------------------------------------------------------


class TestIntentClassification:
    """Tests for primary intent selection and confidence."""

    def test_ltv_cac_question_is_implementation(self):
        intent, _ = classify(LTV_CAC_QUESTION)
        assert intent.intent == Intent.IMPLEMENTATION
        # "how do i" (3.0) + "calculate" (3.0) over a normalizer of 10
        assert intent.confidence == 0.6
        assert "how do i" in intent.evidence
        assert "calculate" in intent.evidence

    def test_learning_question(self):
        intent, _ = classify("What is a grand slam offer? Explain the concept of it")
        assert intent.intent == Intent.LEARNING
        assert intent.scope == Scope.CONCEPTUAL

    def test_troubleshooting_question(self):
        intent, _ = classify("My funnel is broken, how do I fix this problem")
        assert intent.intent == Intent.TROUBLESHOOTING

    def test_repeated_phrases_accumulate(self):
        intent, _ = classify("benchmark benchmark benchmark")
        assert intent.intent == Intent.BENCHMARKING
        assert intent.confidence == 1.0

    def test_confidence_is_clamped(self):
        intent, _ = classify("improve improve improve improve")
        assert intent.confidence == 1.0

    def test_no_signal_defaults_to_research(self):
        intent, context = classify("zebra quantum marmalade")
        assert intent.intent == Intent.RESEARCH
        assert intent.confidence == 0.0
        assert context.is_empty

    def test_tie_goes_to_declaration_order(self):
        # "explain" (learning 3.0) vs "average" (benchmarking 3.0)
        intent, _ = classify("explain average")
        assert intent.intent == Intent.LEARNING
        assert Intent.BENCHMARKING in intent.secondary

    def test_secondary_intents_exclude_primary(self):
        intent, _ = classify("how to improve my plan")
        assert intent.intent not in intent.secondary
        assert Intent.OPTIMIZATION in intent.secondary

    def test_custom_normalizer(self):
        intent, _ = classify(LTV_CAC_QUESTION, confidence_normalizer=20.0)
        assert intent.confidence == 0.3


# ---------------------------------------------------------------------------
# Test: Malformed Input
# ---------------------------------------------------------------------------


class TestMalformedInput:
    """The classifier never raises; bad input classifies as the default."""

    def test_empty_string(self):
        intent, context = classify("")
        assert intent.intent == Intent.RESEARCH
        assert intent.confidence == 0.0
        assert context.is_empty

    def test_non_string(self):
        intent, context = classify(12345)
        assert intent.intent == Intent.RESEARCH
        assert context.is_empty

    def test_none(self):
        intent, _ = classify(None)
        assert intent.confidence == 0.0

    def test_bad_user_context_is_ignored(self):
        _, context = classify(LTV_CAC_QUESTION, user_context=["not", "a", "mapping"])
        assert context.primary_stage == LifecycleStage.STARTUP


# ---------------------------------------------------------------------------
# Test: Business Context
# ---------------------------------------------------------------------------


class TestBusinessContext:
    """Tests for framework, metric, stage, scenario and industry detection."""

    def test_ltv_cac_metrics(self):
        _, context = classify(LTV_CAC_QUESTION)
        names = {m.name for m in context.metrics}
        assert {"ltv", "cac", "ltv_cac_ratio"} <= names
        ratio = next(m for m in context.metrics if m.name == "ltv_cac_ratio")
        assert ratio.confidence == 0.9
        assert ratio.matched_variant == "ltv to cac ratio"

    def test_metrics_sorted_by_confidence(self):
        _, context = classify(LTV_CAC_QUESTION)
        confidences = [m.confidence for m in context.metrics]
        assert confidences == sorted(confidences, reverse=True)

    def test_ltv_cac_framework_from_indicators(self):
        _, context = classify(LTV_CAC_QUESTION)
        frameworks = [m.framework for m in context.frameworks]
        assert Framework.LTV_CAC_OPTIMIZATION in frameworks
        match = context.frameworks[0]
        assert match.relevance == 0.4  # two contextual indicators

    def test_direct_framework_mention(self):
        _, context = classify("How do I build a grand slam offer with a guarantee")
        top = context.frameworks[0]
        assert top.framework == Framework.GRAND_SLAM_OFFERS
        assert top.relevance == 1.0  # 0.8 direct + 0.2 indicator
        assert "grand slam offer" in top.matched_components

    def test_framework_floor_excludes_weak_matches(self):
        # A single contextual indicator (0.2) stays under the 0.3 floor
        assert detect_frameworks("we need more cash", floor=0.3) == []

    def test_framework_floor_override(self):
        matches = detect_frameworks("we need more cash", floor=0.1)
        assert [m.framework for m in matches] == [Framework.CASH_FLOW_MANAGEMENT]

    def test_stage_from_query(self):
        _, context = classify(LTV_CAC_QUESTION)
        assert context.primary_stage == LifecycleStage.STARTUP

    def test_user_context_stage_wins(self):
        _, context = classify(LTV_CAC_QUESTION, user_context={"stage": "growth"})
        assert context.primary_stage == LifecycleStage.GROWTH
        assert context.stage_signals[0].source == "user_context"

    def test_stage_from_monthly_revenue(self):
        _, context = classify("How do I hire a sales team", user_context={"monthly_revenue": 250_000})
        assert context.primary_stage == LifecycleStage.SCALING

    def test_industry_detected(self):
        _, context = classify(LTV_CAC_QUESTION)
        assert Industry.SAAS in context.industries

    def test_declared_industry_first(self):
        _, context = classify(LTV_CAC_QUESTION, user_context={"industry": "fitness"})
        assert context.industries[0] == Industry.FITNESS

    def test_scenarios(self):
        _, context = classify("How do I cut costs during a cash crunch")
        assert Scenario.OPTIMIZING_COSTS in context.scenarios
        assert Scenario.CRISIS_MANAGEMENT in context.scenarios

    def test_no_duplicate_frameworks_or_metrics(self):
        _, context = classify("ltv ltv ltv lifetime value core four core 4")
        metric_names = [m.name for m in context.metrics]
        framework_names = [m.framework for m in context.frameworks]
        assert len(metric_names) == len(set(metric_names))
        assert len(framework_names) == len(set(framework_names))


# ---------------------------------------------------------------------------
# Test: Conversation History
# ---------------------------------------------------------------------------


class TestHistoryCarryOver:
    """Frameworks from the previous question carry into vague follow-ups."""

    def test_follow_up_inherits_framework(self):
        _, context = classify(
            "How do I apply it to my business",
            history=["Tell me about the grand slam offer"],
        )
        assert [m.framework for m in context.frameworks] == [Framework.GRAND_SLAM_OFFERS]
        assert context.frameworks[0].relevance == 0.4  # 0.8 × 0.5

    def test_current_framework_wins_over_history(self):
        _, context = classify(
            "What is the core four",
            history=["Tell me about the grand slam offer"],
        )
        assert [m.framework for m in context.frameworks] == [Framework.CORE_FOUR]

    def test_non_string_turns_are_skipped(self):
        _, context = classify(
            "How do I apply it",
            history=["Tell me about the grand slam offer", None],
        )
        assert context.frameworks[0].framework == Framework.GRAND_SLAM_OFFERS


# ---------------------------------------------------------------------------
# Test: Tags and Helpers
# ---------------------------------------------------------------------------


class TestTagsAndHelpers:
    def test_urgency_critical(self):
        intent, _ = classify("Churn is killing us, need a fix asap")
        assert intent.urgency == Urgency.CRITICAL

    def test_urgency_default_low(self):
        intent, _ = classify(LTV_CAC_QUESTION)
        assert intent.urgency == Urgency.LOW

    def test_strategic_scope(self):
        intent, _ = classify("What should our pricing strategy be next year")
        assert intent.scope == Scope.STRATEGIC
        assert "strategic_scope" in intent.complexity_factors

    def test_multi_metric_complexity(self):
        intent, _ = classify(LTV_CAC_QUESTION)
        assert "multi_metric" in intent.complexity_factors

    def test_normalize_query(self):
        assert normalize_query("  How   DO I\tgrow ") == "how do i grow"
        assert normalize_query(None) == ""

    def test_count_phrase_respects_word_edges(self):
        assert count_phrase("plan planning plan", "plan") == 2
        assert count_phrase("ltv/cac is key", "ltv/cac") == 1

    def test_detect_metrics_exact_variant(self):
        matches = {m.name: m for m in detect_metrics("how long is our cac payback")}
        assert matches["payback_period"].confidence == 0.9
        assert matches["payback_period"].matched_variant == "cac payback"

    def test_detect_metrics_partial_match(self):
        # "customer acquisition cost" shares 2 of 3 words → 2/3 × 0.7
        matches = {m.name: m for m in detect_metrics("what does each customer acquisition run")}
        assert matches["cac"].confidence == 0.4667

    def test_plural_variant_is_exact(self):
        matches = {m.name: m for m in detect_metrics("how do i reduce customer acquisition costs")}
        assert matches["cac"].confidence == 0.9
        assert matches["cac"].matched_variant == "customer acquisition cost"

    def test_inflected_ratio_variant(self):
        matches = {m.name: m for m in detect_metrics("what are healthy ltv to cac ratios")}
        assert matches["ltv_cac_ratio"].confidence == 0.9
        assert matches["ltv_cac_ratio"].matched_variant == "ltv to cac ratio"

    def test_intent_scores_are_read_only(self):
        intent, _ = classify(LTV_CAC_QUESTION)
        assert intent.scores[Intent.IMPLEMENTATION] > 0
        with pytest.raises(TypeError):
            intent.scores[Intent.LEARNING] = 1.0

    def test_stage_for_revenue_bands(self):
        assert stage_for_revenue(5_000) == LifecycleStage.STARTUP
        assert stage_for_revenue(10_000) == LifecycleStage.EARLY_SCALING
        assert stage_for_revenue(999_999) == LifecycleStage.SCALING
        assert stage_for_revenue(5_000_000) == LifecycleStage.GROWTH
        assert stage_for_revenue(50_000_000) == LifecycleStage.ENTERPRISE

    def test_classification_is_deterministic(self):
        first = classify(LTV_CAC_QUESTION, user_context={"monthly_revenue": 8000})
        second = classify(LTV_CAC_QUESTION, user_context={"monthly_revenue": 8000})
        assert first == second
