# =============================================================================
# Unit Tests — Analyst, Packager and LLM Providers
# =============================================================================
#
# Tests the answer-composition and packaging components without requiring
# API keys or databases. Uses mock LLM providers.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from business_rag.agents.analyst import (
    NO_PASSAGES_ANSWER,
    SYSTEM_PROMPTS,
    _format_context,
    compose_answer,
)
from business_rag.agents.packager import (
    Citation,
    PackagedResult,
    _excerpt,
    implementation_guidance,
    package_results,
    rephrasing_suggestions,
)
from business_rag.config import settings
from business_rag.models.domain import (
    BusinessContext,
    ClassifiedIntent,
    Intent,
    Query,
    RankedCandidate,
    SearchCandidate,
)
from business_rag.services.citations import CitationRecord, InMemoryCitationSource
from business_rag.services.classifier import classify, normalize_query
from business_rag.services.llm import AnthropicProvider, LLMResponse, OpenAICompatibleProvider
from business_rag.services.ranker import resolve_parameters

LTV_CAC_QUESTION = "How do I calculate LTV to CAC ratio for my SaaS startup"


def _run(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            raise RuntimeError("closed")
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def _query(question: str = LTV_CAC_QUESTION) -> Query:
    intent, context = classify(question)
    return Query(
        original_text=question,
        normalized_text=normalize_query(question),
        intent=intent,
        context=context,
        params=resolve_parameters(intent.intent),
    )


def _bare_query(intent: Intent) -> Query:
    return Query(
        original_text="grow",
        normalized_text="grow",
        intent=ClassifiedIntent(intent=intent, confidence=0.5),
        context=BusinessContext(),
        params=resolve_parameters(intent),
    )


def _ranked(candidate_id: str, combined: float = 0.8, **kwargs) -> RankedCandidate:
    kwargs.setdefault("text", f"passage {candidate_id}")
    candidate = SearchCandidate(candidate_id=candidate_id, similarity=combined, **kwargs)
    return RankedCandidate(
        candidate=candidate, semantic=combined, context_match=0.5,
        authority=0.7, freshness=0.8, combined=combined,
    )


def _passage(label: str, title: str | None, text: str, authority: str | None = None):
    return PackagedResult(
        rank=int(label.strip("[]")),
        candidate_id=f"id-{label}",
        excerpt=text,
        text=text,
        combined_score=0.8,
        scores={},
        match_quality="very_good",
        citation=Citation(label=label, title=title, authority_level=authority),
    )


# ---------------------------------------------------------------------------
# Test: Analyst
# ---------------------------------------------------------------------------


class TestFormatContext:
    """Tests for numbering passages in the LLM prompt."""

    def test_labels_titles_and_authority(self):
        context = _format_context([
            _passage("[1]", "Grand Slam Offers", "Stack the value.", "primary_source"),
            _passage("[2]", None, "Diagnose churn by cohort."),
        ])
        assert context == (
            "[1] Grand Slam Offers (primary_source):\nStack the value."
            "\n\n---\n\n"
            "[2] id-[2]:\nDiagnose churn by cohort."
        )


class TestComposeAnswer:
    def test_system_prompt_follows_intent(self):
        llm = AsyncMock()
        llm.complete.return_value = LLMResponse("Check cohorts [2].", "m", 10, 5)
        intent = ClassifiedIntent(intent=Intent.TROUBLESHOOTING, confidence=0.7)
        passages = [
            _passage("[1]", "A", "first"),
            _passage("[2]", "B", "second"),
        ]

        answer = _run(compose_answer("why is churn up", passages, intent, llm))

        kwargs = llm.complete.await_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPTS[Intent.TROUBLESHOOTING]
        assert kwargs["messages"][0]["content"].startswith("Question: why is churn up")
        assert "Passages (2)" in kwargs["messages"][0]["content"]
        assert answer.cited_labels == ["[2]"]
        assert (answer.input_tokens, answer.output_tokens) == (10, 5)

    def test_empty_passages_skip_llm(self):
        llm = AsyncMock()
        intent = ClassifiedIntent(intent=Intent.LEARNING, confidence=0.5)
        answer = _run(compose_answer("anything", [], intent, llm))
        assert answer.answer == NO_PASSAGES_ANSWER
        llm.complete.assert_not_awaited()

    def test_every_intent_has_a_prompt(self):
        assert set(SYSTEM_PROMPTS) == set(Intent)


# ---------------------------------------------------------------------------
# Test: Packager
# ---------------------------------------------------------------------------


class TestPackager:
    """Tests for citations, excerpts, guidance and suggestions."""

    def test_labels_follow_rank(self):
        response = package_results(
            [_ranked("a", 0.9), _ranked("b", 0.7)], _query(),
        )
        assert [r.citation.label for r in response.results] == ["[1]", "[2]"]
        assert [r.rank for r in response.results] == [1, 2]
        assert response.no_results is False

    def test_top_k(self):
        ranked = [_ranked(str(i)) for i in range(6)]
        assert len(package_results(ranked, _query(), top_k=2).results) == 2

    def test_citation_source_wins_over_metadata(self):
        citations = InMemoryCitationSource([CitationRecord(candidate_id="a", title="From source")])
        [result] = package_results(
            [_ranked("a", metadata={"title": "From metadata"})], _query(), citations,
        ).results
        assert result.citation.title == "From source"

    def test_metadata_fallback_and_date(self):
        [result] = package_results(
            [_ranked("a", metadata={
                "title": "Core Four", "published_at": "2024-03-05T10:00:00Z",
                "authority_level": "expert",
            })],
            _query(),
        ).results
        assert result.citation.title == "Core Four"
        assert result.citation.published_at == "2024-03-05"
        assert result.citation.authority_level == "expert"

    def test_empty_input_gives_suggestions(self):
        response = package_results([], _bare_query(Intent.IMPLEMENTATION))
        assert response.results == []
        assert response.no_results is True
        assert len(response.suggestions) == 3

    def test_suggestions_without_threshold_hint(self):
        # Learning preset threshold is 0.6, below the 0.7 hint cut-off
        assert len(rephrasing_suggestions(_bare_query(Intent.LEARNING))) == 2

    def test_excerpt_cuts_on_word_boundary(self):
        assert _excerpt("one two three four", 10) == "one two..."
        assert _excerpt("  short   text ", 50) == "short text"

    def test_guidance_for_ltv_cac_question(self):
        guidance = implementation_guidance(_ranked("a", tags=("ltv",)), _query())
        assert guidance[0] == "Consider a short planning pass before implementing."
        assert guidance[1].startswith("Focus on the LTV/CAC Optimization components: ")
        assert guidance[2].startswith("Track ")

    def test_guidance_for_learning_without_context(self):
        guidance = implementation_guidance(_ranked("a"), _bare_query(Intent.LEARNING))
        assert guidance == ["Start with the fundamentals before implementing."]


# ---------------------------------------------------------------------------
# Test: LLM Providers
# ---------------------------------------------------------------------------


class TestProviders:
    def test_anthropic_requires_key(self):
        with patch.object(settings, "llm_api_key", None), \
                patch.object(settings, "anthropic_api_key", ""):
            with pytest.raises(ValueError, match="No Anthropic API key"):
                AnthropicProvider()

    def test_openai_compatible_requires_key(self):
        with patch.object(settings, "llm_api_key", None), \
                patch.object(settings, "openai_api_key", ""):
            with pytest.raises(ValueError):
                OpenAICompatibleProvider()
