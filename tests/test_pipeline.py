# =============================================================================
# Integration Tests — Retrieval Pipeline (LangGraph)
# =============================================================================
#
# Runs the full graph (classify → expand → retrieve → rank → package →
# compose) against a mocked search backend and a mocked LLM provider.
# No vector store, database or API keys needed.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from business_rag.agents.packager import match_quality
from business_rag.agents.pipeline import run_pipeline, validate_inputs
from business_rag.agents.progress import ProgressChannel
from business_rag.exceptions import InvalidQuery, RetrievalUnavailable
from business_rag.models.domain import Intent, LifecycleStage, SearchCandidate
from business_rag.services.llm import LLMResponse

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


def _corpus() -> list[SearchCandidate]:
    return [
        SearchCandidate(
            candidate_id="ltv-cac-basics",
            text=(
                "LTV to CAC ratio compares customer lifetime value with the cost "
                "of acquiring that customer. Aim for at least 3:1."
            ),
            similarity=0.82,
            tags=("ltv_cac_optimization", "ltv", "cac", "ltv_cac_ratio"),
            stage="all",
            intent="implementation",
            metadata={
                "title": "Unit Economics: LTV and CAC",
                "authority_level": "primary_source",
                "source_url": "https://example.com/ltv-cac",
            },
        ),
        SearchCandidate(
            candidate_id="pricing-anchors",
            text="Anchor the price against the cost of the problem.",
            similarity=0.85,
            tags=("pricing_psychology",),
            stage="all",
            intent="optimization",
        ),
    ]


def _backend(results=None) -> AsyncMock:
    backend = AsyncMock()
    backend.semantic_search.return_value = _corpus() if results is None else results
    backend.hybrid_search.return_value = _corpus() if results is None else results
    return backend


def _llm(content: str = "Divide LTV by CAC [1].") -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=content, model="fake-model", input_tokens=120, output_tokens=30,
    )
    return llm


# ---------------------------------------------------------------------------
# Test: End-to-End Scenario
# ---------------------------------------------------------------------------


class TestLtvCacScenario:
    """The LTV/CAC question flows through every stage."""

    def test_classification_in_state(self):
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend()))
        query = state["query"]

        assert query.intent.intent == Intent.IMPLEMENTATION
        assert query.intent.confidence == 0.6
        assert {"ltv", "cac", "ltv_cac_ratio"} <= {m.name for m in query.context.metrics}
        assert query.context.primary_stage == LifecycleStage.STARTUP

    def test_expanded_query_has_calculation_terms(self):
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend()))
        assert state["expanded_query"].startswith(LTV_CAC_QUESTION)
        assert "ltv formula" in state["expanded_query"]

    def test_context_fit_beats_raw_similarity(self):
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend()))
        results = state["packaged"].results

        assert [r.candidate_id for r in results] == ["ltv-cac-basics", "pricing-anchors"]
        top = results[0]
        assert top.citation.label == "[1]"
        assert top.citation.title == "Unit Economics: LTV and CAC"
        assert top.citation.authority_level == "primary_source"
        assert top.match_quality == "excellent"
        assert any("LTV/CAC Optimization" in line for line in top.guidance)

    def test_results_deduplicated_across_strategies(self):
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend()))
        ids = [c.candidate_id for c in state["candidates"]]
        assert len(ids) == len(set(ids)) == 2
        assert state["retrieval_report"].failures == {}

    def test_top_k(self):
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend(), top_k=1))
        assert len(state["packaged"].results) == 1

    def test_deterministic(self):
        first = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend()))
        second = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend()))
        assert first["expanded_query"] == second["expanded_query"]
        assert first["ranked"] == second["ranked"]
        assert first["packaged"] == second["packaged"]

    def test_no_answer_unless_requested(self):
        llm = _llm()
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend(), llm=llm))
        assert state["answer"] is None
        llm.complete.assert_not_awaited()


# ---------------------------------------------------------------------------
# Test: Answer Composition
# ---------------------------------------------------------------------------


class TestCompose:
    def test_composed_answer_cites_labels(self):
        llm = _llm()
        state = _run(run_pipeline(
            LTV_CAC_QUESTION, backend=_backend(), compose=True, llm=llm,
        ))
        answer = state["answer"]
        assert answer.model == "fake-model"
        assert answer.cited_labels == ["[1]"]

        kwargs = llm.complete.await_args.kwargs
        assert "[1] Unit Economics: LTV and CAC" in kwargs["messages"][0]["content"]
        assert "operator" in kwargs["system"]

    def test_no_llm_call_without_passages(self):
        llm = _llm()
        state = _run(run_pipeline(
            LTV_CAC_QUESTION, backend=_backend(results=[]), compose=True, llm=llm,
        ))
        assert state["answer"].model == "n/a"
        llm.complete.assert_not_awaited()


# ---------------------------------------------------------------------------
# Test: Soft and Hard Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_no_results_gives_suggestions(self):
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend(results=[])))
        packaged = state["packaged"]
        assert packaged.no_results is True
        assert packaged.results == []
        assert packaged.suggestions

    @pytest.mark.parametrize(
        "question, user_context, history",
        [
            ("", None, None),
            ("   ", None, None),
            (42, None, None),
            (LTV_CAC_QUESTION, "startup", None),
            (LTV_CAC_QUESTION, None, "previous question"),
            (LTV_CAC_QUESTION, None, ["ok", 7]),
        ],
    )
    def test_invalid_input_never_reaches_backend(self, question, user_context, history):
        backend = _backend()
        with pytest.raises(InvalidQuery):
            _run(run_pipeline(question, user_context, history, backend=backend))
        backend.semantic_search.assert_not_called()
        backend.hybrid_search.assert_not_called()

    def test_bad_overrides_are_invalid_query(self):
        with pytest.raises(InvalidQuery):
            validate_inputs(LTV_CAC_QUESTION, overrides={"semantic_weight": -1})
        with pytest.raises(InvalidQuery):
            validate_inputs(LTV_CAC_QUESTION, overrides={"bogus": 1})

    def test_all_backends_failing(self):
        backend = AsyncMock()
        backend.semantic_search.side_effect = ConnectionError("down")
        backend.hybrid_search.side_effect = ConnectionError("down")
        with pytest.raises(RetrievalUnavailable):
            _run(run_pipeline(LTV_CAC_QUESTION, backend=backend))


# ---------------------------------------------------------------------------
# Test: Progress Channel
# ---------------------------------------------------------------------------


class TestProgress:
    def test_callback_receives_every_stage(self):
        events = []
        channel = ProgressChannel(callback=events.append)
        _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend(), progress=channel))

        stages = {e.stage for e in events}
        assert {"classify", "expand", "retrieve", "rank", "package", "pipeline"} <= stages
        assert events[-1].stage == "pipeline"
        assert events[-1].status == "completed"
        assert channel.closed

    def test_queue_consumer_sees_end_of_stream(self):
        async def scenario():
            channel = ProgressChannel()
            await run_pipeline(LTV_CAC_QUESTION, backend=_backend(), progress=channel)
            return [event async for event in channel]

        events = _run(scenario())
        assert events[0].stage == "classify"
        assert events[-1].stage == "pipeline"

    def test_channel_closed_on_failure(self):
        channel = ProgressChannel(callback=lambda event: None)
        with pytest.raises(InvalidQuery):
            _run(run_pipeline("", backend=_backend(), progress=channel))
        assert channel.closed

    def test_broken_callback_does_not_fail_pipeline(self):
        def explode(event):
            raise RuntimeError("observer bug")

        channel = ProgressChannel(callback=explode)
        state = _run(run_pipeline(LTV_CAC_QUESTION, backend=_backend(), progress=channel))
        assert state["packaged"].results


class TestMatchQuality:
    def test_bands(self):
        assert match_quality(0.95) == "excellent"
        assert match_quality(0.85) == "very_good"
        assert match_quality(0.75) == "good"
        assert match_quality(0.65) == "moderate"
        assert match_quality(0.6) == "basic"
