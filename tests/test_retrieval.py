# =============================================================================
# Unit Tests — Retrieval Orchestrator
# =============================================================================
#
# Runs the concurrent fan-out against an in-memory fake backend whose
# per-strategy latency and failures are scripted, so merge order, partial
# failure, timeouts, caching and cancellation can be checked without a
# vector store or embedding API.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from business_rag.agents.progress import ProgressChannel
from business_rag.agents.retrieval import (
    RetrievalOrchestrator,
    merge_results,
    similarity_distribution,
)
from business_rag.exceptions import InvalidQuery, RetrievalUnavailable
from business_rag.models.domain import BusinessContext, Intent, SearchCandidate
from business_rag.services.cache import TTLCache
from business_rag.services.classifier import classify
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


def _c(candidate_id: str, similarity: float = 0.8) -> SearchCandidate:
    return SearchCandidate(
        candidate_id=candidate_id, text=f"passage {candidate_id}", similarity=similarity,
    )


class FakeBackend:
    """
    Scripted SearchBackend. Strategy kind is inferred from the call:
    a phase filter means "stage", a framework-prefixed query "framework".
    """

    def __init__(self, results=None, delays=None, errors=None):
        self.results = results or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, dict]] = []
        self.cancelled: list[str] = []

    async def semantic_search(self, text, max_results, similarity_threshold, phase_filter=None):
        if phase_filter:
            kind = "stage"
        elif text.startswith("LTV/CAC Optimization"):
            kind = "framework"
        else:
            kind = "semantic"
        return await self._respond(kind, {
            "text": text, "max_results": max_results,
            "similarity_threshold": similarity_threshold, "phase_filter": phase_filter,
        })

    async def hybrid_search(self, text, max_results):
        return await self._respond("hybrid", {"text": text, "max_results": max_results})

    async def _respond(self, kind, kwargs):
        self.calls.append((kind, kwargs))
        try:
            await asyncio.sleep(self.delays.get(kind, 0))
        except asyncio.CancelledError:
            self.cancelled.append(kind)
            raise
        if kind in self.errors:
            raise self.errors[kind]
        return list(self.results.get(kind, []))


def _context():
    _, context = classify(LTV_CAC_QUESTION)
    return context


def _params(**overrides):
    return resolve_parameters(Intent.IMPLEMENTATION, overrides or None)


def _orchestrator(backend, timeout=1.0):
    return RetrievalOrchestrator(
        backend, timeout_seconds=timeout, cache=TTLCache(max_entries=16, ttl_seconds=60),
    )


# ---------------------------------------------------------------------------
# Test: Fan-Out Plan
# ---------------------------------------------------------------------------


class TestPlan:
    """Tests for which strategies run and with what arguments."""

    def test_strategies_for_ltv_cac_question(self):
        backend = FakeBackend()
        _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params()))
        assert sorted(kind for kind, _ in backend.calls) == [
            "framework", "hybrid", "semantic", "stage",
        ]

    def test_strategy_arguments(self):
        backend = FakeBackend()
        _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params()))
        calls = dict(backend.calls)

        assert calls["semantic"]["max_results"] == 6
        assert calls["semantic"]["similarity_threshold"] == 0.7
        assert calls["hybrid"]["max_results"] == 4
        assert calls["framework"]["text"] == f"LTV/CAC Optimization {LTV_CAC_QUESTION}"
        assert calls["framework"]["max_results"] == 3
        assert calls["framework"]["similarity_threshold"] == 0.75
        assert calls["stage"]["phase_filter"] == "startup"
        assert calls["stage"]["similarity_threshold"] == 0.7

    def test_unscoped_query_runs_two_strategies(self):
        backend = FakeBackend()
        _run(_orchestrator(backend).search("grow revenue", BusinessContext(), _params()))
        assert sorted(kind for kind, _ in backend.calls) == ["hybrid", "semantic"]

    def test_small_max_results_still_queries(self):
        backend = FakeBackend()
        _run(_orchestrator(backend).search("grow", BusinessContext(), _params(max_results=1)))
        calls = dict(backend.calls)
        assert calls["semantic"]["max_results"] == 1
        assert calls["hybrid"]["max_results"] == 1


# ---------------------------------------------------------------------------
# Test: Merge
# ---------------------------------------------------------------------------


class TestMerge:
    """Tests for deduplication, capping and merge order."""

    def test_dedup_and_cap(self):
        backend = FakeBackend(results={
            "semantic": [_c("a"), _c("b"), _c("c")],
            "hybrid": [_c("b"), _c("d"), _c("e")],
            "framework": [_c("a"), _c("f")],
            "stage": [_c("g"), _c("h")],
        })
        merged = _run(
            _orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params(max_results=2))
        )
        ids = [c.candidate_id for c in merged]
        assert len(ids) == len(set(ids))
        assert ids == ["a", "b", "c", "d"]

    def test_merge_order_ignores_completion_order(self):
        backend = FakeBackend(
            results={"semantic": [_c("s1")], "hybrid": [_c("h1")], "stage": [_c("st1")]},
            delays={"semantic": 0.05, "hybrid": 0.0, "stage": 0.01},
        )
        merged = _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params()))
        assert [c.candidate_id for c in merged] == ["s1", "h1", "st1"]

    def test_first_occurrence_wins(self):
        backend = FakeBackend(results={
            "semantic": [_c("a", 0.9)],
            "hybrid": [_c("a", 0.4)],
        })
        [merged] = _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params()))
        assert merged.similarity == 0.9
        assert merged.strategy == "semantic"

    def test_candidates_tagged_with_strategy(self):
        backend = FakeBackend(results={"framework": [_c("f")]})
        [merged] = _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params()))
        assert merged.strategy == "framework:ltv_cac_optimization"

    def test_merge_results_helper(self):
        merged = merge_results([[_c("a"), _c("b")], [_c("b"), _c("c")]], limit=10)
        assert [c.candidate_id for c in merged] == ["a", "b", "c"]
        assert merge_results([[_c("a"), _c("b")]], limit=1) == [_c("a")]

    def test_similarity_distribution(self):
        buckets = similarity_distribution([_c("a", 0.95), _c("b", 0.7), _c("c", 0.5), _c("d", 0.1)])
        assert buckets == {"high": 1, "medium": 1, "low": 1, "minimal": 1}


# ---------------------------------------------------------------------------
# Test: Failures
# ---------------------------------------------------------------------------


class TestFailures:
    """Tests for partial failure, timeouts and total failure."""

    def test_partial_failure_degrades(self):
        backend = FakeBackend(
            results={"semantic": [_c("a")], "stage": [_c("b")]},
            errors={"hybrid": ConnectionError("chroma down")},
        )
        orchestrator = _orchestrator(backend)
        merged, report = _run(
            orchestrator.search_with_report(LTV_CAC_QUESTION, _context(), _params())
        )
        assert [c.candidate_id for c in merged] == ["a", "b"]
        assert set(report.failures) == {"hybrid"}
        assert "chroma down" in report.failures["hybrid"]

    def test_partial_failure_not_cached(self):
        backend = FakeBackend(
            results={"semantic": [_c("a")]},
            errors={"hybrid": ConnectionError("chroma down")},
        )
        orchestrator = _orchestrator(backend)
        _run(orchestrator.search(LTV_CAC_QUESTION, _context(), _params()))
        assert len(orchestrator.cache) == 0

    def test_timeout_counts_as_failure(self):
        backend = FakeBackend(
            results={"semantic": [_c("a")], "hybrid": [_c("slow")]},
            delays={"hybrid": 1.0},
        )
        merged, report = _run(
            _orchestrator(backend, timeout=0.05).search_with_report(
                LTV_CAC_QUESTION, _context(), _params(),
            )
        )
        assert [c.candidate_id for c in merged] == ["a"]
        assert "timed out" in report.failures["hybrid"]

    def test_all_strategies_failing_raises(self):
        error = RuntimeError("backend offline")
        backend = FakeBackend(errors={
            "semantic": error, "hybrid": error, "framework": error, "stage": error,
        })
        with pytest.raises(RetrievalUnavailable) as exc_info:
            _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params()))
        assert set(exc_info.value.failures) == {
            "semantic", "hybrid", "framework:ltv_cac_optimization", "stage:startup",
        }

    def test_empty_results_are_not_a_failure(self):
        merged, report = _run(
            _orchestrator(FakeBackend()).search_with_report(
                LTV_CAC_QUESTION, _context(), _params(),
            )
        )
        assert merged == []
        assert report.failures == {}

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_query_rejected_without_calls(self, text):
        backend = FakeBackend()
        with pytest.raises(InvalidQuery):
            _run(_orchestrator(backend).search(text, _context(), _params()))
        assert backend.calls == []

    def test_cancellation_reaches_backend_calls(self):
        backend = FakeBackend(delays={
            "semantic": 10, "hybrid": 10, "framework": 10, "stage": 10,
        })
        orchestrator = _orchestrator(backend, timeout=30)

        async def scenario():
            task = asyncio.create_task(
                orchestrator.search(LTV_CAC_QUESTION, _context(), _params())
            )
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            await asyncio.sleep(0)

        _run(scenario())
        assert sorted(backend.cancelled) == ["framework", "hybrid", "semantic", "stage"]
        assert len(orchestrator.cache) == 0


# ---------------------------------------------------------------------------
# Test: Cache and Progress
# ---------------------------------------------------------------------------


class TestCacheAndProgress:
    def test_second_identical_search_hits_cache(self):
        backend = FakeBackend(results={"semantic": [_c("a")]})
        orchestrator = _orchestrator(backend)
        first = _run(orchestrator.search(LTV_CAC_QUESTION, _context(), _params()))
        calls_after_first = len(backend.calls)

        second, report = _run(
            orchestrator.search_with_report(LTV_CAC_QUESTION, _context(), _params())
        )
        assert second == first
        assert report.cache_hit is True
        assert len(backend.calls) == calls_after_first

    def test_cache_key_includes_parameters(self):
        backend = FakeBackend(results={"semantic": [_c("a")]})
        orchestrator = _orchestrator(backend)
        _run(orchestrator.search(LTV_CAC_QUESTION, _context(), _params()))
        calls_after_first = len(backend.calls)
        _run(orchestrator.search(LTV_CAC_QUESTION, _context(), _params(max_results=3)))
        assert len(backend.calls) > calls_after_first

    def test_progress_events(self):
        events = []
        channel = ProgressChannel(callback=events.append)
        backend = FakeBackend(
            results={"semantic": [_c("a")]},
            errors={"hybrid": ValueError("bad")},
        )
        _run(_orchestrator(backend).search(LTV_CAC_QUESTION, _context(), _params(), channel))

        statuses = [e.status for e in events]
        assert statuses[0] == "started"
        assert statuses[-1] == "completed"
        assert statuses.count("strategy_completed") == 3
        assert statuses.count("strategy_failed") == 1
