# =============================================================================
# Retrieval Orchestrator — Concurrent Multi-Strategy Search
# =============================================================================
#
# Fans one expanded query out to several retrieval strategies at once and
# merges what comes back into a single deduplicated candidate list:
#
#   1. semantic   — pure vector search, 60% of max_results
#   2. hybrid     — vector + keyword, 40% of max_results
#   3. framework  — one call per detected framework, query prefixed with
#                   the framework name, 3 results, similarity floor 0.75
#   4. stage      — one call for the detected lifecycle stage, 3 results,
#                   similarity floor 0.7, stage filter
#
# MERGE RULE: result sets are walked in the fixed order above, first
# occurrence of an ID wins (so the semantic score is authoritative on
# collision), and the list is capped at max_results × 2. The surplus is
# deliberate: the ranker needs room to re-sort.
#
# DESIGN DECISION: Scatter/gather with per-strategy timeouts.
# Every call is wrapped in asyncio.wait_for() and its own try/except, then
# all are awaited with asyncio.gather(). A slow or failing strategy
# degrades to an empty list without touching its siblings. Because gather
# buffers every result before the merge, I/O completion order never
# changes the output. Cancelling the caller cancels every in-flight call.
#
# DESIGN DECISION: Failure escalates only when it is total.
# If every strategy failed, the caller gets RetrievalUnavailable instead
# of an empty list that would look like "no relevant passages".
#
# DESIGN DECISION: Orchestrator-owned result cache.
# Keyed by (normalized query, parameter fingerprint + scoped strategies).
# Only fan-outs where every strategy succeeded are cached, so a transient
# backend failure is never served again from memory.
# =============================================================================

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace

from business_rag.agents.progress import ProgressChannel, emit
from business_rag.config import settings
from business_rag.exceptions import InvalidQuery, RetrievalUnavailable
from business_rag.models.domain import BusinessContext, SearchCandidate, SearchParameters
from business_rag.services.cache import TTLCache
from business_rag.services.vectorstore import SearchBackend

logger = logging.getLogger(__name__)

# Share of max_results given to each unscoped strategy, as integer fractions
SEMANTIC_SHARE = (3, 5)
HYBRID_SHARE = (2, 5)

OVERFETCH_FACTOR = 2


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class StrategyOutcome:
    """What one retrieval call did."""

    name: str
    kind: str  # "semantic", "hybrid", "framework" or "stage"
    returned: int = 0
    error: str | None = None
    elapsed_ms: int = 0

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class RetrievalReport:
    """
    Summary of one search() call, surfaced in API responses and telemetry.

    similarity_distribution buckets merged candidates by backend
    similarity: "high" > 0.8, "medium" 0.6–0.8, "low" 0.4–0.6,
    "minimal" < 0.4.
    """

    strategies: list[StrategyOutcome] = field(default_factory=list)
    cache_hit: bool = False
    merged_count: int = 0
    similarity_distribution: dict[str, int] = field(default_factory=dict)

    @property
    def failures(self) -> dict[str, str]:
        return {s.name: s.error for s in self.strategies if s.error is not None}


@dataclass(frozen=True)
class StrategySpec:
    """A planned retrieval call; `call` creates a fresh coroutine."""

    name: str
    kind: str
    call: Callable[[], Awaitable[list[SearchCandidate]]]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class RetrievalOrchestrator:
    """
    Runs the retrieval fan-out against one search backend.

    Safe to share across concurrent requests: the only instance state is
    the result cache and `last_report`, which is informational.
    """

    def __init__(
        self,
        backend: SearchBackend,
        *,
        timeout_seconds: float | None = None,
        cache: TTLCache[tuple[SearchCandidate, ...]] | None = None,
    ) -> None:
        self._backend = backend
        self._timeout = timeout_seconds or settings.retrieval_strategy_timeout_seconds
        self._cache: TTLCache[tuple[SearchCandidate, ...]] = (
            cache if cache is not None
            else TTLCache(
                max_entries=settings.retrieval_cache_max_entries,
                ttl_seconds=settings.retrieval_cache_ttl_seconds,
            )
        )
        self.last_report: RetrievalReport | None = None

    @property
    def cache(self) -> TTLCache[tuple[SearchCandidate, ...]]:
        return self._cache

    async def search(
        self,
        expanded_query: str,
        context: BusinessContext,
        params: SearchParameters,
        progress: ProgressChannel | None = None,
    ) -> list[SearchCandidate]:
        """
        Retrieve and merge candidates for an expanded query.

        Returns:
            Deduplicated candidates, at most params.max_results × 2.

        Raises:
            InvalidQuery: The expanded query is empty.
            RetrievalUnavailable: Every strategy failed or timed out.
        """
        candidates, _ = await self.search_with_report(
            expanded_query, context, params, progress,
        )
        return candidates

    async def search_with_report(
        self,
        expanded_query: str,
        context: BusinessContext,
        params: SearchParameters,
        progress: ProgressChannel | None = None,
    ) -> tuple[list[SearchCandidate], RetrievalReport]:
        """Same as search(), also returning the RetrievalReport."""
        text = " ".join(expanded_query.split()) if isinstance(expanded_query, str) else ""
        if not text:
            raise InvalidQuery("Cannot search with an empty query")

        specs = self.plan(text, context, params)
        cache_key = (
            text.lower(),
            params.fingerprint(),
            tuple(spec.name for spec in specs),
        )

        cached = self._cache.get(cache_key)
        if cached is not None:
            report = RetrievalReport(
                cache_hit=True,
                merged_count=len(cached),
                similarity_distribution=similarity_distribution(cached),
            )
            self.last_report = report
            emit(progress, "retrieve", "cache_hit", candidates=len(cached))
            logger.info("Retrieval cache hit: %d candidates", len(cached))
            return list(cached), report

        emit(progress, "retrieve", "started", strategies=[s.name for s in specs])
        logger.info(
            "Retrieval fan-out: %d strategies (max_results=%d, threshold=%.2f)",
            len(specs), params.max_results, params.similarity_threshold,
        )

        runs = await asyncio.gather(*(self._run(spec, progress) for spec in specs))
        outcomes = [outcome for outcome, _ in runs]
        report = RetrievalReport(strategies=outcomes)
        self.last_report = report

        if all(outcome.failed for outcome in outcomes):
            emit(progress, "retrieve", "failed", failures=report.failures)
            logger.error("All %d retrieval strategies failed", len(outcomes))
            raise RetrievalUnavailable(
                "All retrieval strategies failed", failures=report.failures,
            )

        merged = merge_results(
            [results for _, results in runs],
            limit=params.max_results * OVERFETCH_FACTOR,
        )
        report.merged_count = len(merged)
        report.similarity_distribution = similarity_distribution(merged)

        if not report.failures:
            self._cache.put(cache_key, tuple(merged))

        emit(
            progress, "retrieve", "completed",
            candidates=len(merged), failed=sorted(report.failures),
        )
        logger.info(
            "Retrieval merged %d candidates (%d strategies failed)",
            len(merged), len(report.failures),
        )
        return merged, report

    def plan(
        self,
        text: str,
        context: BusinessContext,
        params: SearchParameters,
    ) -> list[StrategySpec]:
        """The retrieval calls for this query, in merge order."""
        backend = self._backend
        specs = [
            StrategySpec(
                name="semantic",
                kind="semantic",
                call=functools.partial(
                    backend.semantic_search,
                    text,
                    max_results=_share(params.max_results, SEMANTIC_SHARE),
                    similarity_threshold=params.similarity_threshold,
                ),
            ),
            StrategySpec(
                name="hybrid",
                kind="hybrid",
                call=functools.partial(
                    backend.hybrid_search,
                    text,
                    max_results=_share(params.max_results, HYBRID_SHARE),
                ),
            ),
        ]

        for match in context.frameworks:
            specs.append(StrategySpec(
                name=f"framework:{match.framework.value}",
                kind="framework",
                call=functools.partial(
                    backend.semantic_search,
                    f"{match.display_name} {text}",
                    max_results=settings.framework_search_max_results,
                    similarity_threshold=settings.framework_search_similarity_floor,
                ),
            ))

        stage = context.primary_stage
        if stage is not None:
            specs.append(StrategySpec(
                name=f"stage:{stage.value}",
                kind="stage",
                call=functools.partial(
                    backend.semantic_search,
                    text,
                    max_results=settings.stage_search_max_results,
                    similarity_threshold=settings.stage_search_similarity_floor,
                    phase_filter=stage.value,
                ),
            ))
        return specs

    async def _run(
        self,
        spec: StrategySpec,
        progress: ProgressChannel | None,
    ) -> tuple[StrategyOutcome, list[SearchCandidate]]:
        """Execute one strategy; errors and timeouts become an empty list."""
        outcome = StrategyOutcome(name=spec.name, kind=spec.kind)
        started = time.monotonic()
        results: list[SearchCandidate] = []

        try:
            raw = await asyncio.wait_for(spec.call(), timeout=self._timeout)
            results = [replace(c, strategy=spec.name) for c in (raw or [])]
        except asyncio.TimeoutError:
            outcome.error = f"timed out after {self._timeout:g}s"
            logger.warning("Retrieval strategy %s timed out", spec.name)
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.warning("Retrieval strategy %s failed: %s", spec.name, e)

        outcome.returned = len(results)
        outcome.elapsed_ms = int((time.monotonic() - started) * 1000)

        if outcome.failed:
            emit(progress, "retrieve", "strategy_failed",
                 strategy=spec.name, error=outcome.error)
        else:
            emit(progress, "retrieve", "strategy_completed",
                 strategy=spec.name, returned=outcome.returned)
        return outcome, results


# ---------------------------------------------------------------------------
# Merge Helpers
# ---------------------------------------------------------------------------


def merge_results(
    result_sets: Sequence[Sequence[SearchCandidate]],
    limit: int,
) -> list[SearchCandidate]:
    """Concatenate in order, keep the first occurrence of each ID, cap at limit."""
    seen: set[str] = set()
    merged: list[SearchCandidate] = []
    for results in result_sets:
        for candidate in results:
            if len(merged) >= limit:
                return merged
            if candidate.candidate_id in seen:
                continue
            seen.add(candidate.candidate_id)
            merged.append(candidate)
    return merged


def similarity_distribution(candidates: Sequence[SearchCandidate]) -> dict[str, int]:
    buckets = {"high": 0, "medium": 0, "low": 0, "minimal": 0}
    for candidate in candidates:
        if candidate.similarity > 0.8:
            buckets["high"] += 1
        elif candidate.similarity > 0.6:
            buckets["medium"] += 1
        elif candidate.similarity > 0.4:
            buckets["low"] += 1
        else:
            buckets["minimal"] += 1
    return buckets


def _share(max_results: int, fraction: tuple[int, int]) -> int:
    numerator, denominator = fraction
    return max(1, (max_results * numerator) // denominator)
