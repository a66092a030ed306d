# =============================================================================
# Retrieval Pipeline — LangGraph Assembly
# =============================================================================
#
# Wires the pipeline stages into a LangGraph StateGraph:
#
#   START ─▶ classify ─▶ expand ─▶ retrieve ─▶ rank ─▶ package ─▶ compose ─▶ END
#
# classify, expand, rank and package are pure CPU work over immutable
# values. retrieve is the only stage that awaits I/O (the concurrent
# fan-out inside RetrievalOrchestrator). compose calls the LLM, and only
# when the caller asked for a composed answer.
#
# DESIGN DECISION: Linear graph, compiled once at module level.
# There is no branching between stages: an empty retrieval still flows
# through rank and package, which turn it into a "no results" response.
#
# DESIGN DECISION: Collaborators travel in the state.
# The search backend/orchestrator, citation source, LLM provider and
# progress channel are objects in the state, not module globals, so a
# test or a single request can swap any of them. No checkpointer is
# configured, so non-serialisable state values are fine.
#
# DESIGN DECISION: Validate before the graph runs.
# A malformed request raises InvalidQuery before any node executes, so
# no retrieval call is ever made for it.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from business_rag.agents.analyst import ComposedAnswer, compose_answer
from business_rag.agents.packager import PackagedResponse, package_results
from business_rag.agents.progress import ProgressChannel, emit
from business_rag.agents.retrieval import RetrievalOrchestrator, RetrievalReport
from business_rag.exceptions import InvalidQuery
from business_rag.models.domain import (
    Intent,
    Query,
    RankedCandidate,
    SearchCandidate,
)
from business_rag.services.citations import CitationSource, InMemoryCitationSource
from business_rag.services.classifier import classify, normalize_query
from business_rag.services.expander import expand
from business_rag.services.llm import LLMProvider, get_llm_provider
from business_rag.services.ranker import rank, resolve_parameters
from business_rag.services.vectorstore import SearchBackend, get_search_backend

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pipeline State Schema
# ---------------------------------------------------------------------------


class PipelineState(TypedDict, total=False):
    """
    State flowing through the graph. total=False so each node returns
    only the keys it sets.
    """

    # --- Input ---
    question: str
    user_context: Mapping[str, Any] | None
    history: Sequence[str] | None
    overrides: Mapping[str, Any] | None
    top_k: int | None
    compose: bool

    # --- Injected collaborators ---
    orchestrator: RetrievalOrchestrator
    citations: CitationSource | None
    llm_override: LLMProvider | None
    progress: ProgressChannel | None

    # --- Intermediate ---
    query: Query
    expanded_query: str
    candidates: list[SearchCandidate]
    retrieval_report: RetrievalReport
    ranked: list[RankedCandidate]

    # --- Output ---
    packaged: PackagedResponse
    answer: ComposedAnswer | None


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def classify_node(state: PipelineState) -> dict:
    progress = state.get("progress")
    emit(progress, "classify", "started")

    intent, context = classify(
        state["question"], state.get("user_context"), state.get("history"),
    )
    params = resolve_parameters(intent.intent, state.get("overrides"))
    query = Query(
        original_text=state["question"],
        normalized_text=normalize_query(state["question"]),
        intent=intent,
        context=context,
        params=params,
    )

    emit(
        progress, "classify", "completed",
        intent=intent.intent.value,
        confidence=round(intent.confidence, 4),
        frameworks=[m.framework.value for m in context.frameworks],
        metrics=[m.name for m in context.metrics],
        stage=context.primary_stage.value if context.primary_stage else None,
    )
    logger.info(
        "Classified: intent=%s (%.2f), frameworks=%d, metrics=%d",
        intent.intent.value, intent.confidence,
        len(context.frameworks), len(context.metrics),
    )
    return {"query": query}


async def expand_node(state: PipelineState) -> dict:
    query = state["query"]
    expanded = expand(query.original_text, query.context, query.intent.intent)
    emit(state.get("progress"), "expand", "completed", expanded_query=expanded)
    logger.debug("Expanded query: '%s'", expanded[:200])
    return {"expanded_query": expanded}


async def retrieve_node(state: PipelineState) -> dict:
    query = state["query"]
    candidates, report = await state["orchestrator"].search_with_report(
        state["expanded_query"], query.context, query.params, state.get("progress"),
    )
    return {"candidates": candidates, "retrieval_report": report}


async def rank_node(state: PipelineState) -> dict:
    candidates = state["candidates"]
    citations = state.get("citations") or InMemoryCitationSource.from_candidates(candidates)
    ranked = rank(candidates, state["query"], citations)
    emit(
        state.get("progress"), "rank", "completed",
        ranked=len(ranked),
        top_score=round(ranked[0].combined, 4) if ranked else None,
    )
    return {"ranked": ranked, "citations": citations}


async def package_node(state: PipelineState) -> dict:
    packaged = package_results(
        state["ranked"], state["query"], state.get("citations"), state.get("top_k"),
    )
    emit(
        state.get("progress"), "package", "completed",
        results=len(packaged.results), no_results=packaged.no_results,
    )
    return {"packaged": packaged}


async def compose_node(state: PipelineState) -> dict:
    if not state.get("compose"):
        return {"answer": None}

    progress = state.get("progress")
    emit(progress, "compose", "started")
    llm = state.get("llm_override") or get_llm_provider()
    answer = await compose_answer(
        state["question"],
        state["packaged"].results,
        state["query"].intent,
        llm,
    )
    emit(progress, "compose", "completed", model=answer.model)
    return {"answer": answer}


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(PipelineState)
_builder.add_node("classify", classify_node)
_builder.add_node("expand", expand_node)
_builder.add_node("retrieve", retrieve_node)
_builder.add_node("rank", rank_node)
_builder.add_node("package", package_node)
_builder.add_node("compose", compose_node)

_builder.add_edge(START, "classify")
_builder.add_edge("classify", "expand")
_builder.add_edge("expand", "retrieve")
_builder.add_edge("retrieve", "rank")
_builder.add_edge("rank", "package")
_builder.add_edge("package", "compose")
_builder.add_edge("compose", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_default_orchestrator: RetrievalOrchestrator | None = None


def get_default_orchestrator() -> RetrievalOrchestrator:
    """Process-wide orchestrator over the configured backend (shared cache)."""
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = RetrievalOrchestrator(get_search_backend())
    return _default_orchestrator


async def run_pipeline(
    question: Any,
    user_context: Any = None,
    history: Any = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    top_k: int | None = None,
    compose: bool = False,
    backend: SearchBackend | None = None,
    orchestrator: RetrievalOrchestrator | None = None,
    citations: CitationSource | None = None,
    llm: LLMProvider | None = None,
    progress: ProgressChannel | None = None,
) -> PipelineState:
    """
    Run one question through the pipeline and return the final state.

    Args:
        question: The raw question.
        user_context: Optional profile mapping (stage, monthly_revenue, industry).
        history: Optional previous questions, oldest first.
        overrides: SearchParameters fields applied over the intent preset.
        top_k: Number of packaged results (defaults to settings.results_top_k).
        compose: Also compose an LLM answer from the packaged results.
        backend: Search backend for this call (gets its own orchestrator).
        orchestrator: Orchestrator for this call; wins over `backend`.
        citations: Citation source; defaults to backend-supplied metadata.
        llm: LLM provider for composition; defaults to the configured one.
        progress: Channel receiving stage events; closed when the run ends.

    Raises:
        InvalidQuery: Malformed input. Raised before any retrieval.
        RetrievalUnavailable: Every retrieval strategy failed.
    """
    try:
        validate_inputs(question, user_context, history, overrides)

        if orchestrator is None:
            orchestrator = (
                RetrievalOrchestrator(backend) if backend is not None
                else get_default_orchestrator()
            )

        initial_state: PipelineState = {
            "question": question,
            "user_context": user_context,
            "history": list(history) if history else None,
            "overrides": overrides,
            "top_k": top_k,
            "compose": compose,
            "orchestrator": orchestrator,
            "citations": citations,
            "llm_override": llm,
            "progress": progress,
        }

        logger.info("Invoking pipeline: question='%s'", question[:80])
        started = time.monotonic()
        try:
            result = await graph.ainvoke(initial_state)
        except Exception:
            emit(progress, "pipeline", "failed")
            raise

        logger.info(
            "Pipeline complete in %dms: %d results",
            int((time.monotonic() - started) * 1000),
            len(result["packaged"].results),
        )
        emit(progress, "pipeline", "completed")
        return result
    finally:
        if progress is not None:
            progress.close()


def validate_inputs(
    question: Any,
    user_context: Any = None,
    history: Any = None,
    overrides: Mapping[str, Any] | None = None,
) -> None:
    """
    Reject malformed requests.

    Raises:
        InvalidQuery: Blank or non-string question, non-mapping user
            context, non-string history entries, or bad overrides.
    """
    if not isinstance(question, str) or not question.strip():
        raise InvalidQuery("Question must be a non-empty string")

    if user_context is not None and not isinstance(user_context, Mapping):
        raise InvalidQuery("user_context must be a mapping")

    if history is not None:
        if isinstance(history, str) or not isinstance(history, Sequence):
            raise InvalidQuery("history must be a list of strings")
        if not all(isinstance(turn, str) for turn in history):
            raise InvalidQuery("history entries must be strings")

    if overrides:
        try:
            # Any preset works: validity depends only on the override values
            resolve_parameters(Intent.RESEARCH, overrides)
        except (TypeError, ValueError) as e:
            raise InvalidQuery(f"Invalid search parameters: {e}") from e
