# =============================================================================
# Query API — Business Question Retrieval Endpoints
# =============================================================================
#
# POST /query         — run the pipeline, return ranked passages
# POST /query/stream  — same pipeline, NDJSON progress events then the
#                       final payload on the last line
#
# The heavy lifting happens in the agents package:
#   - pipeline.py runs the graph (classify → ... → compose)
#   - retrieval.py fans out to the search backend concurrently
#   - packager.py builds citations and guidance
#
# This module is thin: request mapping, error mapping and telemetry.
#
# ERROR MAPPING:
#   InvalidQuery          → 422
#   RetrievalUnavailable  → 503 (every retrieval strategy failed)
#   ValueError            → 503 (configuration, e.g. missing API key)
#   anything else         → 502, logged with traceback
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import StreamingResponse

from business_rag.agents.pipeline import PipelineState, run_pipeline
from business_rag.agents.progress import ProgressChannel
from business_rag.config import settings
from business_rag.db.engine import async_session_factory
from business_rag.db.models import RetrievalMetric
from business_rag.exceptions import InvalidQuery, RetrievalUnavailable
from business_rag.models.requests import QueryRequest
from business_rag.models.responses import (
    AnswerModel,
    BusinessContextModel,
    CitationModel,
    ClassificationModel,
    FrameworkModel,
    MetricModel,
    QueryResponse,
    ResultModel,
    RetrievalReportModel,
    StrategyModel,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Business Questions"])


# ---------------------------------------------------------------------------
# POST /query
# ---------------------------------------------------------------------------


@router.post(
    "/query",
    response_model=QueryResponse,
    summary="Retrieve ranked passages for a business question",
    description=(
        "Classifies the question, expands it with framework and metric "
        "vocabulary, searches the corpus with several strategies at once, "
        "and returns the top passages with citations and guidance."
    ),
)
async def query_endpoint(
    request: QueryRequest,
    background_tasks: BackgroundTasks,
) -> QueryResponse:
    logger.info(
        "Query request: question='%s', history=%d, compose=%s",
        request.question[:80], len(request.history), request.compose_answer,
    )
    start_time = time.monotonic()

    try:
        state = await run_pipeline(
            request.question,
            request.user_context_dict(),
            request.history,
            overrides=request.overrides(),
            top_k=request.top_k,
            compose=request.compose_answer,
        )
    except Exception as e:
        raise _to_http_error(e) from e

    latency_ms = int((time.monotonic() - start_time) * 1000)
    response = build_query_response(request.question, state, latency_ms)

    if settings.telemetry_enabled:
        background_tasks.add_task(_persist_metric, response)
    return response


# ---------------------------------------------------------------------------
# POST /query/stream
# ---------------------------------------------------------------------------


@router.post(
    "/query/stream",
    summary="Retrieve passages, streaming progress as NDJSON",
    description=(
        "Each line is a JSON object. Lines with type 'progress' report "
        "pipeline stages; the last line has type 'result' (the same body "
        "POST /query returns) or type 'error'."
    ),
)
async def query_stream_endpoint(request: QueryRequest) -> StreamingResponse:
    logger.info("Streaming query request: question='%s'", request.question[:80])
    return StreamingResponse(
        _stream_pipeline(request), media_type="application/x-ndjson",
    )


async def _stream_pipeline(request: QueryRequest) -> AsyncIterator[str]:
    channel = ProgressChannel()
    start_time = time.monotonic()
    task = asyncio.create_task(
        run_pipeline(
            request.question,
            request.user_context_dict(),
            request.history,
            overrides=request.overrides(),
            top_k=request.top_k,
            compose=request.compose_answer,
            progress=channel,
        )
    )

    try:
        # run_pipeline closes the channel when it finishes, success or not
        async for event in channel:
            yield _ndjson({"type": "progress", **event.to_dict()})

        try:
            state = await task
        except Exception as e:
            error = _to_http_error(e)
            yield _ndjson({
                "type": "error", "status": error.status_code, "detail": error.detail,
            })
            return

        latency_ms = int((time.monotonic() - start_time) * 1000)
        response = build_query_response(request.question, state, latency_ms)
        yield _ndjson({"type": "result", "data": response.model_dump(mode="json")})
    finally:
        # Client disconnected mid-stream: stop the in-flight retrieval
        if not task.done():
            task.cancel()


# ---------------------------------------------------------------------------
# Response Mapping
# ---------------------------------------------------------------------------


def build_query_response(
    question: str,
    state: PipelineState,
    latency_ms: int,
) -> QueryResponse:
    """Flatten the final pipeline state into the public response model."""
    query = state["query"]
    intent = query.intent
    context = query.context
    packaged = state["packaged"]
    report = state["retrieval_report"]
    answer = state.get("answer")

    return QueryResponse(
        question=question,
        classification=ClassificationModel(
            intent=intent.intent.value,
            confidence=round(intent.confidence, 4),
            evidence=list(intent.evidence),
            specificity=intent.specificity.value,
            urgency=intent.urgency.value,
            scope=intent.scope.value,
            secondary_intents=[i.value for i in intent.secondary],
            complexity_factors=list(intent.complexity_factors),
        ),
        context=BusinessContextModel(
            frameworks=[
                FrameworkModel(
                    name=m.framework.value,
                    display_name=m.display_name,
                    relevance=round(m.relevance, 4),
                    matched_components=list(m.matched_components),
                )
                for m in context.frameworks
            ],
            metrics=[
                MetricModel(
                    name=m.name,
                    display_name=m.display_name,
                    category=m.category.value,
                    matched_variant=m.matched_variant,
                    confidence=round(m.confidence, 4),
                )
                for m in context.metrics
            ],
            stage=context.primary_stage.value if context.primary_stage else None,
            scenarios=[s.value for s in context.scenarios],
            industries=[i.value for i in context.industries],
        ),
        expanded_query=state["expanded_query"],
        results=[
            ResultModel(
                rank=r.rank,
                candidate_id=r.candidate_id,
                excerpt=r.excerpt,
                combined_score=r.combined_score,
                scores=r.scores,
                match_quality=r.match_quality,
                citation=CitationModel(
                    label=r.citation.label,
                    title=r.citation.title,
                    source_url=r.citation.source_url,
                    authority_level=r.citation.authority_level,
                    published_at=r.citation.published_at,
                ),
                tags=r.tags,
                strategy=r.strategy,
                reasons=r.reasons,
                guidance=r.guidance,
            )
            for r in packaged.results
        ],
        no_results=packaged.no_results,
        suggestions=packaged.suggestions,
        retrieval=RetrievalReportModel(
            strategies=[
                StrategyModel(
                    name=s.name, kind=s.kind, returned=s.returned,
                    error=s.error, elapsed_ms=s.elapsed_ms,
                )
                for s in report.strategies
            ],
            cache_hit=report.cache_hit,
            merged_count=report.merged_count,
            similarity_distribution=report.similarity_distribution,
        ),
        answer=(
            AnswerModel(
                text=answer.answer,
                model=answer.model,
                cited_labels=answer.cited_labels,
                input_tokens=answer.input_tokens,
                output_tokens=answer.output_tokens,
            )
            if answer is not None else None
        ),
        latency_ms=latency_ms,
    )


def _to_http_error(error: Exception) -> HTTPException:
    if isinstance(error, InvalidQuery):
        logger.info("Rejected query: %s", error)
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, RetrievalUnavailable):
        logger.error("Retrieval unavailable: %s", error.failures)
        return HTTPException(
            status_code=503,
            detail={"message": str(error), "failures": error.failures},
        )
    if isinstance(error, ValueError):
        logger.error("Configuration error: %s", error)
        return HTTPException(status_code=503, detail=f"Service configuration error: {error}")

    logger.exception("Query pipeline failed: %s", error)
    return HTTPException(status_code=502, detail=f"Upstream service error: {error}")


def _ndjson(payload: dict) -> str:
    return json.dumps(payload, default=str) + "\n"


# ---------------------------------------------------------------------------
# Background Metric Persistence
# ---------------------------------------------------------------------------


async def _persist_metric(response: QueryResponse) -> None:
    """
    Write one RetrievalMetric row. Uses its own session; the request's
    lifecycle has ended by the time background tasks run.
    """
    try:
        async with async_session_factory() as session:
            session.add(RetrievalMetric(
                question=response.question,
                expanded_query=response.expanded_query,
                intent=response.classification.intent,
                confidence=response.classification.confidence,
                strategies_run=len(response.retrieval.strategies),
                strategies_failed=sum(
                    1 for s in response.retrieval.strategies if s.error
                ),
                candidate_count=response.retrieval.merged_count,
                top_score=(
                    response.results[0].combined_score if response.results else None
                ),
                cache_hit=response.retrieval.cache_hit,
                latency_ms=response.latency_ms,
            ))
            await session.commit()
    except Exception as e:
        logger.warning("Failed to persist retrieval metric: %s", e)
