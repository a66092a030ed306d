# =============================================================================
# Search Backends — Pluggable Retrieval Protocol
# =============================================================================
#
# Provides a common interface for passage retrieval, with concrete
# implementations for ChromaDB and pgvector (PostgreSQL).
#
# DESIGN DECISION: Protocol (structural typing) over ABC (nominal typing).
# Any object with the two async search methods can be handed to the
# retrieval orchestrator, which keeps tests free of real vector stores:
# an AsyncMock with `semantic_search` / `hybrid_search` is a valid backend.
#
# DESIGN DECISION: Two search modes.
# - semantic_search(): cosine similarity only, with a similarity floor and
#   an optional lifecycle-stage filter (passages tagged "all" always pass)
# - hybrid_search(): cosine similarity blended with keyword overlap
#   (0.7 vector + 0.3 keyword), no floor
# Both must be safe to call concurrently and return [] on an empty corpus.
#
# DESIGN DECISION: Mixed sync/async interface.
# - add_passages() is sync → called by the seeding script
# - *_search() are async → called by the orchestrator during a request
# ChromaDB's client and the OpenAI embedding client are synchronous, so
# their calls run in asyncio.to_thread() to keep the event loop free.
#
# ARCHITECTURE:
#   SearchBackend (Protocol)
#   ├── ChromaSearchBackend   — ChromaDB (in-process or client/server)
#   └── PgVectorSearchBackend — PostgreSQL + pgvector, ts_rank keywords
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import Any, Protocol

import chromadb
from sqlalchemy import func, literal, or_, select

from business_rag.config import settings
from business_rag.db.engine import async_session_factory
from business_rag.db.models import Passage
from business_rag.models.domain import SearchCandidate
from business_rag.services.embedder import embed_batch, embed_query

logger = logging.getLogger(__name__)

HYBRID_VECTOR_WEIGHT = 0.7
HYBRID_KEYWORD_WEIGHT = 0.3

# Hybrid search re-scores a wider vector pool than it returns
_HYBRID_POOL_FACTOR = 3

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset({
    "the", "and", "for", "with", "how", "what", "when", "why", "who", "does",
    "did", "can", "are", "was", "you", "your", "our", "this", "that", "from",
    "into", "about", "have", "has", "should", "would", "could",
})


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class SearchBackend(Protocol):
    """
    Protocol defining the retrieval backend interface.

    Implementations must tolerate concurrent calls and must return []
    rather than raise when the corpus is empty.
    """

    async def semantic_search(
        self,
        text: str,
        max_results: int,
        similarity_threshold: float,
        phase_filter: str | None = None,
    ) -> list[SearchCandidate]:
        """
        Pure vector similarity search.

        Args:
            text: Query text (embedded by the backend).
            max_results: Maximum number of candidates to return.
            similarity_threshold: Minimum cosine similarity to include.
            phase_filter: Optional lifecycle stage value; passages tagged
                with that stage or "all" are eligible.

        Returns:
            Candidates sorted by similarity (highest first).
        """
        ...

    async def hybrid_search(
        self,
        text: str,
        max_results: int,
    ) -> list[SearchCandidate]:
        """Vector similarity blended with keyword overlap."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: ChromaDB
# ---------------------------------------------------------------------------


class ChromaSearchBackend:
    """
    ChromaDB-backed passage search.

    Passage tags are stored as a comma-separated metadata string (ChromaDB
    metadata values must be scalars) and split back into a tuple on read.

    ChromaDB supports both in-process and client/server modes:
    - In-process (default): no extra infra, memory only
    - In-process on disk: set CHROMA_PERSIST_DIR
    - Client/server: set CHROMA_URL
    """

    def __init__(
        self,
        collection_name: str | None = None,
        client: Any | None = None,
        embed_fn: Callable[[str], list[float]] | None = None,
        embed_batch_fn: Callable[[list[str]], list[list[float]]] | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        elif settings.chroma_persist_dir:
            self._client = chromadb.PersistentClient(path=settings.chroma_persist_dir)
        else:
            self._client = chromadb.Client()

        self._embed = embed_fn or embed_query
        self._embed_batch = embed_batch_fn or embed_batch

        # Cosine distance to match pgvector's vector_cosine_ops
        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    def add_passages(
        self,
        passages: list[dict[str, Any]],
        embeddings: list[list[float]] | None = None,
    ) -> list[str]:
        """
        Store passages (sync). Each passage dict needs `id` and `text`;
        `tags`, `stage`, `intent`, `authority_level`, `published_at`,
        `title` and `source_url` are optional.

        Returns:
            The stored passage IDs.
        """
        if not passages:
            return []

        ids = [str(p["id"]) for p in passages]
        texts = [p["text"] for p in passages]
        if embeddings is None:
            embeddings = self._embed_batch(texts)

        metadatas = [
            _sanitise_chroma_metadata({
                key: value
                for key, value in passage.items()
                if key not in ("id", "text")
            })
            for passage in passages
        ]

        # upsert: re-seeding the same corpus replaces passages in place
        self._collection.upsert(
            ids=ids,
            documents=texts,
            embeddings=embeddings,
            metadatas=metadatas,
        )
        logger.info("Stored %d passages in ChromaDB", len(ids))
        return ids

    async def semantic_search(
        self,
        text: str,
        max_results: int,
        similarity_threshold: float,
        phase_filter: str | None = None,
    ) -> list[SearchCandidate]:
        embedding = await asyncio.to_thread(self._embed, text)
        where = {"stage": {"$in": [phase_filter, "all"]}} if phase_filter else None

        rows = await asyncio.to_thread(self._query, embedding, max_results, where)
        candidates = [
            _candidate_from_row(row_id, document, metadata, similarity)
            for row_id, document, metadata, similarity in rows
            if similarity >= similarity_threshold
        ]
        logger.debug(
            "Chroma semantic search: %d/%d above %.2f (phase=%s)",
            len(candidates), len(rows), similarity_threshold, phase_filter,
        )
        return candidates

    async def hybrid_search(
        self,
        text: str,
        max_results: int,
    ) -> list[SearchCandidate]:
        embedding = await asyncio.to_thread(self._embed, text)
        rows = await asyncio.to_thread(
            self._query, embedding, max_results * _HYBRID_POOL_FACTOR, None,
        )

        query_terms = _keyword_terms(text)
        scored = []
        for row_id, document, metadata, similarity in rows:
            blended = (
                HYBRID_VECTOR_WEIGHT * similarity
                + HYBRID_KEYWORD_WEIGHT * _keyword_overlap(query_terms, document)
            )
            scored.append(
                _candidate_from_row(row_id, document, metadata, round(blended, 4))
            )

        scored.sort(key=lambda c: (-c.similarity, c.candidate_id))
        return scored[:max_results]

    def _query(
        self,
        embedding: list[float],
        n_results: int,
        where: dict | None,
    ) -> list[tuple[str, str, dict, float]]:
        """Blocking ChromaDB query → (id, document, metadata, similarity) rows."""
        available = self._collection.count()
        if available == 0:
            return []

        results = self._collection.query(
            query_embeddings=[embedding],
            n_results=min(n_results, available),
            where=where,
            include=["documents", "metadatas", "distances"],
        )

        rows: list[tuple[str, str, dict, float]] = []
        if results and results["ids"] and results["ids"][0]:
            for i, row_id in enumerate(results["ids"][0]):
                distance = results["distances"][0][i] if results["distances"] else 1.0
                document = results["documents"][0][i] if results["documents"] else ""
                metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                # Cosine distance is in [0, 2]; similarity clamps to [0, 1]
                similarity = round(max(0.0, min(1.0, 1.0 - distance)), 4)
                rows.append((row_id, document or "", metadata or {}, similarity))
        return rows


# ---------------------------------------------------------------------------
# Implementation 2: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


class PgVectorSearchBackend:
    """
    pgvector-backed passage search over the `passages` table.

    Keyword relevance for hybrid search comes from PostgreSQL full-text
    search (`ts_rank_cd` over an English tsvector), capped at 1.0 before
    blending with cosine similarity.
    """

    def __init__(
        self,
        session_factory: Any | None = None,
        embed_fn: Callable[[str], list[float]] | None = None,
    ) -> None:
        self._session_factory = session_factory or async_session_factory
        self._embed = embed_fn or embed_query

    async def semantic_search(
        self,
        text: str,
        max_results: int,
        similarity_threshold: float,
        phase_filter: str | None = None,
    ) -> list[SearchCandidate]:
        embedding = await asyncio.to_thread(self._embed, text)
        distance = Passage.embedding.cosine_distance(embedding)

        stmt = (
            select(Passage, distance.label("distance"))
            .where(Passage.embedding.is_not(None))
            .where(distance <= 1.0 - similarity_threshold)
            .order_by(distance, Passage.id)
            .limit(max_results)
        )
        if phase_filter:
            stmt = stmt.where(or_(Passage.stage == phase_filter, Passage.stage == "all"))

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        logger.debug(
            "pgvector semantic search returned %d rows (phase=%s)",
            len(rows), phase_filter,
        )
        return [
            _candidate_from_passage(passage, round(1.0 - dist, 4))
            for passage, dist in rows
        ]

    async def hybrid_search(
        self,
        text: str,
        max_results: int,
    ) -> list[SearchCandidate]:
        embedding = await asyncio.to_thread(self._embed, text)
        vector_score = literal(1.0) - Passage.embedding.cosine_distance(embedding)
        keyword_score = func.least(
            func.ts_rank_cd(
                func.to_tsvector("english", Passage.content),
                func.plainto_tsquery("english", text),
            ),
            1.0,
        )
        blended = (
            HYBRID_VECTOR_WEIGHT * vector_score
            + HYBRID_KEYWORD_WEIGHT * keyword_score
        ).label("score")

        stmt = (
            select(Passage, blended)
            .where(Passage.embedding.is_not(None))
            .order_by(blended.desc(), Passage.id)
            .limit(max_results)
        )

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            _candidate_from_passage(passage, round(max(0.0, min(1.0, score)), 4))
            for passage, score in rows
        ]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_search_backend(
    override_type: str | None = None,
) -> ChromaSearchBackend | PgVectorSearchBackend:
    """
    Return the configured search backend.

    Reads `vectorstore_type` from settings:
    - "chroma" → ChromaSearchBackend (default, no extra infra)
    - "pgvector" → PgVectorSearchBackend
    """
    store_type = override_type or settings.vectorstore_type

    if store_type == "pgvector":
        logger.info("Using pgvector search backend")
        return PgVectorSearchBackend()

    logger.info("Using ChromaDB search backend")
    return ChromaSearchBackend()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _candidate_from_row(
    row_id: str,
    document: str,
    metadata: dict,
    similarity: float,
) -> SearchCandidate:
    raw_tags = metadata.get("tags") or ""
    tags = tuple(t.strip() for t in str(raw_tags).split(",") if t.strip())
    return SearchCandidate(
        candidate_id=str(row_id),
        text=document,
        similarity=similarity,
        tags=tags,
        stage=metadata.get("stage") or None,
        intent=metadata.get("intent") or None,
        authority=_optional_score(metadata.get("authority_score")),
        freshness=_optional_score(metadata.get("freshness_score")),
        metadata=dict(metadata),
    )


def _candidate_from_passage(passage: Any, similarity: float) -> SearchCandidate:
    metadata = dict(passage.metadata_ or {})
    metadata.update({
        "title": passage.title,
        "source_url": passage.source_url,
        "authority_level": passage.authority_level,
        "published_at": (
            passage.published_at.isoformat() if passage.published_at else None
        ),
    })
    return SearchCandidate(
        candidate_id=passage.id,
        text=passage.content,
        similarity=similarity,
        tags=tuple(passage.tags or ()),
        stage=passage.stage,
        intent=passage.intent,
        authority=_optional_score(metadata.get("authority_score")),
        freshness=_optional_score(metadata.get("freshness_score")),
        metadata=metadata,
    )


def _optional_score(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return None


def _keyword_terms(text: str) -> set[str]:
    return {
        token for token in _TOKEN_RE.findall(text.lower())
        if len(token) > 2 and token not in _STOPWORDS
    }


def _keyword_overlap(query_terms: set[str], document: str) -> float:
    """Share of query terms present in the document, in [0, 1]."""
    if not query_terms:
        return 0.0
    document_terms = set(_TOKEN_RE.findall(document.lower()))
    return len(query_terms & document_terms) / len(query_terms)


def _sanitise_chroma_metadata(metadata: dict) -> dict:
    """
    ChromaDB metadata values must be str, int, float or bool:
    - list/tuple → comma-separated string
    - None → empty string
    - anything else (dates, enums) → str()
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            sanitised[key] = ""
        elif isinstance(value, (list, tuple)):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
