# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────────┐   ┌──────────────────────────────┐
# │  passages                        │   │  retrieval_metrics           │
# ├──────────────────────────────────┤   ├──────────────────────────────┤
# │ id (PK, text)                    │   │ id (PK)                      │
# │ content (text)                   │   │ question, expanded_query     │
# │ embedding (vector(1536))         │   │ intent, confidence           │
# │ tags (text[])                    │   │ strategies_run / _failed     │
# │ stage, intent                    │   │ candidate_count, top_score   │
# │ authority_level, published_at    │   │ cache_hit, latency_ms        │
# │ title, source_url, metadata_     │   │ created_at                   │
# └──────────────────────────────────┘   └──────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. Passage IDs are strings. The same corpus can be seeded into ChromaDB
#    (which requires string IDs) and PostgreSQL without an ID mapping, and
#    the ranker breaks score ties on this ID.
#
# 2. `tags` is a PostgreSQL array holding framework and metric tags
#    ("core_four", "ltv_cac_ratio", "efficiency"). `stage` is one lifecycle
#    stage value or "all".
#
# 3. Authority level and publication date are first-class columns because
#    the citation source reads them for every ranked passage.
#
# 4. JSONB `metadata_` keeps anything else (author, section, chapter).
#    Trailing underscore avoids SQLAlchemy's reserved `.metadata`.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from business_rag.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Passage(Base):
    """A retrievable unit of the knowledge corpus."""

    __tablename__ = "passages"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Cosine similarity search column (see HNSW index below)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String(64)), nullable=False, default=list,
    )
    stage: Mapped[str | None] = mapped_column(String(32), nullable=True)
    intent: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Citation data
    authority_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    metadata_: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Passage(id={self.id!r}, stage={self.stage}, tags={self.tags})>"


# =============================================================================
# Database Indexes
# =============================================================================
#
# HNSW on the embedding column with vector_cosine_ops, matching the
# cosine_distance() ordering used by the pgvector search backend.
# GIN on tags for tag-filtered corpus maintenance queries.
# =============================================================================

passage_embedding_idx = Index(
    "idx_passage_embedding_hnsw",
    Passage.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)

passage_tags_idx = Index(
    "idx_passage_tags",
    Passage.tags,
    postgresql_using="gin",
)

passage_stage_idx = Index("idx_passage_stage", Passage.stage)


# =============================================================================
# Retrieval Metrics — Per-Query Telemetry
# =============================================================================
#
# One row per POST /query, written from a FastAPI background task. Lets
# operators watch intent mix, strategy failure rates, cache effectiveness
# and latency without log scraping.
# =============================================================================


class RetrievalMetric(Base):
    """Per-query retrieval telemetry."""

    __tablename__ = "retrieval_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    expanded_query: Mapped[str | None] = mapped_column(Text, nullable=True)

    intent: Mapped[str] = mapped_column(String(32), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)

    strategies_run: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    strategies_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    candidate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    top_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    cache_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<RetrievalMetric(id={self.id}, intent={self.intent}, "
            f"candidates={self.candidate_count}, latency={self.latency_ms}ms)>"
        )
