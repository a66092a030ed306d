# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine, session management and ORM models.
#
# Key exports:
#   - async_session_factory: sessions for the pgvector backend and telemetry
#   - Passage: corpus passage with its embedding (pgvector)
#   - RetrievalMetric: per-query retrieval telemetry
# =============================================================================
