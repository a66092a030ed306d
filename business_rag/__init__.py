# =============================================================================
# Business Question Retrieval Service
# =============================================================================
# Answers natural-language business questions by retrieving and ranking
# passages from a curated corpus of business frameworks and metrics.
#
#   question → classify → expand → retrieve (concurrent) → rank → package
#
# Package structure:
#   business_rag/
#   ├── api/          → FastAPI route handlers (/query, /query/stream)
#   ├── agents/       → LangGraph pipeline, retrieval orchestrator,
#   │                    packager, optional answer composition
#   ├── db/           → Async SQLAlchemy engine and ORM models
#   ├── models/       → Domain dataclasses and Pydantic V2 API schemas
#   └── services/     → Classifier, expander, ranker, search backends,
#                        embeddings, citations, LLM providers
# =============================================================================
