# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn business_rag.main:app --reload
#
# Nothing external is contacted at startup. The search backend, embedding
# client and LLM provider are all created on first use, so /health answers
# even when ChromaDB, PostgreSQL or the API keys are not configured.
# =============================================================================

import logging

from fastapi import FastAPI

from business_rag.api.query import router as query_router
from business_rag.config import settings
from business_rag.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Answers business questions by classifying them, searching a curated "
        "corpus with several retrieval strategies at once, and returning "
        "ranked passages with citations."
    ),
)

app.include_router(query_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(
        version=settings.app_version,
        service=settings.app_name,
        vectorstore=settings.vectorstore_type,
    )


logger.info(
    "%s v%s ready (vectorstore=%s)",
    settings.app_name, settings.app_version, settings.vectorstore_type,
)
