# =============================================================================
# Embedding Generator — OpenAI-Compatible Embeddings
# =============================================================================
#
# Turns passage and query text into fixed-dimension vectors for the search
# backends. The ranking core never calls this directly; only backends do.
#
# DESIGN DECISION: OpenAI SDK with configurable base_url.
# Any provider exposing the OpenAI embeddings endpoint works unchanged.
#
# DESIGN DECISION: Sync client, called through asyncio.to_thread() by the
# backends. Seeding a corpus is a batch job; queries embed one string.
#
# DESIGN DECISION: No retry logic here. Retries belong to the backend
# collaborator's deployment (or the OpenAI client's own max_retries),
# never to the retrieval pipeline.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

from openai import OpenAI

from business_rag.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# Lazy so that importing the backends (e.g. in tests with injected
# embedding functions) never requires an API key.
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url
        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
) -> list[list[float]]:
    """
    Embed passages in sub-batches, preserving input order.

    Raises:
        ValueError: If no embedding API key is configured.
        openai.APIError: If the provider call fails.
    """
    if not texts:
        return []

    client = _get_client()
    size = batch_size or settings.embedding_batch_size
    vectors: list[list[float]] = [[] for _ in texts]

    for start in range(0, len(texts), size):
        batch = list(texts[start : start + size])
        response = client.embeddings.create(
            model=settings.embedding_model,
            input=batch,
            dimensions=settings.embedding_dimensions,
        )
        # Place by response index so order never depends on the provider
        for item in response.data:
            vectors[start + item.index] = item.embedding

        logger.debug(
            "Embedded %d–%d of %d texts (%d prompt tokens)",
            start + 1, start + len(batch), len(texts),
            response.usage.prompt_tokens if response.usage else 0,
        )

    return vectors


def embed_query(text: str) -> list[float]:
    """Embed a single query string."""
    return embed_batch([text], batch_size=1)[0]
