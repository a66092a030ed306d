#!/usr/bin/env python3
"""
Load a JSON passage corpus into the configured search backend.

Each passage is an object with `id` and `text`, plus optional `tags`,
`stage`, `intent`, `authority_level`, `published_at`, `title` and
`source_url`. Embeddings are generated with the configured embedding model
(OPENAI_API_KEY must be set).

Usage:
    uv run python scripts/seed_corpus.py
    uv run python scripts/seed_corpus.py data/corpus/sample_passages.json --backend pgvector
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

from business_rag.config import settings
from business_rag.db.engine import async_engine, async_session_factory
from business_rag.db.models import Base, Passage
from business_rag.services.citations import parse_published_at
from business_rag.services.embedder import embed_batch
from business_rag.services.vectorstore import ChromaSearchBackend

logger = logging.getLogger("seed_corpus")

DEFAULT_CORPUS = Path(__file__).resolve().parent.parent / "data" / "corpus" / "sample_passages.json"

_PASSAGE_COLUMNS = (
    "tags", "stage", "intent", "authority_level", "title", "source_url",
)


def load_passages(path: Path) -> list[dict]:
    passages = json.loads(path.read_text(encoding="utf-8"))
    for passage in passages:
        if not passage.get("id") or not passage.get("text"):
            raise ValueError(f"Passage without id/text in {path}: {passage!r}")
    return passages


def seed_chroma(passages: list[dict]) -> None:
    if not settings.chroma_url and not settings.chroma_persist_dir:
        logger.warning(
            "Neither CHROMA_URL nor CHROMA_PERSIST_DIR is set; "
            "passages are stored in memory and lost when this script exits"
        )
    backend = ChromaSearchBackend()
    backend.add_passages(passages)


async def seed_pgvector(passages: list[dict]) -> None:
    embeddings = embed_batch([p["text"] for p in passages])

    async with async_engine.begin() as conn:
        await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS vector")
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        for passage, embedding in zip(passages, embeddings):
            extra = {
                key: value for key, value in passage.items()
                if key not in ("id", "text", "published_at", *_PASSAGE_COLUMNS)
            }
            await session.merge(Passage(
                id=str(passage["id"]),
                content=passage["text"],
                embedding=embedding,
                tags=list(passage.get("tags") or []),
                stage=passage.get("stage"),
                intent=passage.get("intent"),
                authority_level=passage.get("authority_level"),
                published_at=parse_published_at(passage.get("published_at")),
                title=passage.get("title"),
                source_url=passage.get("source_url"),
                metadata_=extra,
            ))
        await session.commit()
    await async_engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("corpus", nargs="?", type=Path, default=DEFAULT_CORPUS)
    parser.add_argument(
        "--backend", choices=("chroma", "pgvector"), default=settings.vectorstore_type,
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    passages = load_passages(args.corpus)
    logger.info("Seeding %d passages into %s", len(passages), args.backend)

    if args.backend == "pgvector":
        asyncio.run(seed_pgvector(passages))
    else:
        seed_chroma(passages)

    logger.info("Done")


if __name__ == "__main__":
    main()
