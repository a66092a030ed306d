# =============================================================================
# Services Package — Retrieval Building Blocks
# =============================================================================
#   - vocabulary.py: intent patterns, frameworks, metrics, stages, scenarios
#   - classifier.py: intent + business context detection
#   - expander.py: framework/metric vocabulary expansion
#   - ranker.py: multi-signal scoring with per-intent presets
#   - citations.py: authority levels and recency bands
#   - cache.py: bounded LRU + TTL cache
#   - vectorstore.py: SearchBackend protocol (ChromaDB, pgvector)
#   - embedder.py: OpenAI embedding generation
#   - llm.py: LLM providers (Anthropic, OpenAI-compatible)
# =============================================================================
