# =============================================================================
# Agents Package — Pipeline Orchestration
# =============================================================================
#   - pipeline.py: LangGraph graph (classify → expand → retrieve → rank →
#     package → compose) and the run_pipeline() entry point
#   - retrieval.py: concurrent multi-strategy search with merge and cache
#   - packager.py: citations, excerpts and implementation guidance
#   - analyst.py: optional LLM answer citing passages as [1], [2], ...
#   - progress.py: stage events for streaming observers
# =============================================================================
