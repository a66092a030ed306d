# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - query.py: POST /query and POST /query/stream (NDJSON progress)
# =============================================================================
