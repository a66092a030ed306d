# =============================================================================
# Models Package
# =============================================================================
#   - domain.py: enums and frozen dataclasses the pipeline passes around
#   - requests.py / responses.py: Pydantic V2 API schemas
#
# The API schemas are the public contract; the domain dataclasses are
# internal and can change without touching clients.
# =============================================================================
