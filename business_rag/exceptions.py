# =============================================================================
# Pipeline Exceptions
# =============================================================================
#
# Only two conditions escape the retrieval pipeline. Everything else
# (ambiguous questions, a single failing retrieval strategy, an empty
# merge) is absorbed and turned into valid, possibly empty, output.
#
#   InvalidQuery          → malformed input, rejected before classification
#   RetrievalUnavailable  → every retrieval strategy failed or timed out
#
# The API layer maps these to 422 and 503 respectively.
# =============================================================================

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors the pipeline reports to its caller."""


class InvalidQuery(PipelineError):
    """The question or its accompanying context cannot be processed."""


class RetrievalUnavailable(PipelineError):
    """No retrieval strategy produced a result set."""

    def __init__(self, message: str, failures: dict[str, str] | None = None):
        super().__init__(message)
        # strategy name → error description
        self.failures = failures or {}
