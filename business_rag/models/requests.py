# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data coming INTO the API. FastAPI uses these for body
# validation (automatic 422 on malformed JSON), OpenAPI docs at /docs and
# handler type hints.
#
# DESIGN DECISION: Transport validation here, business validation in the
# pipeline. Pydantic rejects wrong types and out-of-range numbers; the
# pipeline still runs its own checks (blank question after trimming,
# parameter consistency) so direct Python callers get the same errors.
# =============================================================================

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from business_rag.models.domain import Industry, LifecycleStage


class UserContext(BaseModel):
    """
    Optional caller profile. A declared stage wins over monthly revenue;
    unknown extra keys are accepted and ignored by the classifier.
    """

    stage: LifecycleStage | None = None
    monthly_revenue: float | None = Field(default=None, ge=0)
    industry: Industry | None = None

    model_config = ConfigDict(extra="allow")


class SearchWeights(BaseModel):
    """Relative ranking weights. Omitted fields keep the intent preset."""

    semantic: float | None = Field(default=None, ge=0)
    keyword: float | None = Field(default=None, ge=0)
    recency: float | None = Field(default=None, ge=0)
    authority: float | None = Field(default=None, ge=0)
    context: float | None = Field(default=None, ge=0)


class QueryRequest(BaseModel):
    """
    Request body for POST /query and POST /query/stream.

    Example:
        {
            "question": "How do I calculate LTV to CAC ratio for my SaaS startup",
            "user_context": {"monthly_revenue": 8000},
            "top_k": 5
        }
    """

    question: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="The business question to answer",
        examples=["How do I calculate LTV to CAC ratio for my SaaS startup"],
    )
    user_context: UserContext | None = Field(
        default=None,
        description="Optional profile: stage, monthly_revenue, industry.",
    )
    history: list[str] = Field(
        default_factory=list,
        max_length=20,
        description="Previous questions in this conversation, oldest first.",
    )
    max_results: int | None = Field(
        default=None, ge=1, le=50,
        description="Retrieval breadth. Defaults to settings.retrieval_max_results.",
    )
    similarity_threshold: float | None = Field(
        default=None, ge=0.0, le=1.0,
        description="Minimum backend similarity. Defaults to the intent preset.",
    )
    weights: SearchWeights | None = Field(
        default=None,
        description="Ranking weight overrides applied over the intent preset.",
    )
    top_k: int | None = Field(
        default=None, ge=1, le=20,
        description="Number of packaged results. Defaults to settings.results_top_k.",
    )
    compose_answer: bool = Field(
        default=False,
        description="Also compose an LLM answer citing the results as [1], [2], ...",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "question": "How do I calculate LTV to CAC ratio for my SaaS startup",
                    "user_context": {"monthly_revenue": 8000},
                },
                {
                    "question": "Why is my churn rate so high? Need help asap",
                    "history": ["How do I improve retention?"],
                    "compose_answer": True,
                },
            ]
        }
    )

    def user_context_dict(self) -> dict[str, Any] | None:
        if self.user_context is None:
            return None
        return self.user_context.model_dump(mode="json", exclude_none=True)

    def overrides(self) -> dict[str, Any]:
        """SearchParameters field overrides, omitting unset values."""
        overrides: dict[str, Any] = {}
        if self.max_results is not None:
            overrides["max_results"] = self.max_results
        if self.similarity_threshold is not None:
            overrides["similarity_threshold"] = self.similarity_threshold
        if self.weights is not None:
            for name, value in self.weights.model_dump(exclude_none=True).items():
                overrides[f"{name}_weight"] = value
        return overrides
