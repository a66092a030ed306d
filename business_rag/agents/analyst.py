# =============================================================================
# Analyst Agent — Optional Answer Composition
# =============================================================================
#
# Given the packaged passages and the classified intent, ask the configured
# LLM for a short answer that cites passages by their [n] labels.
#
# DESIGN DECISION: Intent-specific system prompts.
# A troubleshooting question wants a diagnosis first; a benchmarking
# question wants numbers and their sources; a learning question wants the
# concept before the tactics. One generic prompt flattens all of these.
#
# DESIGN DECISION: No passages, no LLM call.
# An empty result set returns a fixed message. Asking a model to answer
# from nothing only invites an ungrounded reply.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from business_rag.agents.packager import PackagedResult
from business_rag.models.domain import ClassifiedIntent, Intent
from business_rag.services.llm import LLMProvider

logger = logging.getLogger(__name__)

NO_PASSAGES_ANSWER = (
    "No relevant passages were found for this question. "
    "Try rephrasing it around a specific metric, framework or business stage."
)


@dataclass
class ComposedAnswer:
    answer: str
    model: str
    input_tokens: int
    output_tokens: int
    cited_labels: list[str]


# ---------------------------------------------------------------------------
# Intent-Specific System Prompts
# ---------------------------------------------------------------------------

_GROUNDING_RULES = (
    "Rules:\n"
    "- Use ONLY the provided passages\n"
    "- Cite passages with their labels, e.g. [1], [2]\n"
    "- If the passages do not answer the question, say so plainly\n"
    "- Never invent figures; copy numbers exactly as written"
)

SYSTEM_PROMPTS: dict[Intent, str] = {
    Intent.LEARNING: (
        "You are a business mentor. Explain the concept the founder is asking "
        "about, starting with the core idea and then one practical example.\n\n"
        + _GROUNDING_RULES
    ),
    Intent.IMPLEMENTATION: (
        "You are a business operator. Give the founder concrete, ordered steps "
        "to put this into practice, including any formula they need.\n\n"
        + _GROUNDING_RULES
    ),
    Intent.TROUBLESHOOTING: (
        "You are a business advisor diagnosing a problem. State the most "
        "likely cause first, then the fixes, most impactful first.\n\n"
        + _GROUNDING_RULES
    ),
    Intent.OPTIMIZATION: (
        "You are a growth advisor. Identify the levers that move the metric "
        "in question and how to test each one.\n\n"
        + _GROUNDING_RULES
    ),
    Intent.BENCHMARKING: (
        "You are a business analyst. Report the benchmark figures in the "
        "passages, with the source of each number.\n\n"
        + _GROUNDING_RULES
    ),
    Intent.PLANNING: (
        "You are a strategy advisor. Lay out a phased plan with the decision "
        "points the founder should expect.\n\n"
        + _GROUNDING_RULES
    ),
    Intent.RESEARCH: (
        "You are a business researcher. Summarise what the passages show, "
        "noting where they agree and where the evidence is thin.\n\n"
        + _GROUNDING_RULES
    ),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def compose_answer(
    question: str,
    passages: list[PackagedResult],
    intent: ClassifiedIntent,
    llm: LLMProvider,
) -> ComposedAnswer:
    """
    Compose a cited answer from packaged passages.

    Args:
        question: The caller's original question.
        passages: Packager output, already in rank order.
        intent: Classification, selects the system prompt.
        llm: Provider used for generation.
    """
    if not passages:
        return ComposedAnswer(
            answer=NO_PASSAGES_ANSWER, model="n/a",
            input_tokens=0, output_tokens=0, cited_labels=[],
        )

    user_message = (
        f"Question: {question}\n\n"
        f"Passages ({len(passages)}):\n\n{_format_context(passages)}"
    )
    logger.info(
        "Composing answer: intent=%s, passages=%d",
        intent.intent.value, len(passages),
    )

    response = await llm.complete(
        messages=[{"role": "user", "content": user_message}],
        system=SYSTEM_PROMPTS[intent.intent],
    )

    logger.info(
        "Answer composed: model=%s, tokens=%d+%d",
        response.model, response.input_tokens, response.output_tokens,
    )
    return ComposedAnswer(
        answer=response.content,
        model=response.model,
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
        cited_labels=[
            p.citation.label for p in passages if p.citation.label in response.content
        ],
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _format_context(passages: list[PackagedResult]) -> str:
    """
    Number passages with their citation labels, e.g.

        [1] Grand Slam Offers (primary_source):
        Stack the value so the offer feels like a no-brainer...
    """
    sections = []
    for passage in passages:
        citation = passage.citation
        source = citation.title or passage.candidate_id
        if citation.authority_level:
            source = f"{source} ({citation.authority_level})"
        sections.append(f"{citation.label} {source}:\n{passage.text}")
    return "\n\n---\n\n".join(sections)
