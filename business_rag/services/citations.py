# =============================================================================
# Citation & Authority Source
# =============================================================================
#
# Given a candidate ID, return what is known about where the passage came
# from: title, URL, authority level, publication date. The ranker turns
# this into authority and freshness sub-scores; the packager turns it into
# display citations.
#
# SCORING TABLES:
#   authority level → score       publication age → freshness
#   primary_source        1.00    < 30 days   1.0
#   author_team           0.95    < 90 days   0.8
#   verified_case_study   0.90    < 180 days  0.6
#   expert_interpretation 0.80    < 365 days  0.4
#   community_validated   0.70    older       0.2
#   unverified            0.50
#
# DESIGN DECISION: Protocol with a synchronous lookup().
# Ranking is CPU-bound and runs without suspension points, so the source
# must answer from memory. InMemoryCitationSource.from_candidates() builds
# one from the metadata the search backend already returned, which is the
# default when the caller injects nothing.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from business_rag.models.domain import AuthorityLevel, SearchCandidate

logger = logging.getLogger(__name__)

AUTHORITY_SCORES: dict[AuthorityLevel, float] = {
    AuthorityLevel.PRIMARY_SOURCE: 1.0,
    AuthorityLevel.AUTHOR_TEAM: 0.95,
    AuthorityLevel.VERIFIED_CASE_STUDY: 0.9,
    AuthorityLevel.EXPERT_INTERPRETATION: 0.8,
    AuthorityLevel.COMMUNITY_VALIDATED: 0.7,
    AuthorityLevel.UNVERIFIED: 0.5,
}

# (max age in days, freshness score), checked in order
RECENCY_BANDS: tuple[tuple[int, float], ...] = (
    (30, 1.0),
    (90, 0.8),
    (180, 0.6),
    (365, 0.4),
)
STALE_FRESHNESS = 0.2


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CitationRecord:
    """Provenance of one corpus passage."""

    candidate_id: str
    title: str | None = None
    source_url: str | None = None
    authority_level: AuthorityLevel | None = None
    published_at: datetime | None = None

    def authority_score(self) -> float | None:
        if self.authority_level is None:
            return None
        return AUTHORITY_SCORES[self.authority_level]

    def freshness_score(self, now: datetime | None = None) -> float | None:
        if self.published_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        age_days = (now - self.published_at).total_seconds() / 86400
        return freshness_for_age(age_days)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class CitationSource(Protocol):
    def lookup(self, candidate_id: str) -> CitationRecord | None:
        """Return the citation for a candidate, or None if unknown."""
        ...


# ---------------------------------------------------------------------------
# Implementation: In-Memory
# ---------------------------------------------------------------------------


class InMemoryCitationSource:
    """Citation records held in a dict keyed by candidate ID."""

    def __init__(self, records: Iterable[CitationRecord] = ()) -> None:
        self._records: dict[str, CitationRecord] = {
            record.candidate_id: record for record in records
        }

    def lookup(self, candidate_id: str) -> CitationRecord | None:
        return self._records.get(candidate_id)

    def add(self, record: CitationRecord) -> None:
        self._records[record.candidate_id] = record

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def from_candidates(
        cls,
        candidates: Iterable[SearchCandidate],
    ) -> InMemoryCitationSource:
        """Build records from the metadata search backends attach."""
        return cls(record_from_metadata(c.candidate_id, c.metadata) for c in candidates)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def freshness_for_age(age_days: float) -> float:
    """Map a publication age in days onto the recency bands."""
    for max_age, score in RECENCY_BANDS:
        if age_days < max_age:
            return score
    return STALE_FRESHNESS


def record_from_metadata(candidate_id: str, metadata: dict[str, Any]) -> CitationRecord:
    return CitationRecord(
        candidate_id=candidate_id,
        title=metadata.get("title") or None,
        source_url=metadata.get("source_url") or None,
        authority_level=_parse_authority(metadata.get("authority_level")),
        published_at=parse_published_at(metadata.get("published_at")),
    )


def parse_published_at(value: Any) -> datetime | None:
    """Accept datetimes or ISO-8601 strings; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable published_at: %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_authority(value: Any) -> AuthorityLevel | None:
    if not value:
        return None
    try:
        return AuthorityLevel(str(value))
    except ValueError:
        logger.debug("Unknown authority level: %r", value)
        return None
