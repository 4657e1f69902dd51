"""
Match pipeline: score, classify, filter, order and truncate candidate marks.

Given a validated query and a list of candidate records, every candidate is
scored (text similarity), classified (risk cascade), dropped below the
relevance floor, and the survivors are ordered by risk and similarity.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from clearance_core.errors import UnsupportedImage
from clearance_core.image_hash import compare_fingerprints, fingerprint_image
from clearance_core.models import (
    Conflict,
    ImageFingerprint,
    MarkRecord,
    RiskInput,
    SearchQuery,
    SearchSummary,
    build_cache_key,
)
from clearance_core.risk import assess_risk, has_class_overlap
from clearance_core.similarity import calculate_similarity

logger = logging.getLogger(__name__)

MIN_SIMILARITY_SCORE = 40
DEFAULT_MAX_RESULTS = 50

CandidateLike = Union[MarkRecord, Mapping[str, Any]]

__all__ = [
    "DEFAULT_MAX_RESULTS",
    "MIN_SIMILARITY_SCORE",
    "MatchPipeline",
    "build_cache_key",
    "score_candidate",
    "sort_conflicts",
    "summarize",
]


def score_candidate(query: SearchQuery, record: MarkRecord) -> Conflict:
    """Score and classify a single candidate against the query."""
    breakdown = calculate_similarity(query.mark_text, record.text or "")
    risk = assess_risk(
        RiskInput(
            breakdown=breakdown,
            same_class=has_class_overlap(query.classes, record.classes),
            status=record.status,
        )
    )
    return Conflict(record=record, breakdown=breakdown, risk=risk)


def sort_conflicts(conflicts: Iterable[Conflict]) -> List[Conflict]:
    """High risk first, then by overall similarity; ties keep their input order."""
    return sorted(conflicts, key=lambda c: (-c.risk.level.rank, -c.breakdown.overall))


def summarize(conflicts: List[Conflict]) -> SearchSummary:
    return SearchSummary.from_conflicts(conflicts)


def _coerce(candidate: CandidateLike) -> Optional[MarkRecord]:
    if isinstance(candidate, MarkRecord):
        record = candidate
    else:
        try:
            record = MarkRecord.model_validate(candidate)
        except ValidationError as e:
            logger.debug("Skipping malformed candidate", extra={"errors": e.error_count()})
            return None

    if not record.text or not record.text.strip():
        logger.debug("Skipping candidate without mark text", extra={"serial_id": record.serial_id})
        return None
    return record


class MatchPipeline:
    """
    Scores a query against candidate marks and returns the ranked conflicts.

    Usage:
        pipeline = MatchPipeline(workers=4)
        conflicts = pipeline.run(SearchQuery(mark_text="NIKE", classes={25}), records)
    """

    def __init__(
        self,
        min_score: int = MIN_SIMILARITY_SCORE,
        max_results: int = DEFAULT_MAX_RESULTS,
        workers: int = 1,
    ):
        """
        Args:
            min_score: Relevance floor; candidates with a lower overall score are dropped.
            max_results: Default cap on the number of conflicts returned.
            workers: Thread pool size for scoring; 1 scores in the calling thread.
        """
        self.min_score = min_score
        self.max_results = max_results
        self.workers = max(1, workers)

    def score_all(self, query: SearchQuery, candidates: Iterable[CandidateLike]) -> List[Conflict]:
        """Score every well-formed candidate, preserving input order (no filtering)."""
        records = [r for r in (_coerce(c) for c in candidates) if r is not None]
        if not records:
            return []

        if self.workers == 1 or len(records) == 1:
            return [score_candidate(query, r) for r in records]

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(lambda r: score_candidate(query, r), records))

    def rank(self, query: SearchQuery, candidates: Iterable[CandidateLike]) -> List[Conflict]:
        """
        Every conflict at or above the floor, highest risk first, untruncated.

        The summary of a search describes this full list; only the returned
        conflicts are capped.
        """
        scored = self.score_all(query, candidates)
        relevant = sort_conflicts(c for c in scored if c.breakdown.overall >= self.min_score)
        logger.debug("Pipeline ranked candidates", extra={"scored": len(scored), "relevant": len(relevant)})
        return relevant

    def select(
        self,
        query: SearchQuery,
        ranked: List[Conflict],
        max_results: Optional[int] = None,
    ) -> List[Conflict]:
        """Truncate ranked conflicts to the result cap and attach logo similarity."""
        limit = self.max_results if max_results is None else max_results
        conflicts = ranked[:limit]
        if query.logo_image is not None and conflicts:
            conflicts = self._attach_logo_similarity(query, conflicts)
        return conflicts

    def run(
        self,
        query: SearchQuery,
        candidates: Iterable[CandidateLike],
        max_results: Optional[int] = None,
    ) -> List[Conflict]:
        """
        Produce the ordered conflict list for a query.

        Args:
            query: The validated search query.
            candidates: Records (or raw mappings) to compare; malformed ones are skipped.
            max_results: Cap on returned conflicts; defaults to the pipeline's cap.

        Returns:
            List[Conflict]: Conflicts at or above the floor, highest risk first.
            An empty list is a valid, low-risk outcome.
        """
        return self.select(query, self.rank(query, candidates), max_results)

    def _attach_logo_similarity(self, query: SearchQuery, conflicts: List[Conflict]) -> List[Conflict]:
        try:
            query_fingerprint = fingerprint_image(query.logo_image)
        except UnsupportedImage as e:
            logger.warning("Skipping logo comparison, query logo unusable: %s", e.message)
            return conflicts

        return [self._with_logo(query_fingerprint, c) for c in conflicts]

    @staticmethod
    def _with_logo(query_fingerprint: ImageFingerprint, conflict: Conflict) -> Conflict:
        logo = conflict.record.logo_image
        if logo is None:
            return conflict
        try:
            similarity = compare_fingerprints(query_fingerprint, fingerprint_image(logo))
        except UnsupportedImage as e:
            logger.debug(
                "Candidate logo unusable",
                extra={"serial_id": conflict.record.serial_id, "reason": e.message},
            )
            return conflict
        return conflict.model_copy(update={"logo_similarity": similarity})
