"""
Clearance search orchestration.

Fetches candidate marks for a query, runs them through the match pipeline,
optionally verifies the strongest conflicts against TSDR, and caches the
result. The cache and the verifier are both optional; a search returns the
same conflicts with or without them.
"""

import asyncio
import inspect
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Union, runtime_checkable

from pydantic import ValidationError

from clearance_core.errors import SearchFailed
from clearance_core.models import (
    Conflict,
    MarkRecord,
    SearchMetadata,
    SearchQuery,
    SearchResult,
    VerificationStatus,
)
from clearance_core.pipeline import MatchPipeline, summarize
from clearance_service.cache import Cache
from clearance_service.config import Settings
from clearance_service.logger import debug, exception, info, warning
from clearance_service.verification import TsdrVerificationClient, VerificationSource

CandidateResult = Union[List[MarkRecord], Awaitable[List[MarkRecord]]]


@runtime_checkable
class CandidateSource(Protocol):
    """
    Supplier of candidate marks for a query.

    ``search_candidates`` may be a plain or an ``async`` method.
    """

    name: str

    def search_candidates(
        self, normalized_text: str, soundex_code: str, classes: FrozenSet[int]
    ) -> CandidateResult:
        ...


class StaticCandidateSource:
    """Serves a fixed in-memory list of records, whatever the query."""

    name = "static"

    def __init__(self, records: Sequence[Union[MarkRecord, dict]] = ()):
        self.records = list(records)

    def search_candidates(
        self, normalized_text: str, soundex_code: str, classes: FrozenSet[int]
    ) -> List[Union[MarkRecord, dict]]:
        return list(self.records)


class ClearanceSearchService:
    """
    Entry point for clearance searches.

    Usage:
        service = ClearanceSearchService(StaticCandidateSource(records), cache=InMemoryCache())
        result = await service.search(SearchQuery(mark_text="NIKE", classes={25}))
    """

    def __init__(
        self,
        source: CandidateSource,
        settings: Optional[Settings] = None,
        cache: Optional[Cache] = None,
        verifier: Optional[VerificationSource] = None,
        verifier_factory: Optional[Callable[[Settings], TsdrVerificationClient]] = None,
    ):
        """
        Args:
            source: Where candidate marks come from.
            settings: Tunables; defaults to :class:`Settings` defaults.
            cache: Optional result cache.
            verifier: Verification source shared across searches.
            verifier_factory: Builds a short-lived TSDR client per search when no
                ``verifier`` is given. Defaults to :class:`TsdrVerificationClient`
                configured from ``settings``.
        """
        self.source = source
        self.settings = settings or Settings()
        self.cache = cache
        self.verifier = verifier
        self.verifier_factory = verifier_factory or _default_verifier
        self.pipeline = MatchPipeline(
            min_score=self.settings.min_score,
            max_results=self.settings.max_results,
            workers=self.settings.pipeline_workers,
        )

    async def search(
        self,
        query: SearchQuery,
        include_verification: bool = True,
        force_refresh: bool = False,
        max_results: Optional[int] = None,
    ) -> SearchResult:
        """
        Run a clearance search.

        Args:
            query: Validated query. Build it with ``SearchQuery(...)``, which
                raises ``InvalidQuery`` for bad input.
            include_verification: Check the top conflicts against TSDR.
            force_refresh: Skip the cache lookup (the fresh result is still stored).
            max_results: Cap on returned conflicts; defaults to the configured cap.

        Returns:
            SearchResult: Ordered conflicts, summary and metadata.

        Raises:
            SearchFailed: If the candidate source fails.
        """
        started = time.perf_counter()
        # Logo similarity depends on bytes that are not part of the key
        use_cache = self.cache is not None and query.logo_image is None

        if use_cache and not force_refresh:
            cached = await self._read_cache(query.cache_key)
            if cached is not None:
                info("Cache hit", key=query.cache_key)
                return cached.model_copy(
                    update={"metadata": cached.metadata.model_copy(update={"cached": True})}
                )

        candidates = await self._fetch_candidates(query)
        ranked = await asyncio.to_thread(self.pipeline.rank, query, candidates)
        conflicts = await asyncio.to_thread(self.pipeline.select, query, ranked, max_results)

        if include_verification and conflicts and self.settings.verify_top_k > 0:
            conflicts = await self._verify(conflicts)

        # The summary covers every conflict above the floor, not just the returned ones
        summary = summarize(conflicts + ranked[len(conflicts):])

        result = SearchResult(
            query_text=query.mark_text,
            classes=sorted(query.classes),
            conflicts=conflicts,
            summary=summary,
            metadata=SearchMetadata(
                searched_at=datetime.now(timezone.utc),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                sources=[getattr(self.source, "name", type(self.source).__name__)],
                cached=False,
            ),
        )

        info(
            "Search completed",
            query=query.mark_text,
            classes=result.classes,
            candidates=len(candidates),
            conflicts=result.summary.total,
            returned=len(result.conflicts),
            overall_risk=result.summary.overall_risk.value,
            duration_ms=result.metadata.duration_ms,
        )

        if use_cache:
            await self._write_cache(query.cache_key, result)
        return result

    async def _fetch_candidates(self, query: SearchQuery) -> List[Union[MarkRecord, dict]]:
        try:
            found = self.source.search_candidates(query.normalized_text, query.soundex_code, query.classes)
            if inspect.isawaitable(found):
                found = await found
        except Exception as e:
            exception("Candidate source failed", exc=e, query=query.mark_text)
            raise SearchFailed(
                f"Candidate source failed: {e}",
                context={"source": getattr(self.source, "name", type(self.source).__name__)},
            ) from e
        return list(found or [])

    async def _verify(self, conflicts: List[Conflict]) -> List[Conflict]:
        top = conflicts[: self.settings.verify_top_k]
        serial_ids: Iterable[str] = [c.record.serial_id for c in top]

        try:
            if self.verifier is not None:
                statuses = await self.verifier.verify(serial_ids)
            else:
                async with self.verifier_factory(self.settings) as client:
                    statuses = await client.verify(serial_ids)
        except Exception as e:
            # Verification is advisory; the conflicts stand unverified
            warning(
                "Status verification failed",
                error_type=type(e).__name__,
                reason=str(e),
                requested=len(top),
            )
            return conflicts

        return [_apply_status(c, statuses) for c in top] + conflicts[len(top):]

    async def _read_cache(self, key: str) -> Optional[SearchResult]:
        try:
            raw = await self.cache.get(key)
        except Exception as e:
            warning("Cache read failed, searching without cache", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return SearchResult.model_validate_json(raw)
        except ValidationError as e:
            warning("Discarding unreadable cache entry", key=key, errors=e.error_count())
            return None

    async def _write_cache(self, key: str, result: SearchResult) -> None:
        try:
            await self.cache.set(key, result.model_dump_json().encode("utf-8"), self.settings.cache_ttl_seconds)
        except Exception as e:
            warning("Cache write failed", key=key, error=str(e))
        else:
            debug("Cached search result", key=key, ttl_seconds=self.settings.cache_ttl_seconds)


def _apply_status(conflict: Conflict, statuses: Dict[str, VerificationStatus]) -> Conflict:
    status = statuses.get(conflict.record.serial_id)
    return conflict.with_verification(status) if status is not None else conflict


def _default_verifier(settings: Settings) -> TsdrVerificationClient:
    return TsdrVerificationClient(
        base_url=settings.tsdr_base_url,
        concurrency=settings.verification_concurrency,
        timeout_seconds=settings.verification_timeout_seconds,
    )
