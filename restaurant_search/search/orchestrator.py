"""
Per-request search pipeline.

Responsibilities:
- Build the search context and answer from the cache when possible
- Call the knowledge-search provider with a timeout and bounded retries
- Parse, validate and threshold the provider's records
- Route failures through the error classifier to a fallback strategy
- Own the primary cache, the short-TTL fallback lane and the sweeper task

Only successful live results with at least one accepted restaurant are
written to the primary cache. Synthetic fallback data goes to the
fallback lane, never to the primary cache.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from ..analytics.store import SearchEventStore
from ..provider.base import ProviderError, SearchProvider
from .cache import SearchCache, token_similarity
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig
from .context import (
    SearchContext,
    build_context,
    build_query_text,
    check_context,
    location_label,
    simplify_query,
)
from .errors import (
    ErrorDecision,
    ErrorKind,
    ErrorRateLimiter,
    FallbackStrategy,
    InvalidSearchContext,
    SearchError,
    SearchUnavailableError,
    handle_search_error,
    user_friendly_error,
    user_message_for,
)
from .fallback import TIER_CONFIDENCE, generate_fallback_records
from .models import (
    CachedResult,
    DataSource,
    ErrorInfo,
    ParseStats,
    Restaurant,
    SearchMetadata,
    SearchRequest,
    SearchResponse,
    ValidationStats,
)
from .parser import parse_restaurants
from .validator import validate_restaurants

logger = logging.getLogger(__name__)

STALE_CACHE_CONFIDENCE = 0.7
SIMPLIFIED_SEARCH_CONFIDENCE = 0.8
INCOMPLETE_CONTEXT_FACTOR = 0.8
KM_PER_MILE = 1.609344


def _average_quality(restaurants: list[Restaurant]) -> float:
    scores = [r.quality_score or 0 for r in restaurants]
    return sum(scores) / len(scores) if scores else 0.0


@dataclasses.dataclass
class _Processed:
    """Every accepted restaurant; ``shown`` is the slice a response returns."""

    restaurants: list[Restaurant]
    parse_stats: ParseStats
    validation_stats: ValidationStats
    max_results: int

    @property
    def shown(self) -> list[Restaurant]:
        return self.restaurants[: self.max_results]

    @property
    def average_quality(self) -> float:
        return _average_quality(self.shown)


def _timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


class SearchOrchestrator:
    def __init__(
        self,
        provider: SearchProvider,
        config: SearchConfig = DEFAULT_SEARCH_CONFIG,
        cache: SearchCache | None = None,
        fallback_cache: SearchCache | None = None,
        rate_limiter: ErrorRateLimiter | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        events: SearchEventStore | None = None,
    ):
        self.provider = provider
        self.config = config
        self.cache = cache if cache is not None else SearchCache(
            ttl_seconds=config.cache_ttl_seconds,
            max_size=config.cache_max_entries,
            version=config.cache_version,
            clock=clock,
        )
        self.fallback_cache = fallback_cache if fallback_cache is not None else SearchCache(
            ttl_seconds=config.fallback_cache_ttl_seconds,
            max_size=config.cache_max_entries,
            version=config.cache_version,
            clock=clock,
        )
        self.rate_limiter = rate_limiter if rate_limiter is not None else ErrorRateLimiter(
            max_errors=config.max_errors_per_hour, clock=clock,
        )
        self.events = events if events is not None else SearchEventStore()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._sweeper: asyncio.Task | None = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic cache sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            loop = asyncio.get_running_loop()
            self._sweeper = loop.create_task(self._sweep_forever())

    async def _sweep_forever(self) -> None:
        await asyncio.gather(
            self.cache.run_sweeper(self.config.sweep_interval_seconds),
            self.fallback_cache.run_sweeper(self.config.sweep_interval_seconds),
        )

    async def aclose(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()

    # ── Entry point ──────────────────────────────────────────────────────

    async def search(self, request: SearchRequest) -> SearchResponse:
        started = self._clock()
        context = build_context(request, self.config.max_results)
        check = check_context(context)
        if not check.resolvable:
            raise InvalidSearchContext(check.issues)
        if not check.complete:
            logger.info("Incomplete search context: %s", "; ".join(check.issues))

        key = context.cache_key
        payload = self.cache.get(key)
        if payload is not None:
            restaurants = payload.restaurants[: context.max_results]
            response = SearchResponse(
                restaurants=restaurants,
                total_results=len(restaurants),
                search_metadata=payload.search_metadata.model_copy(update={"total_found": len(restaurants)}),
                search_params=request,
                cached=True,
            )
            self._record(context, response, "cache", started)
            return response

        query_text = build_query_text(context)
        label = location_label(context.location)
        attempt = 0
        while True:
            attempt += 1
            try:
                records = await self._call_provider(query_text, label)
                break
            except Exception as exc:
                decision = handle_search_error(
                    exc, context, attempt, self.config.max_retries, self.rate_limiter,
                    enable_fallback=self.config.enable_fallback,
                )
                self._log_failure(exc, decision, attempt)
                if decision.should_retry:
                    await self._sleep(self.config.retry_delay_seconds)
                    continue
                return await self._fallback(decision, context, request, attempt, started, check.complete)

        processed = self._process(records, context, DataSource.web_search, self.config.acceptance_threshold)
        if not processed.restaurants:
            return self._handle_empty(context, request, attempt, started, check.complete)

        confidence = processed.average_quality / 100
        if not check.complete:
            confidence *= INCOMPLETE_CONTEXT_FACTOR
        metadata = self._metadata(
            context, processed,
            confidence=confidence,
            attempts=attempt,
            context_complete=check.complete,
            message=f"Found {len(processed.shown)} restaurants",
        )
        # The key ignores maxResults, so the full accepted set is cached.
        self.cache.set(
            key,
            CachedResult(restaurants=processed.restaurants, search_metadata=metadata),
            query=context.query,
            latitude=context.location.latitude,
            longitude=context.location.longitude,
            city=context.location.city,
            result_count=len(processed.restaurants),
        )
        response = SearchResponse(
            restaurants=processed.shown,
            total_results=len(processed.shown),
            search_metadata=metadata,
            search_params=request,
            cached=False,
        )
        self._record(context, response, "web_search", started, processed.average_quality)
        return response

    # ── Provider ─────────────────────────────────────────────────────────

    async def _call_provider(self, query_text: str, location_hint: str) -> list[Any]:
        try:
            records = await asyncio.wait_for(
                self.provider.search(query_text, location_hint),
                timeout=self.config.provider_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Provider request timeout after {self.config.provider_timeout_ms} ms", status=408,
            ) from exc
        if not isinstance(records, list):
            raise ProviderError("Provider returned an unexpected payload")
        return records

    def _log_failure(self, exc: Exception, decision: ErrorDecision, attempt: int) -> None:
        error = decision.search_error
        if decision.should_retry:
            logger.warning(
                "Provider attempt %d failed (%s: %s), retrying", attempt, error.kind.value, error.message,
            )
        elif error.kind == ErrorKind.unknown and not isinstance(exc, ProviderError):
            logger.warning(
                "Provider attempt %d failed unexpectedly, using %s fallback",
                attempt, decision.fallback_strategy.value, exc_info=exc,
            )
        else:
            logger.warning(
                "Provider attempt %d failed (%s: %s), using %s fallback",
                attempt, error.kind.value, error.message, decision.fallback_strategy.value,
            )

    # ── Parse + validate ─────────────────────────────────────────────────

    def _process(
        self,
        records: list[Any],
        context: SearchContext,
        source: DataSource,
        threshold: int,
    ) -> _Processed:
        parsed = parse_restaurants(
            records,
            context.location,
            context.query,
            cuisine_filter=context.cuisine,
            dietary_restrictions=context.dietary_restrictions,
            strict_cuisine=self.config.strict_cuisine,
            source=source,
        )
        report = validate_restaurants(parsed.valid, context.location, context.query, parsed.warnings)
        accepted = [
            v.restaurant.model_copy(update={"quality_score": v.validation.score})
            for v in report.valid
            if v.validation.score >= threshold
        ]
        return _Processed(
            restaurants=accepted,
            parse_stats=parsed.stats,
            validation_stats=report.statistics,
            max_results=context.max_results,
        )

    def _metadata(
        self,
        context: SearchContext,
        processed: _Processed | None,
        *,
        restaurants: list[Restaurant] | None = None,
        confidence: float,
        attempts: int,
        context_complete: bool,
        used_fallback: bool = False,
        data_source: str = DataSource.web_search.value,
        message: str | None = None,
        error_info: ErrorInfo | None = None,
    ) -> SearchMetadata:
        if restaurants is None:
            restaurants = processed.shown if processed else []
        return SearchMetadata(
            query=context.query or "restaurants",
            location=location_label(context.location),
            total_found=len(restaurants),
            search_timestamp=_timestamp(self._clock()),
            confidence=max(0.0, min(1.0, round(confidence, 3))),
            used_fallback=used_fallback,
            data_source=data_source,
            message=message,
            attempts=attempts,
            context_complete=context_complete,
            quality_stats=processed.parse_stats if processed else None,
            validation_stats=processed.validation_stats if processed else None,
            error_info=error_info,
        )

    # ── Fallback paths ───────────────────────────────────────────────────

    async def _fallback(
        self,
        decision: ErrorDecision,
        context: SearchContext,
        request: SearchRequest,
        attempt: int,
        started: float,
        complete: bool,
    ) -> SearchResponse:
        strategy = decision.fallback_strategy
        error = decision.search_error

        if strategy == FallbackStrategy.cache:
            response = self._serve_stale(decision, context, request, attempt, started, complete)
            if response is not None:
                return response
            strategy = FallbackStrategy.mock

        if strategy == FallbackStrategy.simplified_search:
            response, error, attempt = await self._simplified_search(
                decision, context, request, attempt, started, complete,
            )
            if response is not None:
                return response
            strategy = FallbackStrategy.mock

        if strategy == FallbackStrategy.mock:
            return self._serve_mock(error, context, request, attempt, started, complete)

        body = user_friendly_error(error.kind)
        self._record(context, None, "error", started, error_kind=error.kind.value)
        raise SearchUnavailableError(body, error)

    def _stale_payload(self, context: SearchContext) -> CachedResult | None:
        entry = self.cache.peek_stale(context.cache_key)
        if entry is not None:
            return entry.payload

        location = context.location
        if location.has_coordinates:
            nearby = self.cache.entries_near(
                location.latitude, location.longitude,
                radius_km=context.radius * KM_PER_MILE,
                include_expired=True,
            )
            if nearby:
                best = max(nearby, key=lambda e: token_similarity(context.query, e.query))
                return best.payload

        city = (location.city or "").strip().lower()
        if city:
            for match in self.cache.find_similar(context.query):
                if (match.entry.city or "").strip().lower() == city:
                    return match.entry.payload
        return None

    def _serve_stale(
        self,
        decision: ErrorDecision,
        context: SearchContext,
        request: SearchRequest,
        attempt: int,
        started: float,
        complete: bool,
    ) -> SearchResponse | None:
        payload = self._stale_payload(context)
        if payload is None or not payload.restaurants:
            return None
        restaurants = payload.restaurants[: context.max_results]
        metadata = payload.search_metadata.model_copy(update={
            "total_found": len(restaurants),
            "confidence": STALE_CACHE_CONFIDENCE,
            "used_fallback": True,
            "data_source": "cache",
            "message": decision.user_message,
            "attempts": attempt,
            "error_info": ErrorInfo(**decision.search_error.to_info(FallbackStrategy.cache)),
        })
        logger.info("Serving %d stale cached restaurants for %r", len(restaurants), context.query)
        response = SearchResponse(
            restaurants=restaurants,
            total_results=len(restaurants),
            search_metadata=metadata,
            search_params=request,
            cached=True,
        )
        self._record(context, response, "cache", started, error_kind=decision.search_error.kind.value)
        return response

    async def _simplified_search(
        self,
        decision: ErrorDecision,
        context: SearchContext,
        request: SearchRequest,
        attempt: int,
        started: float,
        complete: bool,
    ) -> tuple[SearchResponse | None, SearchError, int]:
        simplified = dataclasses.replace(
            context,
            query=simplify_query(context.query),
            dietary_restrictions=(),
            price_range=None,
        )
        attempt += 1
        try:
            records = await self._call_provider(build_query_text(simplified), location_label(context.location))
        except Exception as exc:
            retry = handle_search_error(
                exc, context, attempt, 0, self.rate_limiter,
                simplified_attempted=True, enable_fallback=self.config.enable_fallback,
            )
            self._log_failure(exc, retry, attempt)
            return None, retry.search_error, attempt

        processed = self._process(records, context, DataSource.web_search, self.config.acceptance_threshold)
        if not processed.restaurants:
            return None, decision.search_error, attempt

        metadata = self._metadata(
            context, processed,
            confidence=SIMPLIFIED_SEARCH_CONFIDENCE,
            attempts=attempt,
            context_complete=complete,
            used_fallback=True,
            message=decision.user_message,
            error_info=ErrorInfo(**decision.search_error.to_info(FallbackStrategy.simplified_search)),
        )
        response = SearchResponse(
            restaurants=processed.shown,
            total_results=len(processed.shown),
            search_metadata=metadata,
            search_params=request,
            cached=False,
        )
        self._record(
            context, response, "web_search", started, processed.average_quality,
            error_kind=decision.search_error.kind.value,
        )
        return response, decision.search_error, attempt

    def _serve_mock(
        self,
        error: SearchError,
        context: SearchContext,
        request: SearchRequest,
        attempt: int,
        started: float,
        complete: bool,
    ) -> SearchResponse:
        key = context.cache_key
        lane: CachedResult | None = self.fallback_cache.get(key)
        if lane is None:
            quality = self.config.fallback_quality
            records = generate_fallback_records(context, quality, self._rng)
            processed = self._process(records, context, DataSource.fallback, self.config.fallback_threshold)
            metadata = self._metadata(
                context, processed,
                confidence=TIER_CONFIDENCE.get(quality, TIER_CONFIDENCE["medium"]),
                attempts=attempt,
                context_complete=complete,
                used_fallback=True,
                data_source=DataSource.fallback.value,
            )
            lane = CachedResult(restaurants=processed.restaurants, search_metadata=metadata)
            self.fallback_cache.set(
                key, lane,
                query=context.query,
                latitude=context.location.latitude,
                longitude=context.location.longitude,
                city=context.location.city,
                result_count=len(processed.restaurants),
            )

        restaurants = lane.restaurants[: context.max_results]
        metadata = lane.search_metadata.model_copy(update={
            "total_found": len(restaurants),
            "search_timestamp": _timestamp(self._clock()),
            "attempts": attempt,
            "message": user_message_for(FallbackStrategy.mock, error.kind),
            "error_info": ErrorInfo(**error.to_info(FallbackStrategy.mock)),
        })
        logger.warning(
            "Returning %d fallback restaurants for %r (%s)", len(restaurants), context.query, error.code,
        )
        response = SearchResponse(
            restaurants=restaurants,
            total_results=len(restaurants),
            search_metadata=metadata,
            search_params=request,
            cached=False,
        )
        self._record(context, response, "fallback", started, error_kind=error.kind.value)
        return response

    def _handle_empty(
        self,
        context: SearchContext,
        request: SearchRequest,
        attempt: int,
        started: float,
        complete: bool,
    ) -> SearchResponse:
        logger.warning("No provider results passed quality validation for %r", context.query)
        if not self.config.enable_fallback:
            self._record(context, None, "error", started, error_kind="no_results")
            raise SearchUnavailableError(user_friendly_error("no_results"))
        error = SearchError(
            kind=ErrorKind.unknown,
            message="No results passed quality validation",
            code="LOW_QUALITY_RESULTS",
            retryable=False,
            fallback_available=True,
            context={"query": context.query, "attempt": attempt},
        )
        return self._serve_mock(error, context, request, attempt, started, complete)

    # ── Analytics ────────────────────────────────────────────────────────

    def _record(
        self,
        context: SearchContext,
        response: SearchResponse | None,
        source: str,
        started: float,
        average_quality: float | None = None,
        error_kind: str | None = None,
    ) -> None:
        results = response.total_results if response is not None else 0
        if average_quality is None and response is not None and response.restaurants:
            average_quality = _average_quality(response.restaurants)
        elapsed_ms = round((self._clock() - started) * 1000, 1)
        self.events.record_event("search", {
            "query": context.query,
            "location": location_label(context.location),
            "data_source": source,
            "response_time_ms": elapsed_ms,
            "results": results,
            "average_quality": round(average_quality, 1) if average_quality is not None else None,
            "used_fallback": bool(response and response.search_metadata.used_fallback),
            "cache_hit": source == "cache",
            "error_kind": error_kind,
        })
        logger.info(
            "Search %r in %s: %d results from %s in %.1f ms",
            context.query, location_label(context.location), results, source, elapsed_ms,
        )
