"""
Failure classification and fallback selection for provider calls.

Responsibilities:
- Map an opaque provider failure onto a small error taxonomy by matching
  its status and message text, never its exception type
- Decide whether a failed attempt is retried, honouring a per-origin
  error-rate limiter
- Pick the fallback strategy when it is not
- Hold the user-facing message catalogue for degraded and failed searches
"""
from __future__ import annotations

import re
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .context import SearchContext, location_label


class ErrorKind(str, Enum):
    network = "network"
    api_limit = "api_limit"
    validation = "validation"
    timeout = "timeout"
    unknown = "unknown"


class FallbackStrategy(str, Enum):
    none = "none"
    cache = "cache"
    simplified_search = "simplified_search"
    mock = "mock"


RETRYABLE_KINDS = frozenset({ErrorKind.network, ErrorKind.timeout, ErrorKind.unknown})

ERROR_CODES: dict[ErrorKind, str] = {
    ErrorKind.network: "NETWORK_ERROR",
    ErrorKind.api_limit: "RATE_LIMIT_ERROR",
    ErrorKind.validation: "VALIDATION_ERROR",
    ErrorKind.timeout: "TIMEOUT_ERROR",
    ErrorKind.unknown: "UNKNOWN_ERROR",
}

# Checked in order; the first pattern that matches wins.
_MESSAGE_PATTERNS: tuple[tuple[ErrorKind, re.Pattern[str]], ...] = (
    (ErrorKind.network, re.compile(r"\b(network|fetch|connection|connect|dns|unreachable)\b", re.IGNORECASE)),
    (ErrorKind.api_limit, re.compile(r"\b(rate[ _-]?limit\w*|quota|429|too many requests)\b", re.IGNORECASE)),
    (ErrorKind.validation, re.compile(r"\b(validation|invalid|400|bad request)\b", re.IGNORECASE)),
    (ErrorKind.timeout, re.compile(r"\b(timeout|timed out|aborted|abort)\b", re.IGNORECASE)),
)


class InvalidSearchContext(ValueError):
    """The request cannot be searched: no coordinates and no place name."""

    def __init__(self, issues: list[str]):
        super().__init__("; ".join(issues) or "Invalid search context")
        self.issues = issues


class SearchUnavailableError(Exception):
    """Terminal failure with no fallback; ``body`` is the client-facing error."""

    def __init__(self, body: dict[str, Any], search_error: "SearchError | None" = None):
        super().__init__(body.get("error", "Search unavailable"))
        self.body = body
        self.search_error = search_error


@dataclass
class SearchError:
    kind: ErrorKind
    message: str
    code: str
    retryable: bool
    fallback_available: bool
    context: dict[str, Any] = field(default_factory=dict)

    def to_info(self, strategy: FallbackStrategy) -> dict[str, str]:
        return {
            "type": self.kind.value,
            "code": self.code,
            "message": self.message,
            "fallbackStrategy": strategy.value,
        }


@dataclass
class ErrorDecision:
    search_error: SearchError
    should_retry: bool
    fallback_strategy: FallbackStrategy
    user_message: str


# ── Classification ───────────────────────────────────────────────────────


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _kind_from_status(status: int) -> ErrorKind | None:
    if status == 429:
        return ErrorKind.api_limit
    if status in (408, 504):
        return ErrorKind.timeout
    if 400 <= status < 500:
        return ErrorKind.validation
    return None


def classify_error(
    exc: BaseException,
    context: SearchContext | None = None,
    attempt: int = 1,
    fallback_available: bool = True,
) -> SearchError:
    """Classify *exc* by its status code first, then by its message text."""
    message = str(exc) or exc.__class__.__name__
    kind = None
    status = _status_of(exc)
    if status is not None:
        kind = _kind_from_status(status)
    if kind is None:
        kind = ErrorKind.unknown
        for candidate, pattern in _MESSAGE_PATTERNS:
            if pattern.search(message):
                kind = candidate
                break

    payload: dict[str, Any] = {"attempt": attempt}
    if context is not None:
        payload["query"] = context.query
        payload["location"] = location_label(context.location)
    if status is not None:
        payload["status"] = status

    return SearchError(
        kind=kind,
        message=message,
        code=ERROR_CODES[kind],
        retryable=kind in RETRYABLE_KINDS,
        fallback_available=fallback_available,
        context=payload,
    )


# ── Error-rate limiting ──────────────────────────────────────────────────


class ErrorRateLimiter:
    """
    Sliding one-hour window of provider failures per search origin.

    Origins are keyed coarsely by lower-cased city (or the location label
    when there is none). Once an origin records more than ``max_errors``
    failures inside the window, retries for it are suppressed. Origins
    whose window empties are forgotten.
    """

    def __init__(
        self,
        max_errors: int = 10,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_errors = max_errors
        self.window_seconds = window_seconds
        self._clock = clock
        self._errors: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def origin_key(context: SearchContext) -> str:
        city = (context.location.city or "").strip().lower()
        return city or location_label(context.location).lower()

    def _prune(self, key: str, now: float) -> deque[float]:
        stamps = self._errors.get(key)
        if stamps is None:
            return deque()
        cutoff = now - self.window_seconds
        while stamps and stamps[0] <= cutoff:
            stamps.popleft()
        if not stamps:
            del self._errors[key]
        return stamps

    def record(self, context: SearchContext) -> int:
        """Record one failure; returns the origin's count inside the window."""
        key = self.origin_key(context)
        with self._lock:
            now = self._clock()
            stamps = self._prune(key, now)
            stamps.append(now)
            self._errors[key] = stamps
            return len(stamps)

    def is_limited(self, context: SearchContext) -> bool:
        key = self.origin_key(context)
        with self._lock:
            stamps = self._prune(key, self._clock())
            return len(stamps) > self.max_errors

    def reset(self) -> None:
        with self._lock:
            self._errors.clear()


# ── Decision ─────────────────────────────────────────────────────────────


def select_fallback_strategy(
    search_error: SearchError,
    attempt: int = 1,
    simplified_attempted: bool = False,
    enable_fallback: bool = True,
) -> FallbackStrategy:
    """
    Pick the fallback for a failure that will not be retried.

    A network failure on the first attempt gets one simplified search.
    After retries have been spent, network failures go to mock data.
    """
    if not enable_fallback:
        return FallbackStrategy.none
    if search_error.kind == ErrorKind.api_limit:
        return FallbackStrategy.cache
    if search_error.kind == ErrorKind.network and attempt == 1 and not simplified_attempted:
        return FallbackStrategy.simplified_search
    return FallbackStrategy.mock


def handle_search_error(
    exc: BaseException,
    context: SearchContext,
    attempt: int,
    max_retries: int,
    rate_limiter: ErrorRateLimiter | None = None,
    *,
    simplified_attempted: bool = False,
    enable_fallback: bool = True,
) -> ErrorDecision:
    """
    Classify a failed provider call and decide what happens next.

    ``attempt`` is 1-based. A failure is retried only while
    ``attempt <= max_retries``, its kind is retryable and the origin has
    not tripped the error-rate limiter.
    """
    search_error = classify_error(exc, context, attempt, fallback_available=enable_fallback)
    limited = False
    if rate_limiter is not None:
        rate_limiter.record(context)
        limited = rate_limiter.is_limited(context)

    should_retry = search_error.retryable and attempt <= max_retries and not limited
    if should_retry:
        strategy = FallbackStrategy.none
    else:
        strategy = select_fallback_strategy(search_error, attempt, simplified_attempted, enable_fallback)
    return ErrorDecision(
        search_error=search_error,
        should_retry=should_retry,
        fallback_strategy=strategy,
        user_message=user_message_for(strategy, search_error.kind),
    )


# ── User-facing messages ─────────────────────────────────────────────────

_ERROR_CATALOGUE: dict[str, dict[str, Any]] = {
    "network": {
        "error": "Unable to connect to search services",
        "suggestions": [
            "Check your internet connection",
            "Try again in a few moments",
            "Try searching for a different location",
        ],
        "canRetry": True,
    },
    "api_limit": {
        "error": "Search service is temporarily busy",
        "suggestions": [
            "Please wait a moment before searching again",
            "Try a more specific search to get faster results",
            "Browse recently searched restaurants",
        ],
        "canRetry": True,
    },
    "validation": {
        "error": "The search request could not be processed",
        "suggestions": [
            "Check the city name or address spelling",
            "Try using a nearby major city",
            "Simplify your search terms",
        ],
        "canRetry": False,
    },
    "no_results": {
        "error": "No restaurants found matching your criteria",
        "suggestions": [
            "Try expanding your search radius",
            "Remove some filters",
            "Try different cuisine types",
        ],
        "canRetry": True,
    },
    "timeout": {
        "error": "Search is taking longer than expected",
        "suggestions": [
            "Try a simpler search query",
            "Check your internet connection",
            "Try again in a moment",
        ],
        "canRetry": True,
    },
    "unknown": {
        "error": "Something went wrong with your search",
        "suggestions": [
            "Try refreshing the page",
            "Simplify your search terms",
            "Try again in a few minutes",
        ],
        "canRetry": True,
    },
}


def user_friendly_error(kind: ErrorKind | str) -> dict[str, Any]:
    """Client-facing ``{error, suggestions, canRetry}`` body for *kind*."""
    key = kind.value if isinstance(kind, ErrorKind) else kind
    entry = _ERROR_CATALOGUE.get(key, _ERROR_CATALOGUE["unknown"])
    return {
        "error": entry["error"],
        "suggestions": list(entry["suggestions"]),
        "canRetry": entry["canRetry"],
    }


def user_message_for(strategy: FallbackStrategy, kind: ErrorKind) -> str:
    if strategy == FallbackStrategy.cache:
        return "Showing recently found results while the search service is busy."
    if strategy == FallbackStrategy.simplified_search:
        return "Search was simplified due to connection issues. Results may be less specific."
    if strategy == FallbackStrategy.mock:
        if kind == ErrorKind.api_limit:
            return "Search service is busy. Showing sample restaurants in your area."
        return "Unable to search live data. Showing sample restaurants in your area."
    return user_friendly_error(kind)["error"]
