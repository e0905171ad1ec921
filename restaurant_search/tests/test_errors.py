from __future__ import annotations

import pytest

from restaurant_search.provider.base import ProviderError
from restaurant_search.search.context import build_context
from restaurant_search.search.errors import (
    ErrorKind,
    ErrorRateLimiter,
    FallbackStrategy,
    classify_error,
    handle_search_error,
    select_fallback_strategy,
    user_friendly_error,
)
from restaurant_search.search.models import SearchRequest

CONTEXT = build_context(SearchRequest(
    query="sushi",
    location={"latitude": 35.6762, "longitude": 139.6503, "city": "Tokyo"},
))


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.mark.parametrize(
    "exc, kind",
    [
        (Exception("Network request failed"), ErrorKind.network),
        (ConnectionError("connection reset by peer"), ErrorKind.network),
        (Exception("fetch failed"), ErrorKind.network),
        (Exception("Rate limit exceeded for model"), ErrorKind.api_limit),
        (Exception("monthly quota used up"), ErrorKind.api_limit),
        (Exception("HTTP 429 returned"), ErrorKind.api_limit),
        (Exception("Validation failed: bad location"), ErrorKind.validation),
        (Exception("400 Bad Request"), ErrorKind.validation),
        (Exception("Request timeout"), ErrorKind.timeout),
        (Exception("The operation was aborted"), ErrorKind.timeout),
        (Exception("kaboom"), ErrorKind.unknown),
    ],
)
def test_classify_by_message(exc, kind):
    assert classify_error(exc).kind == kind


@pytest.mark.parametrize(
    "status, kind",
    [
        (429, ErrorKind.api_limit),
        (408, ErrorKind.timeout),
        (504, ErrorKind.timeout),
        (401, ErrorKind.validation),
        (422, ErrorKind.validation),
        (500, ErrorKind.unknown),
    ],
)
def test_classify_by_status(status, kind):
    assert classify_error(ProviderError("upstream said no", status=status)).kind == kind


def test_status_wins_over_message():
    exc = ProviderError("network hiccup", status=429)
    assert classify_error(exc).kind == ErrorKind.api_limit


def test_5xx_status_falls_back_to_message():
    exc = ProviderError("connection refused", status=503)
    assert classify_error(exc).kind == ErrorKind.network


def test_search_error_fields():
    error = classify_error(Exception("Request timeout"), CONTEXT, attempt=2)
    assert error.code == "TIMEOUT_ERROR"
    assert error.retryable is True
    assert error.fallback_available is True
    assert error.context == {"attempt": 2, "query": "sushi", "location": "Tokyo"}


@pytest.mark.parametrize(
    "kind, retryable",
    [
        (ErrorKind.network, True),
        (ErrorKind.timeout, True),
        (ErrorKind.unknown, True),
        (ErrorKind.api_limit, False),
        (ErrorKind.validation, False),
    ],
)
def test_retryable_kinds(kind, retryable):
    messages = {
        ErrorKind.network: "network down",
        ErrorKind.timeout: "timeout",
        ErrorKind.unknown: "weird",
        ErrorKind.api_limit: "rate limit",
        ErrorKind.validation: "invalid request",
    }
    assert classify_error(Exception(messages[kind])).retryable is retryable


def test_retry_until_max_attempts():
    exc = Exception("Network request failed")
    assert handle_search_error(exc, CONTEXT, attempt=1, max_retries=2).should_retry
    assert handle_search_error(exc, CONTEXT, attempt=2, max_retries=2).should_retry
    final = handle_search_error(exc, CONTEXT, attempt=3, max_retries=2)
    assert not final.should_retry
    assert final.fallback_strategy == FallbackStrategy.mock


def test_network_failure_without_retry_budget_tries_simplified_search():
    decision = handle_search_error(Exception("Network request failed"), CONTEXT, attempt=1, max_retries=0)
    assert not decision.should_retry
    assert decision.fallback_strategy == FallbackStrategy.simplified_search


def test_non_retryable_skips_straight_to_fallback():
    decision = handle_search_error(Exception("Rate limit exceeded"), CONTEXT, attempt=1, max_retries=2)
    assert not decision.should_retry
    assert decision.fallback_strategy == FallbackStrategy.cache

    decision = handle_search_error(Exception("Invalid request"), CONTEXT, attempt=1, max_retries=2)
    assert decision.fallback_strategy == FallbackStrategy.mock


def test_rate_limiter_blocks_retries_after_threshold():
    clock = FakeClock()
    limiter = ErrorRateLimiter(max_errors=3, clock=clock)
    exc = Exception("Request timeout")

    # the threshold itself still allows retries; exceeding it does not
    for _ in range(3):
        assert handle_search_error(exc, CONTEXT, 1, 5, limiter).should_retry
    fourth = handle_search_error(exc, CONTEXT, 1, 5, limiter)
    assert not fourth.should_retry
    assert fourth.fallback_strategy == FallbackStrategy.mock


def test_rate_limiter_window_slides():
    clock = FakeClock()
    limiter = ErrorRateLimiter(max_errors=2, window_seconds=3600, clock=clock)
    limiter.record(CONTEXT)
    limiter.record(CONTEXT)
    assert not limiter.is_limited(CONTEXT)
    assert limiter.record(CONTEXT) == 3
    assert limiter.is_limited(CONTEXT)

    clock.now = 3601
    assert not limiter.is_limited(CONTEXT)


def test_rate_limiter_forgets_origins_with_empty_windows():
    clock = FakeClock()
    limiter = ErrorRateLimiter(window_seconds=60, clock=clock)
    limiter.record(CONTEXT)
    assert limiter.is_limited(build_context(SearchRequest(location={"city": "Nagoya"}))) is False
    assert list(limiter._errors) == ["tokyo"]

    clock.now = 61
    assert not limiter.is_limited(CONTEXT)
    assert limiter._errors == {}
    assert limiter.record(CONTEXT) == 1


def test_rate_limiter_is_keyed_by_city():
    limiter = ErrorRateLimiter(max_errors=1, clock=FakeClock())
    limiter.record(CONTEXT)
    limiter.record(CONTEXT)
    osaka = build_context(SearchRequest(query="sushi", location={"city": "Osaka"}))
    assert limiter.is_limited(CONTEXT)
    assert not limiter.is_limited(osaka)
    limiter.reset()
    assert not limiter.is_limited(CONTEXT)


def test_network_after_simplified_attempt_goes_to_mock():
    error = classify_error(Exception("network down"))
    assert select_fallback_strategy(error) == FallbackStrategy.simplified_search
    assert select_fallback_strategy(error, simplified_attempted=True) == FallbackStrategy.mock
    assert select_fallback_strategy(error, attempt=3) == FallbackStrategy.mock


def test_disabled_fallback_selects_none():
    decision = handle_search_error(
        Exception("Rate limit exceeded"), CONTEXT, 1, 2, enable_fallback=False,
    )
    assert decision.fallback_strategy == FallbackStrategy.none
    assert decision.search_error.fallback_available is False
    assert decision.user_message == "Search service is temporarily busy"


def test_user_messages_per_strategy():
    mock = handle_search_error(Exception("Invalid request"), CONTEXT, 1, 2)
    assert "sample restaurants" in mock.user_message
    simplified = handle_search_error(Exception("network down"), CONTEXT, 1, 0)
    assert "simplified" in simplified.user_message


@pytest.mark.parametrize("kind", ["network", "api_limit", "validation", "timeout", "unknown", "no_results"])
def test_user_friendly_error_catalogue(kind):
    body = user_friendly_error(kind)
    assert body["error"]
    assert len(body["suggestions"]) == 3
    assert isinstance(body["canRetry"], bool)


def test_user_friendly_error_unknown_key_uses_default():
    assert user_friendly_error("gremlins") == user_friendly_error(ErrorKind.unknown)
    assert user_friendly_error(ErrorKind.validation)["canRetry"] is False
