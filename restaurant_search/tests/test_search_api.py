from __future__ import annotations

import random
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from restaurant_search.app import create_app
from restaurant_search.provider.base import ProviderError
from restaurant_search.search.config import SearchConfig
from restaurant_search.search.orchestrator import SearchOrchestrator

TOKYO = {"latitude": 35.6762, "longitude": 139.6503, "city": "Tokyo", "country": "Japan"}

RECORDS = [
    {
        "name": "Sushi Zen",
        "cuisine": "Sushi",
        "address": "1-2-3 Ginza, Chuo City, Tokyo",
        "description": "Edomae sushi counter",
        "priceLevel": 4,
        "rating": 4.7,
        "reviewCount": 120,
        "phone": "+81 3-1234-5678",
        "website": "https://sushizen.example.com",
        "hours": "Tue-Sun 5pm-10pm",
        "specialties": ["Omakase"],
        "dietaryOptions": ["Gluten-Free"],
        "ambiance": "Intimate and elegant",
        "bestFor": ["Date Night"],
    },
]


def _client(*, outcome=None, **config) -> tuple[TestClient, AsyncMock]:
    provider = AsyncMock()
    if isinstance(outcome, BaseException):
        provider.search.side_effect = outcome
    else:
        provider.search.return_value = RECORDS if outcome is None else outcome
    orchestrator = SearchOrchestrator(
        provider,
        config=SearchConfig(**config),
        rng=random.Random(0),
        sleep=AsyncMock(),
    )
    return TestClient(create_app(orchestrator)), provider


def test_search_returns_camel_case_payload():
    client, _ = _client()
    resp = client.post("/restaurants/search", json={"query": "sushi", "location": TOKYO})
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalResults"] == 1
    assert body["cached"] is False
    restaurant = body["restaurants"][0]
    assert restaurant["name"] == "Sushi Zen"
    assert restaurant["priceLevel"] == 4
    assert restaurant["dataSource"] == "web_search"
    assert restaurant["qualityScore"] >= 60
    meta = body["searchMetadata"]
    assert meta["usedFallback"] is False
    assert meta["location"] == "Tokyo, Japan"
    assert body["searchParams"]["query"] == "sushi"


def test_second_search_is_cached():
    client, provider = _client()
    payload = {"query": "sushi", "location": TOKYO}
    client.post("/restaurants/search", json=payload)
    resp = client.post("/restaurants/search", json=payload)
    assert resp.json()["cached"] is True
    assert provider.search.await_count == 1


def test_unresolvable_location_returns_400():
    client, provider = _client()
    resp = client.post("/restaurants/search", json={"query": "sushi", "location": {"country": "Japan"}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Location data is required"
    assert body["canRetry"] is False
    assert 1 <= len(body["suggestions"]) <= 3
    provider.search.assert_not_awaited()


def test_bad_price_range_returns_422():
    client, _ = _client()
    resp = client.post(
        "/restaurants/search",
        json={"query": "sushi", "location": TOKYO, "priceRange": [4, 2]},
    )
    assert resp.status_code == 422


def test_missing_location_returns_422():
    client, _ = _client()
    resp = client.post("/restaurants/search", json={"query": "sushi"})
    assert resp.status_code == 422


def test_fallback_response_when_provider_is_rate_limited():
    client, _ = _client(outcome=ProviderError("Rate limit exceeded", status=429))
    resp = client.post("/restaurants/search", json={"query": "sushi", "location": TOKYO})
    assert resp.status_code == 200
    meta = resp.json()["searchMetadata"]
    assert meta["usedFallback"] is True
    assert meta["errorInfo"]["type"] == "api_limit"
    assert meta["errorInfo"]["fallbackStrategy"] == "mock"


def test_unavailable_without_fallback_returns_503():
    client, _ = _client(outcome=ProviderError("Rate limit exceeded", status=429), enable_fallback=False)
    resp = client.post("/restaurants/search", json={"query": "sushi", "location": TOKYO})
    assert resp.status_code == 503
    body = resp.json()
    assert set(body) == {"error", "suggestions", "canRetry"}
    assert body["canRetry"] is True


def test_health_reports_degraded_after_fallbacks():
    client, _ = _client(outcome=ProviderError("Invalid request", status=400))
    assert client.get("/health").json() == {"status": "healthy"}
    client.post("/restaurants/search", json={"query": "sushi", "location": TOKYO})
    assert client.get("/health").json() == {"status": "degraded"}


def test_cache_stats_endpoint():
    client, _ = _client()
    payload = {"query": "sushi", "location": TOKYO}
    client.post("/restaurants/search", json=payload)
    client.post("/restaurants/search", json=payload)
    body = client.get("/cache/stats").json()
    assert body["primary"]["size"] == 1
    assert body["primary"]["hits"] == 1
    assert body["primary"]["misses"] == 1
    assert body["primary"]["hitRate"] == 50.0
    assert body["fallback"]["size"] == 0


def test_analytics_endpoint_tracks_searches():
    client, _ = _client()
    client.post("/restaurants/search", json={"query": "sushi", "location": TOKYO})
    client.post("/restaurants/search", json={"query": "sushi", "location": TOKYO})
    body = client.get("/analytics").json()
    assert body["total_searches"] == 2
    assert body["cache_hit_rate"] == 50.0
    assert body["data_sources"] == {"web_search": 1, "cache": 1}
    assert body["top_queries"] == [{"name": "sushi", "count": 2}]


def test_lifespan_starts_and_stops_orchestrator():
    provider = AsyncMock()
    orchestrator = SearchOrchestrator(provider)
    with TestClient(create_app(orchestrator)) as client:
        assert client.get("/health").status_code == 200
        assert orchestrator._sweeper is not None
    assert orchestrator._sweeper is None
    provider.aclose.assert_awaited_once()
