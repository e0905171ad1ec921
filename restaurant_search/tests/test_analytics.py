from __future__ import annotations

from restaurant_search.analytics.aggregator import compute_analytics, health_status
from restaurant_search.analytics.store import SearchEventStore


def _search(**data):
    event = {
        "type": "search",
        "query": "sushi",
        "location": "Tokyo, Japan",
        "data_source": "web_search",
        "response_time_ms": 100.0,
        "results": 3,
        "average_quality": 80.0,
        "used_fallback": False,
        "cache_hit": False,
        "error_kind": None,
    }
    event.update(data)
    return event


def test_analytics_returns_empty_initially():
    body = compute_analytics([])
    assert body["total_searches"] == 0
    assert body["avg_response_time_ms"] == 0.0
    assert body["cache_hit_rate"] == 0.0
    assert body["top_queries"] == []


def test_analytics_tracks_searches():
    events = [
        _search(response_time_ms=120.0),
        _search(data_source="cache", cache_hit=True, response_time_ms=2.0),
        _search(
            query="Vegan Ramen", location="Osaka, Japan", data_source="fallback",
            used_fallback=True, error_kind="api_limit", average_quality=60.0, response_time_ms=40.0,
        ),
    ]
    body = compute_analytics(events)

    assert body["total_searches"] == 3
    assert body["avg_response_time_ms"] == 54.0
    assert body["cache_hit_rate"] == 33.3
    assert body["fallback_rate"] == 33.3
    assert body["data_sources"] == {"web_search": 1, "cache": 1, "fallback": 1}
    assert body["avg_quality"] == 73.3
    assert body["errors"] == {"api_limit": 1}
    assert body["top_queries"][0] == {"name": "sushi", "count": 2}
    assert {"name": "vegan ramen", "count": 1} in body["top_queries"]
    assert body["top_locations"][0] == {"name": "Tokyo, Japan", "count": 2}


def test_non_search_events_are_ignored():
    body = compute_analytics([{"type": "startup"}, _search()])
    assert body["total_searches"] == 1


def test_health_is_healthy_without_traffic():
    assert health_status([]) == "healthy"


def test_health_degrades_when_most_searches_fall_back():
    events = [_search(), _search(used_fallback=True), _search(data_source="error")]
    assert health_status(events) == "degraded"


def test_health_only_looks_at_recent_window():
    events = [_search(used_fallback=True)] * 30 + [_search()] * 20
    assert health_status(events) == "healthy"
    assert health_status(events, window=40) == "degraded"


def test_event_store_is_bounded():
    store = SearchEventStore(max_events=5)
    for i in range(8):
        store.record_event("search", {"query": f"q{i}"})
    events = store.get_events()
    assert len(store) == 5
    assert [e["query"] for e in events] == ["q3", "q4", "q5", "q6", "q7"]
    assert all(e["type"] == "search" and "timestamp" in e for e in events)


def test_event_store_returns_copies_and_clears():
    store = SearchEventStore()
    store.record_event("search", {"query": "sushi"})
    snapshot = store.get_events()
    snapshot.clear()
    assert len(store.get_events()) == 1
    store.clear_events()
    assert store.get_events() == []
