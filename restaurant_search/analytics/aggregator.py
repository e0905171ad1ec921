from __future__ import annotations

from collections import Counter
from typing import Any

DEGRADED_FALLBACK_RATE = 50.0
RECENT_WINDOW = 20


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    searches = [e for e in events if e["type"] == "search"]
    total = len(searches)

    # Average response time
    times = [s["response_time_ms"] for s in searches if "response_time_ms" in s]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Where results came from
    source_counter: Counter[str] = Counter(s.get("data_source", "unknown") for s in searches)

    # Average quality of returned results
    qualities = [s["average_quality"] for s in searches if s.get("average_quality") is not None]
    avg_quality = round(sum(qualities) / len(qualities), 1) if qualities else 0.0

    # Top queries
    query_counter: Counter[str] = Counter()
    for s in searches:
        query = " ".join(str(s.get("query") or "").lower().split())
        if query:
            query_counter[query] += 1
    top_queries = [{"name": n, "count": c} for n, c in query_counter.most_common(10)]

    # Top locations
    loc_counter: Counter[str] = Counter()
    for s in searches:
        loc_counter[s.get("location", "unknown")] += 1
    top_locations = [{"name": n, "count": c} for n, c in loc_counter.most_common(10)]

    # Failures by kind
    error_counter: Counter[str] = Counter(s["error_kind"] for s in searches if s.get("error_kind"))

    cache_hits = sum(1 for s in searches if s.get("cache_hit"))
    fallbacks = sum(1 for s in searches if s.get("used_fallback"))

    return {
        "total_searches": total,
        "avg_response_time_ms": avg_time,
        "cache_hit_rate": _rate(cache_hits, total),
        "fallback_rate": _rate(fallbacks, total),
        "data_sources": dict(source_counter),
        "avg_quality": avg_quality,
        "errors": dict(error_counter),
        "top_queries": top_queries,
        "top_locations": top_locations,
    }


def health_status(events: list[dict[str, Any]], window: int = RECENT_WINDOW) -> str:
    """``degraded`` when most recent searches needed a fallback, else ``healthy``."""
    recent = [e for e in events if e["type"] == "search"][-window:]
    if not recent:
        return "healthy"
    fallbacks = sum(1 for e in recent if e.get("used_fallback") or e.get("data_source") == "error")
    return "degraded" if _rate(fallbacks, len(recent)) >= DEGRADED_FALLBACK_RATE else "healthy"
