"""
In-memory LRU + TTL cache for validated search results.

Responsibilities:
- Bounded key -> entry store with strict least-recently-accessed eviction
- Lazy expiry on access, plus a best-effort periodic sweep
- Secondary lookups used by the fallback path: stale peeks, nearby
  entries and token-overlap similarity over the original query text

All operations take one ``threading.Lock`` around the ordered map so the
sweeper and concurrent requests never observe a half-updated structure.
The clock is injectable so expiry can be tested without sleeping.
"""
from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
MAX_SIMILAR_RESULTS = 5


@dataclass
class CacheEntry:
    key: str
    payload: Any
    created_at: float
    expires_at: float
    version: str
    query: str = ""
    latitude: float | None = None
    longitude: float | None = None
    city: str | None = None
    result_count: int = 0
    access_count: int = 0
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class SimilarEntry:
    entry: CacheEntry
    similarity: float


@dataclass
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expirations: int
    hit_rate: float
    oldest_entry: float | None = None
    newest_entry: float | None = None
    version: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "maxSize": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hitRate": self.hit_rate,
            "oldestEntry": self.oldest_entry,
            "newestEntry": self.newest_entry,
            "version": self.version,
        }


def _haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _tokens(text: str) -> set[str]:
    return set(text.lower().split())


def token_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the whitespace token sets of *a* and *b*."""
    left, right = _tokens(a), _tokens(b)
    if not left and not right:
        return 1.0
    return len(left & right) / len(left | right)


class SearchCache:
    def __init__(
        self,
        ttl_seconds: float = 30 * 60,
        max_size: int = 100,
        version: str = "1.0",
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.version = version
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    # ── Primary operations ───────────────────────────────────────────────

    def _live_entry(self, key: str, now: float) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(now) or entry.version != self.version:
            del self._entries[key]
            self._expirations += 1
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                self._misses += 1
                logger.debug("Cache miss for %s", key)
                return None
            entry.access_count += 1
            entry.last_accessed = now
            self._entries.move_to_end(key)
            self._hits += 1
            logger.debug("Cache hit for %s (access #%d)", key, entry.access_count)
            return entry.payload

    def set(
        self,
        key: str,
        payload: Any,
        *,
        query: str = "",
        latitude: float | None = None,
        longitude: float | None = None,
        city: str | None = None,
        result_count: int = 0,
        ttl_seconds: float | None = None,
    ) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted least recently used entry %s", evicted)
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                created_at=now,
                expires_at=now + ttl,
                version=self.version,
                query=query,
                latitude=latitude,
                longitude=longitude,
                city=city,
                result_count=result_count,
                last_accessed=now,
            )

    def has(self, key: str) -> bool:
        """Existence check with the same expiry rules as ``get``; recency is untouched."""
        with self._lock:
            return self._live_entry(key, self._clock()) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0

    def peek_stale(self, key: str) -> CacheEntry | None:
        """Return the entry for *key* even if expired, without counting an access."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.version != self.version:
                return None
            return entry

    # ── Housekeeping ─────────────────────────────────────────────────────

    def expire_older_than(self, max_age_seconds: float) -> int:
        """Remove entries created more than *max_age_seconds* ago."""
        with self._lock:
            cutoff = self._clock() - max_age_seconds
            stale = [k for k, e in self._entries.items() if e.created_at < cutoff]
            for key in stale:
                del self._entries[key]
            self._expirations += len(stale)
            return len(stale)

    def sweep_expired(self) -> int:
        """Remove entries past their own expiry; returns the count removed."""
        with self._lock:
            now = self._clock()
            dead = [
                k for k, e in self._entries.items()
                if e.is_expired(now) or e.version != self.version
            ]
            for key in dead:
                del self._entries[key]
            self._expirations += len(dead)
            return len(dead)

    def invalidate_version(self, version: str) -> int:
        """Switch to *version*, dropping every entry written under another one."""
        with self._lock:
            self.version = version
            old = [k for k, e in self._entries.items() if e.version != version]
            for key in old:
                del self._entries[key]
            return len(old)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep expired entries every *interval_seconds* until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.sweep_expired()
            if removed:
                logger.info("Cache sweep removed %d expired entries", removed)

    # ── Secondary lookups ────────────────────────────────────────────────

    def find_similar(self, query: str, max_distance: int = 3) -> list[SimilarEntry]:
        """
        Live entries whose original query overlaps *query*.

        The similarity floor is ``1 - max_distance / 10``; at most five
        matches are returned, most similar first.
        """
        threshold = 1 - max_distance / 10
        with self._lock:
            now = self._clock()
            matches = [
                SimilarEntry(entry=e, similarity=token_similarity(query, e.query))
                for e in self._entries.values()
                if not e.is_expired(now) and e.version == self.version and e.query
            ]
        matches = [m for m in matches if m.similarity >= threshold]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:MAX_SIMILAR_RESULTS]

    def entries_near(
        self,
        latitude: float,
        longitude: float,
        radius_km: float = 10.0,
        include_expired: bool = False,
    ) -> list[CacheEntry]:
        """Entries stored within *radius_km*, most recently accessed first."""
        with self._lock:
            now = self._clock()
            nearby = [
                e for e in self._entries.values()
                if e.latitude is not None
                and e.longitude is not None
                and e.version == self.version
                and (include_expired or not e.is_expired(now))
                and _haversine_km(latitude, longitude, e.latitude, e.longitude) <= radius_km
            ]
        nearby.sort(key=lambda e: e.last_accessed, reverse=True)
        return nearby

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            created = [e.created_at for e in self._entries.values()]
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                hit_rate=round(self._hits / total * 100, 1) if total > 0 else 0.0,
                oldest_entry=min(created) if created else None,
                newest_entry=max(created) if created else None,
                version=self.version,
            )
