"""
Search result pipeline.

Responsibilities:
- Normalise requests into a search context and a deterministic cache key.
- Parse untrusted provider records into canonical restaurants.
- Score records for quality and filter untrustworthy entries.
- Cache validated result sets with LRU eviction and TTL expiry.
- Classify provider failures and synthesise fallback results.
"""
