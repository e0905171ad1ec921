"""
Restaurant search service.

Responsibilities:
- Accept a free-text query, a location and optional filters.
- Fetch candidate restaurants from an external knowledge-search provider.
- Parse, validate, score and cache the results.
- Keep answering with fallback data when the provider is unavailable.
"""
