from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class SearchConfig:
    cache_ttl_minutes: float = float(os.getenv("SEARCH_CACHE_TTL_MINUTES", "30"))
    cache_max_entries: int = int(os.getenv("SEARCH_CACHE_MAX_ENTRIES", "100"))
    cache_version: str = os.getenv("SEARCH_CACHE_VERSION", "1.0")
    max_results: int = int(os.getenv("SEARCH_MAX_RESULTS", "8"))
    provider_timeout_ms: int = int(os.getenv("SEARCH_PROVIDER_TIMEOUT_MS", "30000"))
    acceptance_threshold: int = int(os.getenv("SEARCH_ACCEPTANCE_THRESHOLD", "60"))
    fallback_threshold: int = int(os.getenv("SEARCH_FALLBACK_THRESHOLD", "40"))
    max_retries: int = int(os.getenv("SEARCH_MAX_RETRIES", "2"))
    retry_delay_ms: int = int(os.getenv("SEARCH_RETRY_DELAY_MS", "1000"))
    enable_fallback: bool = _env_bool("SEARCH_ENABLE_FALLBACK", True)
    fallback_quality: str = os.getenv("SEARCH_FALLBACK_QUALITY", "medium")
    fallback_cache_ttl_minutes: float = float(os.getenv("SEARCH_FALLBACK_CACHE_TTL_MINUTES", "5"))
    sweep_interval_seconds: float = float(os.getenv("SEARCH_SWEEP_INTERVAL_SECONDS", "300"))
    max_errors_per_hour: int = int(os.getenv("SEARCH_MAX_ERRORS_PER_HOUR", "10"))
    strict_cuisine: bool = _env_bool("SEARCH_STRICT_CUISINE", True)

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_minutes * 60

    @property
    def fallback_cache_ttl_seconds(self) -> float:
        return self.fallback_cache_ttl_minutes * 60

    @property
    def provider_timeout_seconds(self) -> float:
        return self.provider_timeout_ms / 1000

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000


DEFAULT_SEARCH_CONFIG = SearchConfig()
