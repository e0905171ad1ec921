from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class ProviderError(Exception):
    """A failed provider call; ``status`` mirrors an HTTP status when known."""

    def __init__(self, message: str, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status = status
        self.code = code


@runtime_checkable
class SearchProvider(Protocol):
    async def search(self, query_text: str, location_hint: str) -> list[dict[str, Any]]:
        """Return raw, untrusted restaurant records or raise ``ProviderError``."""
        ...
