from __future__ import annotations

import json
import logging
from typing import Any

import groq
from groq import AsyncGroq

from .base import ProviderError
from .config import DEFAULT_PROVIDER_CONFIG, ProviderConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a restaurant search engine. "
    "Given a search query and a location, list real, currently operating "
    "restaurants that match it.\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"restaurants": [{"name": "", "cuisine": "", "address": "", '
    '"description": "", "priceLevel": 1, "rating": 4.5, "reviewCount": 100, '
    '"phone": "", "website": "", "hours": "", "specialties": [], '
    '"dietaryOptions": [], "coordinates": {"lat": 0.0, "lng": 0.0}}]}\n'
    "priceLevel is 1-5, rating is 1.0-5.0. "
    "Leave out any field you are not confident about rather than guessing."
)


def _build_user_message(query_text: str, location_hint: str) -> str:
    lines = [
        f"## Search\n{query_text}",
        f"\n## Location\n{location_hint}",
        "\nFocus on restaurants with good ratings, accurate addresses "
        "and contact details, specialties and dietary options.",
    ]
    return "\n".join(lines)


def _extract_records(content: str) -> list[dict[str, Any]]:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Invalid JSON in provider response: {exc.msg}", code="INVALID_RESPONSE") from exc

    if isinstance(parsed, list):
        records = parsed
    elif isinstance(parsed, dict):
        records = parsed.get("restaurants", [])
    else:
        records = None
    if not isinstance(records, list):
        raise ProviderError("Provider response has no restaurant list", code="INVALID_RESPONSE")
    return records


class GroqSearchProvider:
    """Knowledge-search provider backed by a Groq chat completion in JSON mode."""

    def __init__(self, config: ProviderConfig = DEFAULT_PROVIDER_CONFIG):
        self.config = config
        self._client: AsyncGroq | None = None

    @property
    def available(self) -> bool:
        return self.config.enabled and bool(self.config.api_key)

    def _get_client(self) -> AsyncGroq:
        if self._client is None:
            # The search orchestrator owns retries.
            self._client = AsyncGroq(api_key=self.config.api_key, max_retries=0)
        return self._client

    async def search(self, query_text: str, location_hint: str) -> list[dict[str, Any]]:
        if not self.available:
            raise ProviderError("Search provider is not configured", status=401, code="NOT_CONFIGURED")

        try:
            response = await self._get_client().chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": _build_user_message(query_text, location_hint)},
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except groq.APITimeoutError as exc:
            raise ProviderError("Provider request timeout", status=408) from exc
        except groq.APIConnectionError as exc:
            raise ProviderError(f"Network connection failed: {exc}") from exc
        except groq.APIStatusError as exc:
            raise ProviderError(str(exc), status=exc.status_code) from exc

        content = response.choices[0].message.content or ""
        records = _extract_records(content)
        logger.debug("Groq returned %d candidate records for %r", len(records), query_text)
        return records

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
