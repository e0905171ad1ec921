from __future__ import annotations

import re
from dataclasses import dataclass, field

from .cuisine import CUISINE_KEYWORDS, normalize_cuisine
from .models import LocationData, SearchRequest

COORDINATE_PRECISION = 3  # ~111 m, absorbs GPS jitter
KEY_DELIMITER = "|"
DEFAULT_RADIUS_MILES = 10.0

_STOP_WORDS = frozenset({
    "find", "show", "search", "look", "for", "me", "some", "good", "nice",
    "restaurant", "restaurants", "place", "places", "food", "eat", "dining",
    "near", "around", "in", "at", "the", "a", "an", "and", "or", "but", "with",
})

_PRICE_TERMS: dict[int, str] = {
    1: "cheap",
    2: "casual",
    3: "mid-range",
    4: "upscale",
    5: "luxury",
}

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class SearchContext:
    """Canonical, immutable view of one search request."""

    query: str
    location: LocationData
    cuisine: str | None = None
    dietary_restrictions: tuple[str, ...] = ()
    price_range: tuple[int, int] | None = None
    radius: float = DEFAULT_RADIUS_MILES
    max_results: int = 8

    @property
    def cache_key(self) -> str:
        return derive_cache_key(self)


@dataclass
class ContextCheck:
    resolvable: bool
    complete: bool
    issues: list[str] = field(default_factory=list)


def _normalize_text(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.lower().split())


def _round_coordinate(value: float | None) -> str:
    if value is None:
        return ""
    # Adding 0.0 folds -0.0 into 0.0 so both hemispheres of the origin agree.
    return f"{round(value, COORDINATE_PRECISION) + 0.0:.{COORDINATE_PRECISION}f}"


def build_context(request: SearchRequest, default_max_results: int = 8) -> SearchContext:
    dietary = tuple(
        sorted({d.strip() for d in request.dietary_restrictions if d and d.strip()}, key=str.lower)
    )
    cuisine = request.cuisine.strip() if request.cuisine and request.cuisine.strip() else None
    price_range = tuple(request.price_range) if request.price_range else None
    return SearchContext(
        query=" ".join(request.query.split()),
        location=request.location,
        cuisine=cuisine,
        dietary_restrictions=dietary,
        price_range=price_range,
        radius=request.radius,
        max_results=request.max_results or default_max_results,
    )


def derive_cache_key(context: SearchContext) -> str:
    """Pipe-delimited key; field order is fixed, textual parts are case-folded."""
    location = context.location
    dietary = ",".join(sorted({_normalize_text(d) for d in context.dietary_restrictions} - {""}))
    if context.price_range:
        price = f"{context.price_range[0]}-{context.price_range[1]}"
    else:
        price = "-"
    parts = [
        _normalize_text(context.query),
        f"{_round_coordinate(location.latitude)},{_round_coordinate(location.longitude)}",
        _normalize_text(location.city),
        _normalize_text(context.cuisine),
        dietary,
        price,
        f"{float(context.radius):g}",
    ]
    return KEY_DELIMITER.join(parts)


def check_context(context: SearchContext) -> ContextCheck:
    issues: list[str] = []
    location = context.location
    has_place_name = bool((location.city or "").strip() or (location.address or "").strip())

    if not location.has_coordinates:
        issues.append("Location coordinates are missing")
    if not has_place_name:
        issues.append("Location name or address is missing")
    resolvable = location.has_coordinates or has_place_name

    complete = True
    if not context.query.strip() and not context.cuisine:
        issues.append("Either a query or a cuisine preference is required")
        complete = False

    return ContextCheck(resolvable=resolvable, complete=complete, issues=issues)


def location_label(location: LocationData) -> str:
    if location.city and location.country:
        if location.state:
            return f"{location.city}, {location.state}, {location.country}"
        return f"{location.city}, {location.country}"
    if location.city:
        return location.city
    if location.address:
        return location.address
    if location.has_coordinates:
        return f"{location.latitude}, {location.longitude}"
    return "unknown location"


def clean_query(query: str) -> str:
    words = _PUNCTUATION_RE.sub(" ", query.lower()).split()
    return " ".join(w for w in words if len(w) > 2 and w not in _STOP_WORDS)


def simplify_query(query: str, max_terms: int = 2) -> str:
    """Shorter, less specific variant of *query* used by the simplified-search fallback."""
    terms = clean_query(query).split()
    return " ".join(terms[:max_terms])


def build_query_text(context: SearchContext) -> str:
    """Natural-language query handed to the knowledge-search provider."""
    components: list[str] = []
    cleaned = clean_query(context.query)
    if cleaned:
        components.append(cleaned)

    if context.cuisine:
        category = normalize_cuisine(context.cuisine)
        keywords = CUISINE_KEYWORDS.get(category or "")
        term = keywords[0] if keywords else context.cuisine.lower()
        if term not in cleaned.split():
            components.append(term)

    if context.dietary_restrictions:
        dietary = " ".join(d.lower() for d in context.dietary_restrictions[:2])
        components.append(f"{dietary} friendly")

    if context.price_range:
        avg_price = (context.price_range[0] + context.price_range[1] + 1) // 2
        components.append(_PRICE_TERMS[avg_price])

    label = location_label(context.location)
    if not components:
        return f"best restaurants in {label}"
    return f"{' '.join(components)} restaurants in {label}"


def query_confidence(context: SearchContext) -> int:
    """How specific the request is, 0-100."""
    confidence = 50
    cleaned = clean_query(context.query)
    if cleaned:
        confidence += min(20, len(cleaned.split()) * 5)

    location = context.location
    if location.city:
        confidence += 15
    if location.state:
        confidence += 10
    if location.postal_code:
        confidence += 5

    if context.cuisine:
        confidence += 10
    if context.dietary_restrictions:
        confidence += 8
    if context.price_range:
        confidence += 5

    return min(100, confidence)
