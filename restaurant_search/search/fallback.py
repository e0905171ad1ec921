"""
Synthetic fallback restaurants for when live search is unavailable.

Records are emitted in the provider's raw camelCase shape so they go
through the same parser and validator as live data. Contact details are
deliberately fake: phone numbers use the reserved 555-01xx range and
websites the reserved ``.example`` top-level domain.
"""
from __future__ import annotations

import random
import re
from typing import Any

from . import synthesis
from .context import SearchContext
from .cuisine import CUISINE_KEYWORDS, normalize_cuisine

FALLBACK_COUNTS = {"low": 4, "medium": 6, "high": 8}
MATCH_SCORE_BANDS = {"low": (60, 75), "medium": (65, 85), "high": (75, 95)}
TIER_CONFIDENCE = {"low": 0.5, "medium": 0.6, "high": 0.7}

CUISINE_ROTATION = ("Italian", "American", "Mexican", "Chinese", "Japanese", "Indian")
BASE_NAMES = (
    "Local Favorite", "City Bistro", "Corner Cafe", "Downtown Grill",
    "Main Street Eatery", "Garden Restaurant", "Plaza Dining", "Central Kitchen",
)
STREETS = ("Main St", "Oak Ave", "Market St", "Park Blvd", "Elm St", "Harbor Rd", "Maple Dr", "Center Ave")

_NON_NAME_CHARS = re.compile(r"[^A-Za-z0-9\s\-'&.]")


def _tier(quality: str) -> str:
    return quality if quality in FALLBACK_COUNTS else "medium"


def _place_name(context: SearchContext) -> str:
    city = context.location.city or ""
    cleaned = " ".join(_NON_NAME_CHARS.sub("", city).split())[:40]
    return cleaned or "Local"


def _cuisines(context: SearchContext, count: int) -> list[str]:
    requested = normalize_cuisine(context.cuisine) if context.cuisine else None
    rotation = [c for c in CUISINE_ROTATION if c != requested]
    if requested:
        rotation.insert(0, requested)
    return [rotation[i % len(rotation)] for i in range(count)]


def _mentions(query: str, cuisine: str) -> bool:
    query_lower = query.lower()
    if cuisine.lower() in query_lower:
        return True
    tokens = set(query_lower.split())
    return any(term in tokens for term in CUISINE_KEYWORDS.get(cuisine, ()))


def _match_reasons(query: str, cuisine: str, tier: str) -> list[str]:
    reasons = []
    if query.strip() and _mentions(query, cuisine):
        reasons.append(f'Matches your search for "{query.strip()}"')
    reasons.append(f"Serves {cuisine} cuisine")
    reasons.append("Popular local choice" if tier == "high" else "Nearby option")
    return reasons[:3]


def _address(context: SearchContext, index: int, rng: random.Random) -> str:
    location = context.location
    city = location.city or "Local Area"
    number = 100 + index * 112 + rng.randint(0, 99)
    parts = [f"{number} {STREETS[index % len(STREETS)]}", city]
    if location.state:
        parts.append(location.state)
    return ", ".join(parts)


def generate_fallback_records(
    context: SearchContext,
    quality: str = "medium",
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    """
    Build 4, 6 or 8 synthetic raw records for the low, medium or high tier.

    The requested cuisine, when it maps onto a known category, leads the
    cuisine rotation. Records are sorted by match score, best first.
    """
    tier = _tier(quality)
    rng = rng or random.Random()
    place = _place_name(context)
    low, high = MATCH_SCORE_BANDS[tier]
    records: list[dict[str, Any]] = []

    for i, cuisine in enumerate(_cuisines(context, FALLBACK_COUNTS[tier])):
        base_name = BASE_NAMES[i % len(BASE_NAMES)]
        price_level = rng.randint(2, 4)
        if tier == "high":
            rating = round(rng.uniform(4.0, 4.8), 1)
            reviews = rng.randint(200, 699)
        else:
            rating = round(rng.uniform(3.5, 4.5), 1)
            reviews = rng.randint(50, 249)
        slug = base_name.lower().replace(" ", "-")

        records.append({
            "name": f"{place} {base_name}",
            "cuisine": cuisine,
            "description": f"{'Popular' if tier == 'high' else 'Local'} {cuisine.lower()} restaurant in {place}",
            "priceLevel": price_level,
            "rating": rating,
            "reviewCount": reviews,
            "address": _address(context, i, rng),
            "phone": f"(555) 01{i}-{rng.randint(1000, 9999)}",
            "website": f"https://{slug}.example",
            "hours": "Daily 11am-10pm",
            "specialties": synthesis.specialties_for(cuisine, price_level),
            "dietaryOptions": synthesis.dietary_options_for(cuisine, rng),
            "ambiance": synthesis.ambiance_for(price_level),
            "bestFor": synthesis.best_for(price_level),
            "estimatedWaitTime": f"{rng.randint(10, 29)} min",
            "distance": f"{rng.uniform(0.5, 5.5):.1f} mi",
            "matchScore": rng.randint(low, high),
            "matchReasons": _match_reasons(context.query, cuisine, tier),
        })

    records.sort(key=lambda r: r["matchScore"], reverse=True)
    return records
