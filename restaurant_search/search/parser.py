from __future__ import annotations

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from . import synthesis
from .cuisine import cuisine_terms, normalize_cuisine
from .models import (
    Coordinates,
    DataSource,
    InvalidRecord,
    LocationData,
    ParseStats,
    Restaurant,
    Severity,
    ValidationIssue,
)
from .validator import is_valid_phone, is_valid_url, suspicious_name_code

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "cuisine", "address")
MAX_PLAUSIBLE_DISTANCE_MILES = 50.0
EARTH_RADIUS_MILES = 3959.0
MAX_MATCH_REASONS = 3

_NAME_RE = re.compile(r"^[A-Za-z0-9\s\-'&.!]+$")
_PRICE_SYMBOLS_RE = re.compile(r"^\$+$")

# Raw records arrive in whatever casing the provider chose.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "restaurantName", "restaurant_name"),
    "cuisine": ("cuisine", "cuisineType", "cuisine_type"),
    "address": ("address", "fullAddress", "full_address"),
    "description": ("description", "summary"),
    "price_level": ("priceLevel", "price_level", "price"),
    "rating": ("rating", "avgRating", "avg_rating"),
    "review_count": ("reviewCount", "review_count", "reviews"),
    "phone": ("phone", "phoneNumber", "phone_number"),
    "website": ("website", "url"),
    "hours": ("hours", "openingHours", "opening_hours"),
    "specialties": ("specialties", "signatureDishes", "signature_dishes"),
    "dietary_options": ("dietaryOptions", "dietary_options"),
    "ambiance": ("ambiance", "ambience"),
    "best_for": ("bestFor", "best_for"),
    "estimated_wait_time": ("estimatedWaitTime", "estimated_wait_time", "waitTime"),
    "coordinates": ("coordinates", "coords", "geo"),
    "distance": ("distance",),
    "image_url": ("imageUrl", "image_url", "image"),
    "match_score": ("matchScore", "match_score"),
    "match_reasons": ("matchReasons", "match_reasons"),
}


@dataclass
class ParseResult:
    valid: list[Restaurant] = field(default_factory=list)
    invalid: list[InvalidRecord] = field(default_factory=list)
    warnings: dict[str, list[ValidationIssue]] = field(default_factory=dict)
    stats: ParseStats | None = None


@dataclass
class _RecordCheck:
    reasons: list[str] = field(default_factory=list)
    codes: list[str] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def reject(self, reason: str, code: str) -> None:
        self.reasons.append(reason)
        self.codes.append(code)


# ── Raw field access ─────────────────────────────────────────────────────


def _get(raw: dict[str, Any], name: str) -> Any:
    for key in _FIELD_ALIASES.get(name, (name,)):
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _get_text(raw: dict[str, Any], name: str) -> str | None:
    value = _get(raw, name)
    if isinstance(value, str):
        return value.strip()
    if _is_number(value):
        return str(value)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _coerce_price_level(value: Any) -> int | None:
    if isinstance(value, str):
        stripped = value.strip()
        if _PRICE_SYMBOLS_RE.match(stripped):
            return len(stripped)
        return None
    if _is_number(value) and float(value).is_integer():
        return int(value)
    return None


def _coerce_coordinates(value: Any) -> tuple[float, float] | None:
    if isinstance(value, dict):
        lat = value.get("lat", value.get("latitude"))
        lng = value.get("lng", value.get("lon", value.get("longitude")))
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        lat, lng = value
    else:
        return None
    if not (_is_number(lat) and _is_number(lng)):
        return None
    return float(lat), float(lng)


def _string_list(value: Any) -> list[str] | None:
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value if v is not None]
    else:
        return None
    items = [v for v in items if v]
    return items or None


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# ── Record validation ────────────────────────────────────────────────────


def _check_record(
    raw: dict[str, Any],
    location: LocationData | None,
    strict_cuisine: bool,
) -> _RecordCheck:
    check = _RecordCheck()

    for name in REQUIRED_FIELDS:
        value = _get(raw, name)
        if value is None or not str(value).strip():
            check.reject(f"Missing required field: {name}", "REQUIRED_FIELD_MISSING")

    name = _get(raw, "name")
    if isinstance(name, str) and name.strip():
        name = name.strip()
        if len(name) < 2:
            check.reject("Restaurant name too short", "NAME_TOO_SHORT")
        elif len(name) > 100:
            check.reject("Restaurant name too long", "NAME_TOO_LONG")
        if not _NAME_RE.match(name):
            check.reject("Restaurant name contains invalid characters", "INVALID_NAME_CHARACTERS")
        code = suspicious_name_code(name)
        if code:
            check.reject("Restaurant name appears to be placeholder or test data", code)
    elif name is not None:
        check.reject("Restaurant name must be text", "INVALID_NAME_TYPE")

    cuisine = _get(raw, "cuisine")
    if cuisine is not None:
        if not isinstance(cuisine, str):
            check.reject("Cuisine must be text", "INVALID_CUISINE")
        elif normalize_cuisine(cuisine) is None and strict_cuisine:
            check.reject("Unknown or invalid cuisine type", "UNKNOWN_CUISINE")

    address = _get(raw, "address")
    if address is not None and not isinstance(address, str):
        check.reject("Address must be text", "INVALID_ADDRESS")

    price = _get(raw, "price_level")
    if price is not None:
        level = _coerce_price_level(price)
        if level is None or not 1 <= level <= 5:
            check.reject("Price level must be an integer between 1 and 5", "INVALID_PRICE_LEVEL")

    rating = _get(raw, "rating")
    if rating is not None and not (_is_number(rating) and 1.0 <= rating <= 5.0):
        check.reject("Rating must be a number between 1 and 5", "INVALID_RATING")

    reviews = _get(raw, "review_count")
    if reviews is not None:
        if not (_is_number(reviews) and float(reviews).is_integer() and reviews >= 0):
            check.reject("Review count must be a non-negative integer", "INVALID_REVIEW_COUNT")

    coordinates = _get(raw, "coordinates")
    if coordinates is not None:
        coerced = _coerce_coordinates(coordinates)
        if coerced is None or not (-90 <= coerced[0] <= 90 and -180 <= coerced[1] <= 180):
            check.reject("Invalid coordinates", "INVALID_COORDINATES")
        elif location is not None and location.has_coordinates:
            distance = haversine_miles(location.latitude, location.longitude, *coerced)
            if distance > MAX_PLAUSIBLE_DISTANCE_MILES:
                check.reject("Restaurant location too far from search area", "LOCATION_TOO_FAR")

    phone = _get(raw, "phone")
    if phone is not None and not (isinstance(phone, str) and is_valid_phone(phone)):
        check.warnings.append(ValidationIssue(
            field="phone", severity=Severity.warning,
            message="Phone number format appears invalid", code="INVALID_PHONE_FORMAT",
        ))

    website = _get(raw, "website")
    if website is not None and not (isinstance(website, str) and is_valid_url(website)):
        check.warnings.append(ValidationIssue(
            field="website", severity=Severity.warning,
            message="Website URL format appears invalid", code="INVALID_URL_FORMAT",
        ))

    return check


# ── Match scoring ────────────────────────────────────────────────────────


def _match_signals(
    raw: dict[str, Any],
    name: str,
    cuisine: str,
    query: str,
    cuisine_filter: str | None,
    dietary_restrictions: Iterable[str],
    distance_miles: float | None,
) -> list[tuple[int, str | None]]:
    """(points, reason) pairs; reasons are ``None`` for signals that stay silent."""
    signals: list[tuple[int, str | None]] = []
    query_lower = " ".join(query.lower().split())
    name_lower = name.lower()
    cuisine_lower = cuisine.lower()

    if query_lower:
        if query_lower in name_lower:
            signals.append((30, f'Name matches "{query.strip()}"'))
        elif name_lower in query_lower:
            signals.append((20, "Searched for by name"))

    search_text = " ".join(filter(None, [query_lower, (cuisine_filter or "").lower()]))
    if search_text:
        tokens = set(search_text.split())
        reason = f"Matches {cuisine} cuisine preference"
        if cuisine_lower in search_text:
            signals.append((25, reason))
        elif query_lower and query_lower in cuisine_lower:
            signals.append((15, reason))
        elif any(term in tokens or (" " in term and term in search_text) for term in cuisine_terms(cuisine)):
            signals.append((15, reason))

    rating = _get(raw, "rating")
    reviews = _get(raw, "review_count")
    if _is_number(rating) and rating >= 4.0:
        signals.append((10, f"High rating ({rating:g}/5)"))
    if _is_number(reviews) and reviews > 100:
        reason = "Popular with many reviews" if reviews > 500 else None
        signals.append((5, reason))

    wanted = {d.lower() for d in dietary_restrictions}
    offered = _string_list(_get(raw, "dietary_options")) or []
    matched = [d for d in offered if d.lower() in wanted]
    if matched:
        signals.append((8, f"Offers {', '.join(matched[:2])} options"))

    if distance_miles is not None and distance_miles < 2:
        signals.append((4, "Close to your location"))

    if _get(raw, "phone") is not None:
        signals.append((3, None))
    if _get(raw, "website") is not None:
        signals.append((3, None))
    if _get(raw, "hours") is not None:
        signals.append((2, None))
    return signals


def _match_score(signals: list[tuple[int, str | None]]) -> int:
    return max(0, min(100, 50 + sum(points for points, _ in signals)))


def _match_reasons(signals: list[tuple[int, str | None]]) -> list[str]:
    ranked = sorted((s for s in signals if s[1]), key=lambda s: s[0], reverse=True)
    return [reason for _, reason in ranked[:MAX_MATCH_REASONS]]


# ── Transformation ───────────────────────────────────────────────────────


def make_restaurant_id(source: DataSource, name: str, address: str) -> str:
    digest = hashlib.sha256(f"{name.lower()}|{address.lower()}".encode()).hexdigest()[:16]
    prefix = "fb" if source == DataSource.fallback else "web"
    return f"{prefix}-{digest}"


def _transform(
    raw: dict[str, Any],
    location: LocationData | None,
    query: str,
    cuisine_filter: str | None,
    dietary_restrictions: Iterable[str],
    source: DataSource,
) -> Restaurant:
    name = str(_get(raw, "name")).strip()
    address = str(_get(raw, "address")).strip()
    raw_cuisine = str(_get(raw, "cuisine")).strip()
    cuisine = normalize_cuisine(raw_cuisine) or raw_cuisine.title()
    rng = synthesis.seeded_random(name.lower(), address.lower())
    synthesized: list[str] = []

    def fill(field_name: str, value: Any, default):
        if value is not None:
            return value
        synthesized.append(field_name)
        return default() if callable(default) else default

    coordinates = None
    distance_miles = None
    raw_coords = _get(raw, "coordinates")
    if raw_coords is not None:
        lat, lng = _coerce_coordinates(raw_coords)
        coordinates = Coordinates(lat=lat, lng=lng)
        if location is not None and location.has_coordinates:
            distance_miles = haversine_miles(location.latitude, location.longitude, lat, lng)

    distance = _get(raw, "distance")
    if isinstance(distance, (int, float)) and not isinstance(distance, bool):
        distance_miles = float(distance)
        distance = f"{distance_miles:.1f} mi"
    elif isinstance(distance, str):
        distance = distance.strip()
        try:
            distance_miles = float(distance.replace("mi", "").strip())
        except ValueError:
            pass
    elif distance_miles is not None:
        distance = f"{distance_miles:.1f} mi"
    else:
        distance = "Unknown"

    price = _get(raw, "price_level")
    price_level = fill(
        "priceLevel",
        _coerce_price_level(price) if price is not None else None,
        lambda: synthesis.infer_price_level(name, cuisine),
    )
    rating = _get(raw, "rating")
    reviews = _get(raw, "review_count")

    if source == DataSource.fallback and _is_number(_get(raw, "match_score")):
        match_score = max(0, min(100, int(_get(raw, "match_score"))))
        match_reasons = (_string_list(_get(raw, "match_reasons")) or [])[:MAX_MATCH_REASONS]
    else:
        signals = _match_signals(
            raw, name, cuisine, query, cuisine_filter, dietary_restrictions, distance_miles,
        )
        match_score = _match_score(signals)
        match_reasons = _match_reasons(signals)

    return Restaurant(
        id=make_restaurant_id(source, name, address),
        name=name,
        cuisine=cuisine,
        description=fill("description", _get_text(raw, "description"), lambda: synthesis.describe(cuisine, rng)),
        price_level=price_level,
        rating=fill("rating", float(rating) if rating is not None else None, lambda: synthesis.fallback_rating(rng)),
        review_count=fill(
            "reviewCount", int(reviews) if reviews is not None else None,
            lambda: synthesis.fallback_review_count(rng),
        ),
        address=address,
        phone=_get_text(raw, "phone"),
        website=_get_text(raw, "website"),
        hours=fill("hours", _get_text(raw, "hours"), lambda: synthesis.fallback_hours(rng)),
        specialties=fill(
            "specialties", _string_list(_get(raw, "specialties")),
            lambda: synthesis.specialties_for(cuisine, price_level),
        ),
        dietary_options=fill(
            "dietaryOptions", _string_list(_get(raw, "dietary_options")),
            lambda: synthesis.dietary_options_for(cuisine, rng),
        ),
        ambiance=fill("ambiance", _get_text(raw, "ambiance"), lambda: synthesis.ambiance_for(price_level)),
        best_for=fill("bestFor", _string_list(_get(raw, "best_for")), lambda: synthesis.best_for(price_level)),
        estimated_wait_time=fill(
            "estimatedWaitTime", _get_text(raw, "estimated_wait_time"),
            lambda: synthesis.wait_time_for(price_level),
        ),
        distance=distance,
        match_score=match_score,
        match_reasons=match_reasons,
        image_url=fill("imageUrl", _get_text(raw, "image_url") or None, lambda: synthesis.placeholder_image(name)),
        coordinates=coordinates,
        data_source=source,
        synthesized_fields=synthesized,
    )


def _sort_key(restaurant: Restaurant) -> tuple[float, float, float]:
    distance = restaurant.distance_miles
    return (
        -restaurant.match_score,
        distance if distance is not None else math.inf,
        -restaurant.rating,
    )


def _result_quality(valid: list[Restaurant], invalid_count: int) -> int:
    total = len(valid) + invalid_count
    if total == 0:
        return 0
    valid_ratio = len(valid) / total

    completeness = 0.0
    for r in valid:
        score = 0.0
        if r.phone:
            score += 0.1
        if r.website:
            score += 0.1
        if r.hours and "hours" not in r.synthesized_fields:
            score += 0.1
        if "rating" not in r.synthesized_fields:
            score += 0.2
        if "reviewCount" not in r.synthesized_fields:
            score += 0.1
        if r.specialties and "specialties" not in r.synthesized_fields:
            score += 0.2
        if r.dietary_options and "dietaryOptions" not in r.synthesized_fields:
            score += 0.1
        if r.distance != "Unknown":
            score += 0.1
        completeness += score
    completeness /= max(len(valid), 1)

    return round((valid_ratio * 0.7 + completeness * 0.3) * 100)


def parse_restaurants(
    records: Iterable[Any],
    location: LocationData | None = None,
    query: str = "",
    *,
    cuisine_filter: str | None = None,
    dietary_restrictions: Iterable[str] = (),
    strict_cuisine: bool = True,
    source: DataSource = DataSource.web_search,
) -> ParseResult:
    """
    Partition untrusted provider records into canonical restaurants and rejects.

    Rejections never raise: each becomes an ``InvalidRecord`` with the
    reasons it failed. Phone and URL format problems are kept as warnings
    (keyed by restaurant id) for the quality validator.
    """
    dietary_restrictions = tuple(dietary_restrictions)
    result = ParseResult()
    seen_ids: set[str] = set()
    total = 0

    for raw in records:
        total += 1
        if not isinstance(raw, dict):
            result.invalid.append(InvalidRecord(
                data={"value": repr(raw)[:200]},
                reasons=["Record is not an object"],
                codes=["MALFORMED_RECORD"],
            ))
            continue

        check = _check_record(raw, location, strict_cuisine)
        if check.reasons:
            logger.debug("Rejected record %r: %s", raw.get("name"), "; ".join(check.reasons))
            result.invalid.append(InvalidRecord(data=raw, reasons=check.reasons, codes=check.codes))
            continue

        restaurant = _transform(raw, location, query, cuisine_filter, dietary_restrictions, source)
        if restaurant.id in seen_ids:
            result.invalid.append(InvalidRecord(
                data=raw, reasons=["Duplicate restaurant entry"], codes=["DUPLICATE_RECORD"],
            ))
            continue
        seen_ids.add(restaurant.id)
        result.valid.append(restaurant)
        if check.warnings:
            result.warnings[restaurant.id] = check.warnings

    result.valid.sort(key=_sort_key)
    result.stats = ParseStats(
        total_processed=total,
        valid_count=len(result.valid),
        invalid_count=len(result.invalid),
        quality_score=_result_quality(result.valid, len(result.invalid)),
    )
    return result
