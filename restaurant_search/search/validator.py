"""
Quality validation for canonical restaurants.

Each record gets a ``ValidationResult``: issues at error/warning/info
severity, improvement suggestions, and a 0-100 quality score.

Score formula
-------------
``100 - 20 x errors - 5 x warnings + completeness bonus + rating bonus``,
clamped to [0, 100]. Info issues never change the score.

* **Completeness bonus** - ``(completeness - 50) x 0.3`` where
  completeness weights required fields 30, optional fields 10 and list
  fields 5.
* **Rating bonus** - +10 for rating >= 4.0 with >= 50 reviews, otherwise
  +5 for rating >= 3.5 with >= 20 reviews.

A record is valid iff it has zero errors. The acceptance threshold that
turns "valid" into "returned to the client" is pipeline policy and lives
in the orchestrator, not here.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import HttpUrl, TypeAdapter, ValidationError

from .cuisine import is_known_cuisine
from .models import (
    LocationData,
    Restaurant,
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationStats,
)

REQUIRED_FIELDS = ("name", "cuisine", "address")
OPTIONAL_FIELDS = ("phone", "website", "hours", "rating", "review_count")
LIST_FIELDS = ("specialties", "dietary_options", "best_for")

ERROR_PENALTY = 20
WARNING_PENALTY = 5
EXCESSIVE_DISTANCE_MILES = 25.0
MAX_SUGGESTIONS = 3

SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"test\s*restaurant", re.IGNORECASE),
    re.compile(r"sample\s*restaurant", re.IGNORECASE),
    re.compile(r"example\s*restaurant", re.IGNORECASE),
    re.compile(r"placeholder", re.IGNORECASE),
    re.compile(r"lorem\s*ipsum", re.IGNORECASE),
    re.compile(r"^restaurant\s*\d+$", re.IGNORECASE),
    re.compile(r"^the\s*restaurant$", re.IGNORECASE),
)
_REPEATED_NAME_RE = re.compile(r"^(.+)\s+\1$", re.IGNORECASE)

_PHONE_RE = re.compile(r"^\+?[1-9]?[\d\-()]{10,15}$")
_URL_ADAPTER = TypeAdapter(HttpUrl)


def suspicious_name_code(name: str) -> str | None:
    """Return the issue code for a placeholder-looking *name*, else ``None``."""
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(name):
            return "SUSPICIOUS_NAME_PATTERN"
    if _REPEATED_NAME_RE.match(name.strip()):
        return "DUPLICATE_NAME_PATTERN"
    return None


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE_RE.match(re.sub(r"\s", "", phone)))


def is_valid_url(url: str) -> bool:
    try:
        _URL_ADAPTER.validate_python(url)
    except ValidationError:
        return False
    return True


def _issue(field_name: str, severity: Severity, message: str, code: str) -> ValidationIssue:
    return ValidationIssue(field=field_name, severity=severity, message=message, code=code)


def _is_present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(value)


# ── Individual checks ────────────────────────────────────────────────────


def _check_required_fields(restaurant: Restaurant, issues: list[ValidationIssue]) -> None:
    for name in REQUIRED_FIELDS:
        if not _is_present(getattr(restaurant, name, None)):
            issues.append(_issue(
                name, Severity.error,
                f"Required field '{name}' is missing or empty",
                "REQUIRED_FIELD_MISSING",
            ))


def _check_data_quality(restaurant: Restaurant, issues: list[ValidationIssue]) -> None:
    name = restaurant.name.strip()
    if name and len(name) < 2:
        issues.append(_issue("name", Severity.error, "Restaurant name is too short", "NAME_TOO_SHORT"))
    elif len(name) > 100:
        issues.append(_issue("name", Severity.warning, "Restaurant name is unusually long", "NAME_TOO_LONG"))

    if restaurant.cuisine and not is_known_cuisine(restaurant.cuisine):
        issues.append(_issue(
            "cuisine", Severity.warning,
            f"Cuisine '{restaurant.cuisine}' is not in standard categories",
            "UNKNOWN_CUISINE",
        ))

    if restaurant.phone and not is_valid_phone(restaurant.phone):
        issues.append(_issue(
            "phone", Severity.warning, "Phone number format appears invalid", "INVALID_PHONE_FORMAT",
        ))

    if restaurant.website and not is_valid_url(restaurant.website):
        issues.append(_issue(
            "website", Severity.warning, "Website URL format appears invalid", "INVALID_URL_FORMAT",
        ))

    if restaurant.address and len(restaurant.address.strip()) < 10:
        issues.append(_issue(
            "address", Severity.warning, "Address appears to be incomplete", "INCOMPLETE_ADDRESS",
        ))


def _check_suspicious_patterns(restaurant: Restaurant, issues: list[ValidationIssue]) -> None:
    if not restaurant.name:
        return
    code = suspicious_name_code(restaurant.name)
    if code == "SUSPICIOUS_NAME_PATTERN":
        issues.append(_issue(
            "name", Severity.error,
            "Restaurant name appears to be placeholder or test data", code,
        ))
    elif code == "DUPLICATE_NAME_PATTERN":
        issues.append(_issue(
            "name", Severity.error, "Restaurant name contains suspicious repetition", code,
        ))


def _check_business_logic(restaurant: Restaurant, issues: list[ValidationIssue]) -> None:
    if restaurant.rating >= 4.5 and restaurant.review_count < 10:
        issues.append(_issue(
            "rating", Severity.warning,
            "High rating with very few reviews may be unreliable",
            "SUSPICIOUS_RATING_PATTERN",
        ))

    if restaurant.price_level >= 4 and not restaurant.website:
        issues.append(_issue(
            "website", Severity.warning,
            "High-end restaurants typically have websites",
            "MISSING_EXPECTED_FEATURE",
        ))

    ambiance = restaurant.ambiance.lower()
    low_price_high_end = restaurant.price_level <= 2 and ("upscale" in ambiance or "elegant" in ambiance)
    high_price_casual = restaurant.price_level >= 4 and "casual" in ambiance
    if low_price_high_end or high_price_casual:
        issues.append(_issue(
            "ambiance", Severity.warning,
            "Price level and ambiance description may be inconsistent",
            "INCONSISTENT_PRICE_AMBIANCE",
        ))


def _check_location_relevance(
    restaurant: Restaurant,
    location: LocationData,
    issues: list[ValidationIssue],
) -> None:
    if restaurant.address and location.city:
        if location.city.strip().lower() not in restaurant.address.lower():
            issues.append(_issue(
                "address", Severity.warning,
                f"Restaurant address may not be in search city ({location.city})",
                "LOCATION_MISMATCH",
            ))

    distance = restaurant.distance_miles
    if distance is not None and distance > EXCESSIVE_DISTANCE_MILES:
        issues.append(_issue(
            "distance", Severity.warning,
            "Restaurant is unusually far from search location",
            "EXCESSIVE_DISTANCE",
        ))


def _check_query_relevance(
    restaurant: Restaurant,
    query: str,
    issues: list[ValidationIssue],
    suggestions: list[str],
) -> None:
    query_lower = " ".join(query.lower().split())
    if not query_lower:
        return
    name = restaurant.name.lower()
    cuisine = restaurant.cuisine.lower()
    description = restaurant.description.lower()

    if query_lower in name or name in query_lower:
        return
    if query_lower in cuisine or cuisine in query_lower:
        return

    tokens = [t for t in query_lower.split() if len(t) > 2]
    if any(t in name or t in cuisine or t in description for t in tokens):
        return

    issues.append(_issue(
        "relevance", Severity.warning,
        "Restaurant may not be relevant to search query",
        "LOW_QUERY_RELEVANCE",
    ))
    suggestions.append(f'Try broader search terms than "{query.strip()}"')


def _note_synthesized_fields(restaurant: Restaurant, issues: list[ValidationIssue]) -> None:
    if restaurant.synthesized_fields:
        issues.append(_issue(
            "synthesizedFields", Severity.info,
            "Filled in without provider data: " + ", ".join(restaurant.synthesized_fields),
            "SYNTHESIZED_FIELDS",
        ))


# ── Scoring ──────────────────────────────────────────────────────────────


def completeness(restaurant: Restaurant) -> float:
    score = 0
    max_score = 0
    for name in REQUIRED_FIELDS:
        max_score += 30
        if _is_present(getattr(restaurant, name)):
            score += 30
    for name in OPTIONAL_FIELDS:
        max_score += 10
        if _is_present(getattr(restaurant, name)):
            score += 10
    for name in LIST_FIELDS:
        max_score += 5
        if _is_present(getattr(restaurant, name)):
            score += 5
    return score / max_score * 100


def raw_quality_score(restaurant: Restaurant, error_count: int, warning_count: int) -> float:
    """Unclamped, unrounded score; every error costs 20 and every warning 5."""
    score = 100.0
    score -= error_count * ERROR_PENALTY
    score -= warning_count * WARNING_PENALTY
    score += (completeness(restaurant) - 50) * 0.3

    if restaurant.rating >= 4.0 and restaurant.review_count >= 50:
        score += 10
    elif restaurant.rating >= 3.5 and restaurant.review_count >= 20:
        score += 5
    return score


def quality_score(restaurant: Restaurant, error_count: int, warning_count: int) -> int:
    # Round half up so integer penalties shift the result by exactly their size.
    rounded = math.floor(raw_quality_score(restaurant, error_count, warning_count) + 0.5)
    return max(0, min(100, rounded))


# ── Public API ───────────────────────────────────────────────────────────


def validate_restaurant(
    restaurant: Restaurant,
    search_location: LocationData | None = None,
    search_query: str | None = None,
    parser_warnings: Iterable[ValidationIssue] = (),
) -> ValidationResult:
    issues: list[ValidationIssue] = []
    suggestions: list[str] = []

    _check_required_fields(restaurant, issues)
    _check_data_quality(restaurant, issues)
    _check_suspicious_patterns(restaurant, issues)
    _check_business_logic(restaurant, issues)
    if search_location is not None:
        _check_location_relevance(restaurant, search_location, issues)
    if search_query:
        _check_query_relevance(restaurant, search_query, issues, suggestions)
    _note_synthesized_fields(restaurant, issues)

    seen = {(i.field, i.code) for i in issues}
    for warning in parser_warnings:
        if (warning.field, warning.code) not in seen:
            issues.append(warning)
            seen.add((warning.field, warning.code))

    errors = sum(1 for i in issues if i.severity == Severity.error)
    warnings = sum(1 for i in issues if i.severity == Severity.warning)

    if any(i.field in ("phone", "website") for i in issues if i.severity == Severity.warning):
        suggestions.append("Verify contact details with the restaurant directly")
    if set(restaurant.synthesized_fields) - {"imageUrl"}:
        suggestions.append("Some details are estimated; confirm hours and prices before visiting")

    return ValidationResult(
        is_valid=errors == 0,
        score=quality_score(restaurant, errors, warnings),
        issues=issues,
        suggestions=suggestions[:MAX_SUGGESTIONS],
    )


@dataclass
class ValidatedRestaurant:
    restaurant: Restaurant
    validation: ValidationResult


@dataclass
class ValidationReport:
    valid: list[ValidatedRestaurant] = field(default_factory=list)
    invalid: list[ValidatedRestaurant] = field(default_factory=list)
    statistics: ValidationStats | None = None


def quality_bucket(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


def validate_restaurants(
    restaurants: list[Restaurant],
    search_location: LocationData | None = None,
    search_query: str | None = None,
    parser_warnings: dict[str, list[ValidationIssue]] | None = None,
) -> ValidationReport:
    """Validate a list and rank the valid entries by quality score."""
    parser_warnings = parser_warnings or {}
    results = [
        ValidatedRestaurant(
            restaurant=r,
            validation=validate_restaurant(
                r, search_location, search_query, parser_warnings.get(r.id, ()),
            ),
        )
        for r in restaurants
    ]

    valid = [r for r in results if r.validation.is_valid]
    invalid = [r for r in results if not r.validation.is_valid]
    valid.sort(key=lambda r: r.validation.score, reverse=True)

    scores = [r.validation.score for r in results]
    distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
    for score in scores:
        distribution[quality_bucket(score)] += 1

    average = math.floor(sum(scores) / len(scores) + 0.5) if scores else 0

    return ValidationReport(
        valid=valid,
        invalid=invalid,
        statistics=ValidationStats(
            total_count=len(restaurants),
            valid_count=len(valid),
            invalid_count=len(invalid),
            average_score=average,
            quality_distribution=distribution,
        ),
    )
