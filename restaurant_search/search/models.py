from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Models exchanged with clients use camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DataSource(str, Enum):
    web_search = "web_search"
    fallback = "fallback"


class Severity(str, Enum):
    error = "error"
    warning = "warning"
    info = "info"


# ── Request ──────────────────────────────────────────────────────────────


class LocationData(_WireModel):
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    address: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class SearchRequest(_WireModel):
    query: str = Field(default="", max_length=500)
    location: LocationData
    radius: float = Field(default=10.0, gt=0, le=100, description="Search radius in miles")
    price_range: list[int] | None = Field(
        default=None,
        description="Inclusive [min, max] price levels, each between 1 and 5",
    )
    cuisine: str | None = None
    dietary_restrictions: list[str] = Field(default_factory=list)
    max_results: int | None = Field(default=None, ge=1, le=50)

    @field_validator("price_range")
    @classmethod
    def _check_price_range(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            return v
        if len(v) != 2:
            raise ValueError("price range must have exactly 2 values")
        low, high = v
        if not (1 <= low <= 5 and 1 <= high <= 5):
            raise ValueError("price range values must be between 1 and 5")
        if low > high:
            raise ValueError("price range minimum cannot exceed maximum")
        return v


# ── Canonical entities ───────────────────────────────────────────────────


class Coordinates(_WireModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class Restaurant(_WireModel):
    id: str
    name: str
    cuisine: str
    description: str
    price_level: int = Field(..., ge=1, le=5)
    rating: float = Field(..., ge=1.0, le=5.0)
    review_count: int = Field(..., ge=0)
    address: str
    phone: str | None = None
    website: str | None = None
    hours: str | None = None
    specialties: list[str] = Field(default_factory=list)
    dietary_options: list[str] = Field(default_factory=list)
    ambiance: str = ""
    best_for: list[str] = Field(default_factory=list)
    estimated_wait_time: str | None = None
    distance: str = "Unknown"
    match_score: int = Field(default=0, ge=0, le=100)
    match_reasons: list[str] = Field(default_factory=list)
    image_url: str | None = None
    coordinates: Coordinates | None = None
    data_source: DataSource = DataSource.web_search
    synthesized_fields: list[str] = Field(default_factory=list)
    quality_score: int | None = None

    @property
    def distance_miles(self) -> float | None:
        if not self.distance or self.distance == "Unknown":
            return None
        try:
            return float(self.distance.replace("mi", "").strip())
        except ValueError:
            return None


class ValidationIssue(_WireModel):
    field: str
    severity: Severity
    message: str
    code: str


class ValidationResult(_WireModel):
    is_valid: bool
    score: int = Field(..., ge=0, le=100)
    issues: list[ValidationIssue] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.error]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.warning]


class InvalidRecord(_WireModel):
    data: dict[str, Any]
    reasons: list[str]
    codes: list[str] = Field(default_factory=list)


class ParseStats(_WireModel):
    total_processed: int
    valid_count: int
    invalid_count: int
    quality_score: int


class ValidationStats(_WireModel):
    total_count: int
    valid_count: int
    invalid_count: int
    average_score: int
    quality_distribution: dict[str, int]


# ── Response ─────────────────────────────────────────────────────────────


class ErrorInfo(_WireModel):
    type: str
    code: str
    message: str
    fallback_strategy: str


class SearchMetadata(_WireModel):
    query: str
    location: str
    total_found: int
    search_timestamp: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    used_fallback: bool = False
    data_source: str = DataSource.web_search.value
    message: str | None = None
    attempts: int = 1
    context_complete: bool = True
    quality_stats: ParseStats | None = None
    validation_stats: ValidationStats | None = None
    error_info: ErrorInfo | None = None


class CachedResult(BaseModel):
    """Payload stored in the search cache: a validated result set."""

    restaurants: list[Restaurant]
    search_metadata: SearchMetadata


class SearchResponse(_WireModel):
    restaurants: list[Restaurant]
    total_results: int
    search_metadata: SearchMetadata
    search_params: SearchRequest
    cached: bool = False

    @model_validator(mode="after")
    def _total_matches(self) -> "SearchResponse":
        if self.total_results != len(self.restaurants):
            raise ValueError("total_results must equal the number of restaurants")
        return self


class ErrorResponse(_WireModel):
    error: str
    suggestions: list[str]
    can_retry: bool
