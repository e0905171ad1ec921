from __future__ import annotations

import pytest
from pydantic import ValidationError

from restaurant_search.search.context import (
    build_context,
    build_query_text,
    check_context,
    derive_cache_key,
    location_label,
    query_confidence,
    simplify_query,
)
from restaurant_search.search.models import LocationData, SearchRequest

TOKYO = {"latitude": 35.6762, "longitude": 139.6503, "city": "Tokyo", "country": "Japan"}


def _ctx(**overrides):
    data = {"query": "sushi", "location": TOKYO}
    data.update(overrides)
    return build_context(SearchRequest(**data))


def test_cache_key_ignores_case_whitespace_and_dietary_order():
    a = _ctx(
        query="  Sushi   Omakase ",
        location={**TOKYO, "city": "TOKYO"},
        cuisine="Japanese",
        dietaryRestrictions=["Vegan", "gluten-free"],
    )
    b = _ctx(
        query="sushi omakase",
        location={**TOKYO, "city": "tokyo"},
        cuisine="japanese",
        dietaryRestrictions=["Gluten-Free", "vegan", "VEGAN"],
    )
    assert derive_cache_key(a) == derive_cache_key(b)
    assert a.cache_key == b.cache_key


def test_cache_key_absorbs_gps_jitter():
    a = _ctx(location={**TOKYO, "latitude": 35.67621, "longitude": 139.65034})
    b = _ctx(location={**TOKYO, "latitude": 35.67619, "longitude": 139.65029})
    assert a.cache_key == b.cache_key


def test_cache_key_layout():
    ctx = _ctx(cuisine="Japanese", priceRange=[2, 3], dietaryRestrictions=["Vegan"], radius=5)
    assert ctx.cache_key == "sushi|35.676,139.650|tokyo|japanese|vegan|2-3|5"


def test_cache_key_distinguishes_different_searches():
    assert _ctx(query="sushi").cache_key != _ctx(query="ramen").cache_key
    assert _ctx(priceRange=[1, 2]).cache_key != _ctx(priceRange=[1, 3]).cache_key
    assert _ctx(radius=5).cache_key != _ctx(radius=10).cache_key


def test_cache_key_treats_negative_zero_as_zero():
    a = _ctx(location={"latitude": -0.0001, "longitude": 0.0, "city": "Null Island"})
    b = _ctx(location={"latitude": 0.0001, "longitude": -0.0, "city": "Null Island"})
    assert a.cache_key == b.cache_key


def test_build_context_defaults():
    ctx = build_context(SearchRequest(location=TOKYO), default_max_results=8)
    assert ctx.query == ""
    assert ctx.radius == 10.0
    assert ctx.max_results == 8
    assert ctx.price_range is None


def test_context_requires_coordinates_or_place_name():
    check = check_context(_ctx(location={"country": "Japan"}))
    assert check.resolvable is False

    city_only = check_context(_ctx(location={"city": "Tokyo"}))
    assert city_only.resolvable is True
    assert "Location coordinates are missing" in city_only.issues

    coords_only = check_context(_ctx(location={"latitude": 1.0, "longitude": 2.0}))
    assert coords_only.resolvable is True


def test_context_without_query_or_cuisine_is_incomplete():
    check = check_context(_ctx(query=""))
    assert check.resolvable is True
    assert check.complete is False

    assert check_context(_ctx(query="", cuisine="Thai")).complete is True


def test_price_range_validation():
    with pytest.raises(ValidationError):
        SearchRequest(location=TOKYO, priceRange=[4, 2])
    with pytest.raises(ValidationError):
        SearchRequest(location=TOKYO, priceRange=[0, 2])
    with pytest.raises(ValidationError):
        SearchRequest(location=TOKYO, priceRange=[1, 2, 3])


def test_out_of_range_coordinates_rejected():
    with pytest.raises(ValidationError):
        LocationData(latitude=91, longitude=0)


def test_query_text_includes_filters_and_location():
    ctx = _ctx(
        query="find good sushi",
        location={**TOKYO, "state": "Tokyo"},
        dietaryRestrictions=["Vegan"],
        priceRange=[4, 5],
    )
    assert build_query_text(ctx) == "sushi vegan friendly luxury restaurants in Tokyo, Tokyo, Japan"


def test_query_text_adds_cuisine_term():
    ctx = _ctx(query="", cuisine="trattoria")
    assert build_query_text(ctx) == "italian restaurants in Tokyo, Japan"


def test_query_text_without_terms():
    ctx = _ctx(query="restaurants near me")
    assert build_query_text(ctx) == "best restaurants in Tokyo, Japan"


def test_location_label_falls_back_to_coordinates():
    assert location_label(LocationData(latitude=1.5, longitude=2.5)) == "1.5, 2.5"
    assert location_label(LocationData(city="Paris")) == "Paris"


def test_simplify_query_keeps_two_terms():
    assert simplify_query("Find me some spicy vegan ramen near downtown") == "spicy vegan"
    assert simplify_query("") == ""


def test_query_confidence_rewards_specificity():
    vague = query_confidence(_ctx(query="", location={"latitude": 1.0, "longitude": 2.0}))
    specific = query_confidence(_ctx(
        query="spicy tonkotsu ramen",
        location={**TOKYO, "state": "Tokyo", "postalCode": "100-0001"},
        cuisine="Ramen",
        dietaryRestrictions=["Halal"],
        priceRange=[1, 2],
    ))
    assert vague == 50
    assert specific == 100
