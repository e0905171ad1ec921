"""
Deterministic defaults for optional restaurant fields.

The parser fills in anything the provider left out so every canonical
record is complete. Values come from cuisine- and price-keyed tables;
where a table offers several options the choice is drawn from a
``random.Random`` seeded with the record identity, so the same record
always synthesises the same values.
"""
from __future__ import annotations

import random
from urllib.parse import quote

from .cuisine import DEFAULT_PRICE_LEVELS

_DESCRIPTIONS: dict[str, tuple[str, ...]] = {
    "Italian": (
        "Authentic Italian cuisine with traditional recipes",
        "Classic Italian dishes in a warm atmosphere",
    ),
    "Japanese": (
        "Fresh sushi and authentic Japanese flavors",
        "Traditional Japanese cuisine with modern touches",
    ),
    "Sushi": (
        "Fresh sushi and sashimi prepared to order",
        "Seasonal fish served at a classic sushi counter",
    ),
    "Mexican": (
        "Vibrant Mexican flavors with fresh ingredients",
        "Authentic Mexican dishes and festive atmosphere",
    ),
    "Chinese": (
        "Traditional Chinese cuisine with authentic flavors",
        "Classic Chinese dishes prepared with care",
    ),
    "Indian": (
        "Aromatic Indian spices and traditional recipes",
        "Rich Indian flavors and authentic preparations",
    ),
    "Thai": (
        "Balanced Thai flavors with fresh herbs",
        "Authentic Thai dishes from family recipes",
    ),
    "French": (
        "Classic French cooking with seasonal ingredients",
        "Elegant French dishes and a curated wine list",
    ),
    "American": (
        "Contemporary American cuisine with local ingredients",
        "Classic American dishes with modern presentation",
    ),
}
_DEFAULT_DESCRIPTIONS = (
    "Quality cuisine prepared with fresh ingredients",
    "Delicious dishes in a welcoming atmosphere",
)

_SPECIALTIES: dict[str, tuple[str, ...]] = {
    "Italian": ("Pasta", "Pizza", "Risotto", "Osso Buco"),
    "Japanese": ("Sushi", "Ramen", "Tempura", "Miso Soup"),
    "Sushi": ("Omakase", "Nigiri", "Sashimi", "Hand Rolls"),
    "Ramen": ("Tonkotsu Ramen", "Gyoza", "Shoyu Ramen"),
    "Mexican": ("Tacos", "Guacamole", "Enchiladas", "Churros"),
    "Chinese": ("Kung Pao Chicken", "Fried Rice", "Dim Sum", "Hot Pot"),
    "Indian": ("Butter Chicken", "Biryani", "Naan", "Tandoori"),
    "Thai": ("Pad Thai", "Green Curry", "Tom Yum Soup"),
    "French": ("Coq au Vin", "Steak Frites", "Creme Brulee"),
    "American": ("Burgers", "BBQ Ribs", "Mac and Cheese", "Apple Pie"),
    "Korean": ("Bibimbap", "Bulgogi", "Kimchi Stew"),
    "Mediterranean": ("Hummus", "Falafel", "Grilled Octopus"),
    "Pizza": ("Margherita Pizza", "Calzone", "Garlic Knots"),
    "Seafood": ("Oysters", "Grilled Salmon", "Lobster Roll"),
    "Steakhouse": ("Ribeye", "Filet Mignon", "Creamed Spinach"),
}
_DEFAULT_SPECIALTIES = ("House Special", "Chef's Choice")
_UPSCALE_SPECIALTY = "Tasting Menu"

_DIETARY_OPTIONS = ("Vegetarian", "Vegan", "Gluten-Free", "Dairy-Free")
_CUISINE_DIETARY: dict[str, tuple[str, ...]] = {
    "Indian": ("Vegetarian", "Vegan", "Halal"),
    "Mediterranean": ("Vegetarian", "Vegan", "Halal"),
    "Lebanese": ("Vegetarian", "Halal"),
    "Thai": ("Vegetarian", "Gluten-Free"),
    "Japanese": ("Gluten-Free", "Dairy-Free"),
    "Sushi": ("Gluten-Free", "Dairy-Free"),
}

_HOURS = (
    "Mon-Thu 11am-10pm, Fri-Sat 11am-11pm, Sun 12pm-9pm",
    "Daily 11am-10pm",
    "Mon-Sat 5pm-11pm, Sun Closed",
    "Daily 12pm-9pm",
)

_NAME_PRICE_HINTS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("fine", "upscale", "premium"), 5),
    (("bistro", "brasserie"), 4),
    (("casual", "family"), 2),
    (("fast", "quick", "express"), 1),
)


def seeded_random(*parts: object) -> random.Random:
    """Random source whose sequence depends only on *parts*."""
    return random.Random("|".join(str(p) for p in parts))


def describe(cuisine: str, rng: random.Random) -> str:
    return rng.choice(_DESCRIPTIONS.get(cuisine, _DEFAULT_DESCRIPTIONS))


def infer_price_level(name: str, cuisine: str) -> int:
    name_lower = name.lower()
    for hints, level in _NAME_PRICE_HINTS:
        if any(h in name_lower for h in hints):
            return level
    return DEFAULT_PRICE_LEVELS.get(cuisine, 3)


def fallback_rating(rng: random.Random) -> float:
    """3.0 to 5.0, one decimal."""
    return round(rng.uniform(3.0, 5.0), 1)


def fallback_review_count(rng: random.Random) -> int:
    return rng.randint(50, 1049)


def fallback_hours(rng: random.Random) -> str:
    return rng.choice(_HOURS)


def specialties_for(cuisine: str, price_level: int) -> list[str]:
    specialties = list(_SPECIALTIES.get(cuisine, _DEFAULT_SPECIALTIES)[:3])
    if price_level >= 4:
        specialties.append(_UPSCALE_SPECIALTY)
    return specialties


def dietary_options_for(cuisine: str, rng: random.Random) -> list[str]:
    if cuisine in _CUISINE_DIETARY:
        return list(_CUISINE_DIETARY[cuisine])
    return list(_DIETARY_OPTIONS[: rng.randint(1, 2)])


def ambiance_for(price_level: int) -> str:
    if price_level >= 4:
        return "Upscale and elegant"
    if price_level <= 2:
        return "Casual and family-friendly"
    return "Modern and trendy"


def best_for(price_level: int) -> list[str]:
    if price_level >= 4:
        return ["Date Night", "Special Occasions"]
    if price_level <= 2:
        return ["Family Dinner", "Quick Bite"]
    return ["Casual Dining", "Group Dining"]


def wait_time_for(price_level: int) -> str:
    if price_level >= 4:
        return "20-30 min"
    if price_level <= 2:
        return "5-15 min"
    return "10-20 min"


def placeholder_image(name: str) -> str:
    return f"/placeholder.svg?height=200&width=300&text={quote(name)}"
