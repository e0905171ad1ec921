"""
Closed cuisine category set and the lookup tables keyed on it.

``normalize_cuisine`` is a pure, table-driven function: a direct,
case-insensitive match against ``CUISINE_CATEGORIES`` first, then the
synonym map for common venue words ("trattoria", "taqueria", ...).
"""
from __future__ import annotations

CUISINE_CATEGORIES: tuple[str, ...] = (
    "Italian", "Japanese", "Mexican", "Chinese", "Indian", "Thai", "French",
    "American", "Mediterranean", "Korean", "Vietnamese", "Greek", "Spanish",
    "Lebanese", "Turkish", "Moroccan", "Ethiopian", "German", "Brazilian",
    "Peruvian", "Fusion", "Asian Fusion", "Contemporary", "International",
    "Seafood", "Steakhouse", "BBQ", "Pizza", "Sushi", "Ramen", "Burger",
    "Cafe", "Deli", "Bakery", "Fast Food", "Fine Dining", "Casual Dining",
)

_CATEGORY_BY_LOWER: dict[str, str] = {c.lower(): c for c in CUISINE_CATEGORIES}

CUISINE_SYNONYMS: dict[str, str] = {
    "indo": "Indian",
    "north indian": "Indian",
    "south indian": "Indian",
    "asian": "Asian Fusion",
    "pan asian": "Asian Fusion",
    "tex-mex": "Mexican",
    "tex mex": "Mexican",
    "taqueria": "Mexican",
    "cantina": "Mexican",
    "continental": "International",
    "fast-food": "Fast Food",
    "diner": "American",
    "pub": "American",
    "gastropub": "American",
    "grill": "American",
    "bistro": "French",
    "brasserie": "French",
    "trattoria": "Italian",
    "ristorante": "Italian",
    "osteria": "Italian",
    "pizzeria": "Pizza",
    "sushi bar": "Sushi",
    "izakaya": "Japanese",
    "ramen shop": "Ramen",
    "noodle bar": "Ramen",
    "barbecue": "BBQ",
    "bar-b-q": "BBQ",
    "steak house": "Steakhouse",
    "chophouse": "Steakhouse",
    "fish": "Seafood",
    "oyster bar": "Seafood",
    "dim sum": "Chinese",
    "szechuan": "Chinese",
    "sichuan": "Chinese",
    "cantonese": "Chinese",
    "pho": "Vietnamese",
    "tapas": "Spanish",
    "coffee shop": "Cafe",
    "coffee": "Cafe",
    "café": "Cafe",
    "patisserie": "Bakery",
    "delicatessen": "Deli",
    "burgers": "Burger",
    "hamburger": "Burger",
    "middle eastern": "Lebanese",
}

# First keyword doubles as the provider query term for the category.
CUISINE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Italian": ("italian", "pasta", "pizza", "trattoria", "ristorante"),
    "Japanese": ("japanese", "sushi", "ramen", "hibachi", "izakaya"),
    "Mexican": ("mexican", "tacos", "cantina", "taqueria", "tex-mex"),
    "Chinese": ("chinese", "dim sum", "szechuan", "mandarin", "cantonese"),
    "Indian": ("indian", "curry", "tandoori", "biryani", "masala"),
    "Thai": ("thai", "pad thai", "tom yum", "curry"),
    "French": ("french", "bistro", "brasserie", "crepes"),
    "American": ("american", "grill", "diner", "burger", "steakhouse"),
    "Mediterranean": ("mediterranean", "greek", "lebanese", "hummus", "gyro"),
    "Korean": ("korean", "bbq", "kimchi", "bulgogi"),
    "Sushi": ("sushi", "sashimi", "nigiri", "omakase"),
    "Ramen": ("ramen", "noodles", "tonkotsu"),
    "Pizza": ("pizza", "pizzeria", "slice"),
    "Seafood": ("seafood", "fish", "oysters", "lobster"),
    "Steakhouse": ("steak", "steakhouse", "chophouse"),
    "BBQ": ("bbq", "barbecue", "brisket", "ribs"),
    "Burger": ("burger", "burgers", "fries"),
    "Cafe": ("cafe", "coffee", "brunch"),
}

DEFAULT_PRICE_LEVELS: dict[str, int] = {
    "French": 4,
    "Steakhouse": 4,
    "Sushi": 4,
    "Fine Dining": 5,
    "Pizza": 2,
    "Burger": 2,
    "Fast Food": 1,
    "Cafe": 2,
    "Bakery": 1,
    "Deli": 1,
    "American": 3,
    "Mexican": 2,
    "Chinese": 2,
    "Indian": 2,
    "Thai": 2,
    "Vietnamese": 2,
}


def normalize_cuisine(value: str | None) -> str | None:
    """Map a free-form cuisine label onto a category, or ``None`` if unknown."""
    if not value:
        return None
    key = " ".join(value.strip().lower().split())
    if not key:
        return None
    if key in _CATEGORY_BY_LOWER:
        return _CATEGORY_BY_LOWER[key]
    if key in CUISINE_SYNONYMS:
        return CUISINE_SYNONYMS[key]
    # "Italian restaurant", "Japanese cuisine"
    for suffix in (" restaurant", " cuisine", " food", " kitchen"):
        if key.endswith(suffix):
            return normalize_cuisine(key[: -len(suffix)])
    return None


def is_known_cuisine(value: str | None) -> bool:
    return value in _CATEGORY_BY_LOWER.values()


def cuisine_terms(category: str) -> tuple[str, ...]:
    """Lower-case words a query may use to mean *category*."""
    return (category.lower(),) + CUISINE_KEYWORDS.get(category, ())
