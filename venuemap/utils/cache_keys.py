"""
Deterministic cache keys.

Near-identical queries must collapse to one slot: coordinates are quantized
to three decimals (about 100m), radii are rounded up to 500m steps and free
text is lowercased with whitespace collapsed.
"""
import math
from enum import Enum
from typing import Optional

from venuemap.utils.normalizers import normalize_query

COORDINATE_DECIMALS = 3
RADIUS_STEP_METERS = 500


class CacheCategory(str, Enum):
    """Cache categories; each one owns a default TTL."""
    NEARBY = "nearby"
    DETAILS = "place_details"
    TEXT = "text_search"
    CITY = "city_search"
    CITY_PLACES = "city_places"


def quantize_coordinate(value: float) -> str:
    # + 0.0 folds -0.0 into 0.0
    return f"{round(value, COORDINATE_DECIMALS) + 0.0:.{COORDINATE_DECIMALS}f}"


def quantize_radius(radius: float) -> int:
    return max(1, math.ceil(radius / RADIUS_STEP_METERS)) * RADIUS_STEP_METERS


def nearby_key(latitude: float, longitude: float, radius: float, category: str) -> str:
    return ":".join([
        CacheCategory.NEARBY.value,
        quantize_coordinate(latitude),
        quantize_coordinate(longitude),
        str(quantize_radius(radius)),
        category,
    ])


def text_search_key(query: str, latitude: Optional[float] = None, longitude: Optional[float] = None) -> str:
    if latitude is None or longitude is None:
        location = ["-", "-"]
    else:
        location = [quantize_coordinate(latitude), quantize_coordinate(longitude)]
    return ":".join([CacheCategory.TEXT.value, normalize_query(query), *location])


def details_key(provider_id: str) -> str:
    return f"{CacheCategory.DETAILS.value}:{provider_id}"


def city_search_key(query: str, limit: int) -> str:
    return f"{CacheCategory.CITY.value}:{normalize_query(query)}:{limit}"


def city_places_key(city_id: str, query: str, category: Optional[str], limit: int) -> str:
    return ":".join([
        CacheCategory.CITY_PLACES.value,
        city_id,
        normalize_query(query),
        category or "all",
        str(limit),
    ])
