"""Geographic helpers."""
import math
from typing import Any

EARTH_RADIUS_METERS = 6371000.0


def is_valid_latitude(value: Any) -> bool:
    return _is_finite_number(value) and -90.0 <= value <= 90.0


def is_valid_longitude(value: Any) -> bool:
    return _is_finite_number(value) and -180.0 <= value <= 180.0


def is_valid_coordinates(lat: Any, lon: Any) -> bool:
    return is_valid_latitude(lat) and is_valid_longitude(lon)


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using the Haversine formula."""
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def format_distance(distance_meters: float) -> str:
    """Format a distance as '250m' below one kilometre, '1.2km' above."""
    if distance_meters < 1000:
        return f"{round(distance_meters)}m"
    return f"{distance_meters / 1000:.1f}km"
