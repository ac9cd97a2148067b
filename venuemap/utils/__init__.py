"""Utility functions for the backend."""

from venuemap.utils.geo import format_distance, haversine_meters, is_valid_coordinates
from venuemap.utils.normalizers import contains_word, normalize_name, normalize_query

__all__ = [
    "format_distance",
    "haversine_meters",
    "is_valid_coordinates",
    "contains_word",
    "normalize_name",
    "normalize_query",
]
