"""Geographic helpers used by the scorer: haversine distance and address parsing."""

from .distance import EARTH_RADIUS_MILES, distance_miles, has_valid_coordinates, is_within_radius
from .zipcodes import (
    extract_city,
    extract_zip,
    filter_by_preferred_zip,
    is_in_preferred_zip,
    is_valid_zip,
    normalize_zip,
    parse_preferred_zips,
    resolve_property_zip,
)

__all__ = [
    "EARTH_RADIUS_MILES",
    "distance_miles",
    "has_valid_coordinates",
    "is_within_radius",
    "extract_city",
    "extract_zip",
    "filter_by_preferred_zip",
    "is_in_preferred_zip",
    "is_valid_zip",
    "normalize_zip",
    "parse_preferred_zips",
    "resolve_property_zip",
]
