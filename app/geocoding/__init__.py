"""Buyer geocoding: paced provider calls behind a persistent cache."""

from .service import Geocoder, GeocodingOutcome, GeocodingService

__all__ = ["Geocoder", "GeocodingOutcome", "GeocodingService"]
