"""Mapbox forward geocoding client."""

from typing import Optional, Sequence
from urllib.parse import quote

from app.domain.models import GeocodeResult
from app.logging import get_logger

from .base import BaseHTTPClient
from .exceptions import AdapterConfigurationError, AdapterError

logger = get_logger(__name__, component="mapbox")

MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
DEFAULT_PLACE_TYPES = ("address", "place", "postcode")


def source_for_place_types(place_types: Sequence[str]) -> str:
    """Map Mapbox ``place_type`` values onto address/zip/city."""
    if "address" in place_types:
        return "address"
    if "postcode" in place_types:
        return "zip"
    return "city"


def confidence_for_relevance(relevance: Optional[float]) -> str:
    if relevance is None:
        return "low"
    if relevance >= 0.9:
        return "high"
    if relevance >= 0.7:
        return "medium"
    return "low"


class MapboxGeocoder(BaseHTTPClient):
    """Resolve free-text locations to coordinates.

    ``geocode`` never raises for provider problems: a failed lookup is logged
    and reported as None, which the scorer treats as "no coordinates".
    """

    def __init__(
        self,
        access_token: str,
        country: str = "us",
        place_types: Sequence[str] = DEFAULT_PLACE_TYPES,
        timeout: int = 30,
        user_agent: str = "BuyerPropertyMatcher/1.0",
        api_url: str = MAPBOX_GEOCODING_URL,
    ) -> None:
        super().__init__(timeout=timeout, user_agent=user_agent)
        if not access_token:
            raise AdapterConfigurationError("Mapbox access token is required")
        self._access_token = access_token
        self.country = country
        self.place_types = tuple(place_types)
        self.api_url = api_url.rstrip("/")

    @property
    def service_name(self) -> str:
        return "mapbox"

    def geocode(self, query: str) -> Optional[GeocodeResult]:
        query = (query or "").strip()
        if not query:
            return None

        url = f"{self.api_url}/{quote(query, safe='')}.json"
        params = {
            "access_token": self._access_token,
            "country": self.country,
            "types": ",".join(self.place_types),
            "limit": 1,
        }
        try:
            data = self._make_request(url, params=params, log_url=url)
        except AdapterError as e:
            logger.warning(
                f"Geocoding failed for {query!r}: {e}",
                extra={"event": "mapbox.geocode.failed", "query": query},
            )
            return None

        features = data.get("features") if isinstance(data, dict) else None
        if not features:
            logger.info(
                f"No geocoding results for {query!r}",
                extra={"event": "mapbox.geocode.no_results", "query": query},
            )
            return None

        feature = features[0]
        try:
            lng, lat = feature["center"]
            result = GeocodeResult(
                query=query,
                latitude=lat,
                longitude=lng,
                formatted_address=feature.get("place_name"),
                source=source_for_place_types(feature.get("place_type") or []),
                confidence=confidence_for_relevance(feature.get("relevance")),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Malformed geocoding result for {query!r}: {e}",
                extra={"event": "mapbox.geocode.invalid", "query": query},
            )
            return None

        logger.info(
            f"Geocoded {query!r} to {result.latitude:.4f}, {result.longitude:.4f}",
            extra={
                "event": "mapbox.geocode.succeeded",
                "query": query,
                "source": result.source,
                "confidence": result.confidence,
            },
        )
        return result
