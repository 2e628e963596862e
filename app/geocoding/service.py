"""Buyer and property geocoding with a persistent answer cache and provider pacing.

Buyers without coordinates are located from their preferred location,
location or city label; properties from their city or the city part of their
address. Queries are suffixed with a default state. Provider answers,
including misses, are cached per ``"location,state"`` key so the same city is
geocoded at most once per cache TTL.
"""

import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Generic, List, Optional, Protocol, Tuple, TypeVar

from app.adapters.exceptions import AdapterError
from app.adapters.record_store import RecordStore
from app.cache.ttl import TTLCache
from app.domain.models import BuyerPreferences, GeocodeResult, PropertyAttributes
from app.logging import get_logger
from app.persistence import GeocodeCacheRepository, PersistenceError, get_session, is_initialized
from app.utils.timestamps import utc_now

logger = get_logger(__name__, component="geocoding")


class Geocoder(Protocol):
    def geocode(self, query: str) -> Optional[GeocodeResult]: ...


Located = TypeVar("Located", BuyerPreferences, PropertyAttributes)


@dataclass
class GeocodingOutcome(Generic[Located]):
    """Records after geocoding, in input order, plus counts.

    Attributes:
        items: Every input record, located ones replaced by a copy with coordinates
        located: The copies that received coordinates
        failed: Records with a location label the provider could not resolve
        write_failures: Coordinates that could not be stored on the record
    """

    items: List[Located] = field(default_factory=list)
    located: List[Located] = field(default_factory=list)
    failed: int = 0
    write_failures: int = 0

    @property
    def geocoded(self) -> int:
        return len(self.located)


class GeocodingService:
    """Locate buyers and properties that are missing coordinates.

    Args:
        geocoder: Provider client (``MapboxGeocoder`` in production)
        cache_ttl_seconds: How long answers (and misses) stay cached
        default_state: Appended to every query, e.g. ``"Metairie, LA"``
        pacing_ms: Minimum gap between two provider calls
        write_back: Store new coordinates on the buyer record
        sleep: Injectable for tests
        clock: Monotonic clock used for pacing

    The persistent cache is used when the database is initialized; otherwise
    an in-process cache with the same TTL is used.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        cache_ttl_seconds: int = 86400,
        default_state: str = "LA",
        pacing_ms: int = 100,
        write_back: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.geocoder = geocoder
        self.cache_ttl_seconds = cache_ttl_seconds
        self.default_state = default_state
        self.pacing_seconds = max(pacing_ms, 0) / 1000.0
        self.write_back = write_back
        self._sleep = sleep
        self._clock = clock
        self._last_call: Optional[float] = None
        self._memory = TTLCache(cache_ttl_seconds, clock=clock)
        self.provider_calls = 0

    @staticmethod
    def cache_key(location: str, state: str) -> str:
        return f"{location},{state}".lower().strip()

    def locate(self, location: Optional[str]) -> Optional[GeocodeResult]:
        """Coordinates for a location label, or None if it cannot be resolved."""
        location = (location or "").strip()
        if not location:
            return None

        key = self.cache_key(location, self.default_state)
        hit, cached = self._lookup(key)
        if hit:
            logger.debug(
                f"Geocode cache hit for {key!r}",
                extra={"event": "geocoding.cache.hit", "query_key": key, "found": cached is not None},
            )
            return cached

        query = f"{location}, {self.default_state}" if self.default_state else location
        self._pace()
        result = self.geocoder.geocode(query)
        self.provider_calls += 1
        self._remember(key, query, result)
        return result

    def ensure_buyer_coordinates(
        self,
        buyers: List[BuyerPreferences],
        store: Optional[RecordStore] = None,
    ) -> GeocodingOutcome[BuyerPreferences]:
        """Fill in coordinates for buyers that lack them.

        Buyers that already have coordinates, or have no location label, are
        passed through unchanged. New coordinates are used for the current
        run even if writing them back to the store fails.

        Args:
            buyers: Buyers in the order they should be returned
            store: Receives new coordinates when ``write_back`` is enabled

        Returns:
            GeocodingOutcome with the buyers in input order and the counts
        """
        outcome = self._fill_missing(buyers, "buyer")

        if self.write_back and store is not None:
            for buyer in outcome.located:
                try:
                    store.update_buyer_coordinates(buyer.record_id, buyer.latitude, buyer.longitude)
                except AdapterError as e:
                    outcome.write_failures += 1
                    logger.error(
                        f"Failed to store coordinates on buyer {buyer.record_id}: {e}",
                        extra={"event": "geocoding.buyer.write_failed", "buyer_id": buyer.record_id},
                    )

        self._log_outcome(outcome, "buyer")
        return outcome

    def ensure_property_coordinates(
        self, properties: List[PropertyAttributes]
    ) -> GeocodingOutcome[PropertyAttributes]:
        """Fill in coordinates for properties that lack them, for this run only.

        A property is located by its city, or by the city part of its address
        when the city field is empty. Coordinates are never written back.
        """
        outcome = self._fill_missing(properties, "property")
        self._log_outcome(outcome, "property")
        return outcome

    def _fill_missing(self, items: List[Located], kind: str) -> GeocodingOutcome[Located]:
        outcome: GeocodingOutcome[Located] = GeocodingOutcome()

        for item in items:
            if item.coordinates is not None:
                outcome.items.append(item)
                continue

            label = item.display_location
            if not label:
                logger.debug(
                    f"{kind.capitalize()} {item.record_id} has no location data, skipping",
                    extra={"event": f"geocoding.{kind}.no_location", "record_id": item.record_id},
                )
                outcome.items.append(item)
                continue

            result = self.locate(label)
            if result is None:
                logger.warning(
                    f"Failed to geocode {label!r} for {kind} {item.record_id}",
                    extra={"event": f"geocoding.{kind}.failed", "record_id": item.record_id},
                )
                outcome.failed += 1
                outcome.items.append(item)
                continue

            located = item.model_copy(update={"latitude": result.latitude, "longitude": result.longitude})
            outcome.items.append(located)
            outcome.located.append(located)

        return outcome

    @staticmethod
    def _log_outcome(outcome: "GeocodingOutcome", kind: str) -> None:
        if outcome.geocoded or outcome.failed:
            logger.info(
                f"Geocoded {outcome.geocoded} {kind} records ({outcome.failed} failed)",
                extra={
                    "event": f"geocoding.{kind}.completed",
                    "geocoded": outcome.geocoded,
                    "failed": outcome.failed,
                    "write_failures": outcome.write_failures,
                },
            )

    def purge_expired(self) -> int:
        """Remove persistent cache entries older than the TTL; returns the count."""
        if not is_initialized():
            return 0
        cutoff = utc_now() - timedelta(seconds=self.cache_ttl_seconds)
        try:
            with get_session() as session:
                removed = GeocodeCacheRepository(session).purge_older_than(cutoff)
        except PersistenceError as e:
            logger.warning(
                f"Failed to purge geocode cache: {e}",
                extra={"event": "geocoding.cache.purge_failed"},
            )
            return 0
        if removed:
            logger.info(
                f"Purged {removed} expired geocode cache entries",
                extra={"event": "geocoding.cache.purged", "removed": removed},
            )
        return removed

    def _pace(self) -> None:
        if self._last_call is not None and self.pacing_seconds > 0:
            wait = self.pacing_seconds - (self._clock() - self._last_call)
            if wait > 0:
                self._sleep(wait)
        self._last_call = self._clock()

    def _lookup(self, key: str) -> Tuple[bool, Optional[GeocodeResult]]:
        if is_initialized():
            try:
                with get_session() as session:
                    return GeocodeCacheRepository(session).lookup(key, self.cache_ttl_seconds)
            except PersistenceError as e:
                logger.warning(
                    f"Geocode cache read failed for {key!r}: {e}",
                    extra={"event": "geocoding.cache.read_failed", "query_key": key},
                )
                return False, None

        # Misses are stored as (None,) so they are distinguishable from absence
        entry = self._memory.get(key)
        if entry is None:
            return False, None
        return True, entry[0]

    def _remember(self, key: str, query: str, result: Optional[GeocodeResult]) -> None:
        if is_initialized():
            try:
                with get_session() as session:
                    GeocodeCacheRepository(session).store(key, query, result)
                return
            except PersistenceError as e:
                logger.warning(
                    f"Geocode cache write failed for {key!r}: {e}",
                    extra={"event": "geocoding.cache.write_failed", "query_key": key},
                )
        self._memory.set(key, (result,))
