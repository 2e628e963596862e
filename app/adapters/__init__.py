"""Clients for the external services the matcher talks to.

- Airtable: airtable.AirtableClient (records API)
- Mapbox: mapbox.MapboxGeocoder (forward geocoding)
- record_store.RecordStore: what the pipeline needs from the backing store,
  implemented by record_store.AirtableRecordStore

Use the factory functions to build them from configuration:
    from app.adapters.factory import build_record_store, build_geocoder
    store = build_record_store(app_config, env_config)

Exception handling:
    from app.adapters.exceptions import AdapterError, AdapterHTTPError, AdapterTimeoutError
"""

from .airtable import AirtableClient
from .base import BaseHTTPClient, chunked
from .exceptions import (
    AdapterConfigurationError,
    AdapterError,
    AdapterHTTPError,
    AdapterResponseError,
    AdapterTimeoutError,
)
from .factory import build_geocoder, build_record_store
from .mapbox import MapboxGeocoder
from .record_store import AirtableRecordStore, RecordStore

__all__ = [
    # Base and factories
    "BaseHTTPClient",
    "chunked",
    "build_record_store",
    "build_geocoder",
    # Clients and stores
    "AirtableClient",
    "MapboxGeocoder",
    "RecordStore",
    "AirtableRecordStore",
    # Exceptions
    "AdapterError",
    "AdapterHTTPError",
    "AdapterTimeoutError",
    "AdapterResponseError",
    "AdapterConfigurationError",
]
