"""Factory functions wiring clients and stores from configuration."""

from typing import Optional

from app.config.environment import EnvironmentConfig
from app.config.models import AppConfig
from app.logging import get_logger

from .airtable import AirtableClient
from .exceptions import AdapterConfigurationError
from .mapbox import MapboxGeocoder
from .record_store import AirtableRecordStore

logger = get_logger(__name__, component="adapter")


def build_record_store(app_config: AppConfig, env_config: EnvironmentConfig) -> AirtableRecordStore:
    """Create the Airtable-backed record store.

    Raises:
        AdapterConfigurationError: If credentials or client settings are invalid

    Example:
        >>> app_config, env_config = load_config()
        >>> store = build_record_store(app_config, env_config)
        >>> buyers = store.list_buyers()
    """
    try:
        client = AirtableClient(
            api_key=env_config.airtable_api_key,
            base_id=env_config.airtable_base_id,
            timeout=app_config.advanced.http_request_timeout,
            user_agent=app_config.advanced.user_agent,
            page_size=app_config.airtable.page_size,
        )
    except AdapterConfigurationError:
        raise
    except Exception as e:
        raise AdapterConfigurationError(f"Failed to create Airtable client: {e}") from e

    logger.debug(
        "Created Airtable record store",
        extra={
            "event": "adapter.record_store.created",
            "base_id": env_config.airtable_base_id,
            "buyers_table": app_config.airtable.buyers_table,
            "properties_table": app_config.airtable.properties_table,
            "matches_table": app_config.airtable.matches_table,
        },
    )
    return AirtableRecordStore(
        client=client,
        tables=app_config.airtable,
        field_mapping=app_config.fields,
    )


def build_geocoder(app_config: AppConfig, env_config: EnvironmentConfig) -> Optional[MapboxGeocoder]:
    """Create the Mapbox geocoder, or None when geocoding is disabled or has no token."""
    if not app_config.geocoding.enabled:
        return None
    if not env_config.mapbox_access_token:
        logger.warning(
            "Geocoding enabled but MAPBOX_ACCESS_TOKEN is not set; buyers without coordinates stay ungeocoded",
            extra={"event": "adapter.geocoder.unavailable"},
        )
        return None
    return MapboxGeocoder(
        access_token=env_config.mapbox_access_token,
        country=app_config.geocoding.country,
        timeout=app_config.advanced.http_request_timeout,
        user_agent=app_config.advanced.user_agent,
    )
