"""Environment variable loading and validation.

Secrets (API keys, base id) and deployment-specific settings come from the
environment; a ``.env`` file is loaded by ``app.main`` through python-dotenv.
"""

import os
import re
from typing import Optional

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/matcher.db"

_BASE_ID = re.compile(r"^app[A-Za-z0-9]{14}$")
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        airtable_api_key: str,
        airtable_base_id: str,
        mapbox_access_token: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
    ):
        self.airtable_api_key = airtable_api_key
        self.airtable_base_id = airtable_base_id
        self.mapbox_access_token = mapbox_access_token
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL

    @property
    def geocoding_available(self) -> bool:
        return bool(self.mapbox_access_token)

    def __repr__(self) -> str:
        return (
            f"EnvironmentConfig(airtable_base_id={self.airtable_base_id!r}, "
            f"mapbox={'set' if self.mapbox_access_token else 'unset'}, "
            f"database_url={self.database_url!r})"
        )


def load_environment_config(require_mapbox: bool = False) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - AIRTABLE_API_KEY: Airtable personal access token
    - AIRTABLE_BASE_ID: Airtable base id (appXXXXXXXXXXXXXX)

    Optional environment variables:
    - MAPBOX_ACCESS_TOKEN: Mapbox token, required when geocoding is enabled
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - DATABASE_URL: SQLite database URL (default: sqlite:///./data/matcher.db)

    Args:
        require_mapbox: Treat a missing MAPBOX_ACCESS_TOKEN as an error

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    api_key = (os.getenv("AIRTABLE_API_KEY") or "").strip()
    base_id = (os.getenv("AIRTABLE_BASE_ID") or "").strip()
    mapbox_token = (os.getenv("MAPBOX_ACCESS_TOKEN") or "").strip() or None
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")

    if not api_key:
        errors.append("Missing required environment variable: AIRTABLE_API_KEY")

    if not base_id:
        errors.append("Missing required environment variable: AIRTABLE_BASE_ID")
    elif not _BASE_ID.match(base_id):
        errors.append(
            f"Invalid AIRTABLE_BASE_ID: '{base_id}'. Expected 'app' followed by 14 characters."
        )

    if require_mapbox and not mapbox_token:
        errors.append("MAPBOX_ACCESS_TOKEN is required when geocoding is enabled")

    if log_level and log_level.upper() not in _VALID_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(_VALID_LEVELS)}"
        )

    if database_url and not database_url.startswith("sqlite"):
        errors.append(f"Unsupported DATABASE_URL: '{database_url}'. Only SQLite URLs are supported.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Create an Airtable personal access token with data.records:read/write scopes",
                "Set MAPBOX_ACCESS_TOKEN or disable geocoding in config.yaml",
            ],
        )

    return EnvironmentConfig(
        airtable_api_key=api_key,
        airtable_base_id=base_id,
        mapbox_access_token=mapbox_token,
        log_level=log_level.upper() if log_level else None,
        database_url=database_url,
    )
