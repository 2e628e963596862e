"""Configuration management for the buyer/property matcher."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config, validate_config_file
from .models import (
    AdvancedConfig,
    AirtableConfig,
    AppConfig,
    BuyerFieldMap,
    FieldMappingConfig,
    GeocodingConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    MatchFieldMap,
    MatchingConfig,
    PropertyFieldMap,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "AirtableConfig",
    "FieldMappingConfig",
    "BuyerFieldMap",
    "PropertyFieldMap",
    "MatchFieldMap",
    "MatchingConfig",
    "GeocodingConfig",
    "LoggingConfig",
    "AdvancedConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
