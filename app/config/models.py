"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _duration_seconds(value: str, min_seconds: int, max_seconds: int, label: str) -> int:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return seconds


def _clean_names(names: Any) -> List[str]:
    if isinstance(names, str):
        names = [names]
    if not isinstance(names, (list, tuple)):
        raise ValueError("Field names must be a string or a list of strings")
    cleaned = [name.strip() for name in names if isinstance(name, str) and name.strip()]
    if not cleaned:
        raise ValueError("At least one field name is required")
    return cleaned


class AirtableConfig(BaseModel):
    """Tables in the Airtable base."""

    buyers_table: str = Field("Buyers", min_length=1)
    properties_table: str = Field("Properties", min_length=1)
    matches_table: str = Field("Property-Buyer Matches", min_length=1)
    page_size: int = Field(100, ge=1, le=100, description="Records per list request")

    @field_validator("buyers_table", "properties_table", "matches_table")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Table name cannot be empty or whitespace-only")
        return stripped


class BuyerFieldMap(BaseModel):
    """Buyer table field names. Lists are tried in order; first present value wins."""

    contact_id: List[str] = Field(default_factory=lambda: ["Contact ID"])
    first_name: List[str] = Field(default_factory=lambda: ["First Name"])
    last_name: List[str] = Field(default_factory=lambda: ["Last Name"])
    email: List[str] = Field(default_factory=lambda: ["Email"])
    preferred_zip_codes: List[str] = Field(default_factory=lambda: ["Preferred Zip Codes"])
    desired_beds: List[str] = Field(default_factory=lambda: ["No. of Bedrooms"])
    desired_baths: List[str] = Field(default_factory=lambda: ["No. of Bath"])
    down_payment: List[str] = Field(default_factory=lambda: ["Downpayment"])
    location: List[str] = Field(default_factory=lambda: ["Location"])
    city: List[str] = Field(default_factory=lambda: ["City"])
    preferred_location: List[str] = Field(default_factory=lambda: ["Preferred Location"])
    latitude: List[str] = Field(default_factory=lambda: ["Lat", "Location Lat", "Latitude"])
    longitude: List[str] = Field(default_factory=lambda: ["Lng", "Location Lng", "Longitude"])

    @field_validator("*", mode="before")
    @classmethod
    def clean_names(cls, v: Any) -> List[str]:
        return _clean_names(v)


class PropertyFieldMap(BaseModel):
    """Property table field names."""

    property_code: List[str] = Field(default_factory=lambda: ["Property Code"])
    address: List[str] = Field(default_factory=lambda: ["Address"])
    city: List[str] = Field(default_factory=lambda: ["City"])
    zip_code: List[str] = Field(default_factory=lambda: ["Zip Code", "ZIP Code"])
    price: List[str] = Field(default_factory=lambda: ["Property Total Price", "Price"])
    beds: List[str] = Field(default_factory=lambda: ["Beds"])
    baths: List[str] = Field(default_factory=lambda: ["Baths"])
    latitude: List[str] = Field(default_factory=lambda: ["Lat", "Latitude"])
    longitude: List[str] = Field(default_factory=lambda: ["Lng", "Longitude"])

    @field_validator("*", mode="before")
    @classmethod
    def clean_names(cls, v: Any) -> List[str]:
        return _clean_names(v)


class MatchFieldMap(BaseModel):
    """Match table field names (single names: these are written, not just read)."""

    buyer_link: str = "Contact ID"
    property_link: str = "Property Code"
    score: str = "Match Score"
    notes: str = "Match Notes"
    stage: str = "Match Stage"
    status: str = "Match Status"
    is_priority: str = "Is Priority"
    distance: str = "Distance (miles)"


class FieldMappingConfig(BaseModel):
    """External schema of the Airtable base."""

    buyers: BuyerFieldMap = Field(default_factory=BuyerFieldMap)
    properties: PropertyFieldMap = Field(default_factory=PropertyFieldMap)
    matches: MatchFieldMap = Field(default_factory=MatchFieldMap)


class MatchingConfig(BaseModel):
    """Run parameters for the matching orchestrator."""

    min_score: int = Field(30, ge=0, le=100, description="Matches below this score are not stored")
    refresh_all: bool = Field(False, description="Re-score pairs that already have a match record")
    batch_size: int = Field(10, ge=1, le=10, description="Records per create/update/delete call")
    concurrency: int = Field(5, ge=1, le=20, description="Batches in flight per wave")
    cache_ttl: str = Field("5m", description="TTL for cached buyer/property/match collections")

    cache_ttl_seconds: Optional[int] = None

    @model_validator(mode="after")
    def compute_ttl(self):
        self.cache_ttl_seconds = _duration_seconds(self.cache_ttl, 1, 86400, "cache_ttl")
        return self


class GeocodingConfig(BaseModel):
    """Geocoding of buyers and properties that have a location label but no coordinates."""

    enabled: bool = Field(False, description="Geocode buyers and properties missing coordinates before scoring")
    pacing_ms: int = Field(100, ge=0, le=10000, description="Delay between provider calls")
    cache_ttl: str = Field("1d", description="How long geocode results are reused")
    default_state: str = Field("LA", min_length=2, max_length=2)
    country: str = Field("us", min_length=2, max_length=2)
    write_back: bool = Field(True, description="Store geocoded coordinates on the buyer record")

    cache_ttl_seconds: Optional[int] = None

    @field_validator("default_state")
    @classmethod
    def upper_state(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("country")
    @classmethod
    def lower_country(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def compute_ttl(self):
        self.cache_ttl_seconds = _duration_seconds(self.cache_ttl, 60, 30 * 86400, "cache_ttl")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AdvancedConfig(BaseModel):
    """Advanced runtime settings."""

    http_request_timeout: int = Field(
        30, ge=5, le=300, description="Request timeout for Airtable/Mapbox calls (seconds)"
    )
    user_agent: str = Field(
        "BuyerPropertyMatcher/1.0",
        min_length=1,
        description="User-Agent string for HTTP requests",
    )

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class AppConfig(BaseModel):
    """Root configuration object for the buyer/property matcher.

    Every section has defaults, so an empty mapping is a valid config.
    """

    airtable: AirtableConfig = Field(default_factory=AirtableConfig)
    fields: FieldMappingConfig = Field(default_factory=FieldMappingConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    run_interval: str = Field("1h", description="Interval between full runs in daemon mode")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)

    run_interval_seconds: Optional[int] = None

    @field_validator("run_interval")
    @classmethod
    def validate_run_interval(cls, v: str) -> str:
        _duration_seconds(v, 300, 86400, "Run interval")
        return v

    @model_validator(mode="after")
    def compute_fields(self):
        self.run_interval_seconds = parse_duration(self.run_interval)
        tables = [
            self.airtable.buyers_table,
            self.airtable.properties_table,
            self.airtable.matches_table,
        ]
        if len(set(tables)) != len(tables):
            raise ValueError(f"Buyer, property and match tables must differ: {', '.join(tables)}")
        return self
