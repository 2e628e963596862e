"""Core domain models for buyers, properties and matches.

- RawRecord: a record as the backing store returns it (id + flat field map)
- BuyerPreferences / PropertyAttributes: typed scorer inputs
- MatchScore: immutable scorer output
- MatchStage: ordered deal pipeline stages
- MatchRecord: a persisted buyer/property match
- GeocodeResult: coordinates resolved for a free-text location
"""

import math
from datetime import datetime
from enum import Enum
from numbers import Real
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.geo.distance import has_valid_coordinates
from app.geo.zipcodes import extract_city, parse_preferred_zips
from app.utils.timestamps import ensure_utc


def _positive_number(value: Any) -> Optional[float]:
    """Finite number > 0, otherwise None. Strings and booleans count as absent."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    return value if math.isfinite(value) else None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
        if value is None:
            return None
    stripped = str(value).strip()
    return stripped or None


class RawRecord(BaseModel):
    """A backing-store record: opaque id plus the field map the store returned."""

    id: str = Field(..., description="Opaque record id (e.g. Airtable recXXXX)")
    fields: Dict[str, Any] = Field(default_factory=dict)
    created_time: Optional[datetime] = Field(None, description="Record creation time (UTC)")

    @field_validator("id")
    @classmethod
    def require_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Record id cannot be empty")
        return v.strip()

    @field_validator("fields", mode="before")
    @classmethod
    def default_fields(cls, v: Any) -> Dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("created_time")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class BuyerPreferences(BaseModel):
    """What a buyer is looking for.

    Numeric preferences that arrive with the wrong type, as NaN/infinity or
    as non-positive values are stored as None and scored as "no preference".
    """

    record_id: str = Field(..., description="Backing-store id of the buyer")
    contact_id: Optional[str] = Field(None, description="CRM contact id")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    preferred_zip_codes: FrozenSet[str] = Field(default_factory=frozenset)
    desired_beds: Optional[float] = None
    desired_baths: Optional[float] = None
    down_payment: Optional[float] = None
    location: Optional[str] = None
    city: Optional[str] = None
    preferred_location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("preferred_zip_codes", mode="before")
    @classmethod
    def parse_zips(cls, v: Any) -> FrozenSet[str]:
        return parse_preferred_zips(v)

    @field_validator("desired_beds", "desired_baths", "down_payment", mode="before")
    @classmethod
    def positive_or_absent(cls, v: Any) -> Optional[float]:
        return _positive_number(v)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def finite_or_absent(cls, v: Any) -> Optional[float]:
        return _finite_number(v)

    @field_validator(
        "contact_id", "first_name", "last_name", "email",
        "location", "city", "preferred_location",
        mode="before",
    )
    @classmethod
    def clean_text(cls, v: Any) -> Optional[str]:
        return _clean_text(v)

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        if has_valid_coordinates(self.latitude, self.longitude):
            return (self.latitude, self.longitude)
        return None

    @property
    def display_location(self) -> Optional[str]:
        """Best human label for where the buyer wants to buy."""
        return self.preferred_location or self.location or self.city

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.contact_id or self.record_id


class PropertyAttributes(BaseModel):
    """A listed property as the scorer sees it."""

    record_id: str = Field(..., description="Backing-store id of the property")
    property_code: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = Field(None, description="Explicit ZIP, preferred over the address")
    price: Optional[float] = None
    beds: Optional[float] = None
    baths: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("price", "beds", "baths", mode="before")
    @classmethod
    def positive_or_absent(cls, v: Any) -> Optional[float]:
        return _positive_number(v)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def finite_or_absent(cls, v: Any) -> Optional[float]:
        return _finite_number(v)

    @field_validator("zip_code", mode="before")
    @classmethod
    def zip_as_text(cls, v: Any) -> Optional[str]:
        if isinstance(v, bool):
            return None
        if isinstance(v, int):
            return f"{v:05d}"
        if isinstance(v, float) and math.isfinite(v) and v.is_integer():
            return f"{int(v):05d}"
        return _clean_text(v)

    @field_validator("property_code", "address", "city", mode="before")
    @classmethod
    def clean_text(cls, v: Any) -> Optional[str]:
        return _clean_text(v)

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        if has_valid_coordinates(self.latitude, self.longitude):
            return (self.latitude, self.longitude)
        return None

    @property
    def display_location(self) -> Optional[str]:
        """City to geocode: the city field, else the city part of the address."""
        return self.city or extract_city(self.address)

    @property
    def label(self) -> str:
        return self.address or self.property_code or self.record_id


class MatchScore(BaseModel):
    """Scorer output. Immutable."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    location_score: int = Field(..., ge=0, le=40)
    beds_score: int = Field(..., ge=0, le=25)
    baths_score: int = Field(..., ge=0, le=15)
    budget_score: int = Field(..., ge=0, le=20)
    is_priority: bool = False
    distance_miles: Optional[float] = Field(None, description="None when either side lacks coordinates")
    reasoning: str = ""
    highlights: Tuple[str, ...] = ()
    concerns: Tuple[str, ...] = ()


class MatchStage(str, Enum):
    """Deal pipeline stages, in order. ``NOT_INTERESTED`` is the exit stage."""

    SENT_TO_BUYER = "Sent to Buyer"
    BUYER_RESPONDED = "Buyer Responded"
    SHOWING_SCHEDULED = "Showing Scheduled"
    PROPERTY_VIEWED = "Property Viewed"
    UNDERWRITING = "Underwriting"
    CONTRACTS = "Contracts"
    QUALIFIED = "Qualified"
    CLOSED_WON = "Closed Deal / Won"
    NOT_INTERESTED = "Not Interested"

    @property
    def order(self) -> int:
        if self is MatchStage.NOT_INTERESTED:
            return 99
        return list(MatchStage).index(self) + 1

    @property
    def is_exit(self) -> bool:
        return self is MatchStage.NOT_INTERESTED

    def can_transition_to(self, target: "MatchStage") -> bool:
        """Stages only move forward (or stay). Exit is always reachable and final."""
        if target.is_exit:
            return True
        if self.is_exit:
            return False
        return target.order >= self.order

    @classmethod
    def parse(cls, value: Any) -> Optional["MatchStage"]:
        """Look up a stage by its label, case-insensitively. Unknown labels give None."""
        if isinstance(value, cls):
            return value
        text = _clean_text(value)
        if text is None:
            return None
        for stage in cls:
            if stage.value.lower() == text.lower():
                return stage
        return None


class MatchRecord(BaseModel):
    """A buyer/property match as stored in the match table.

    ``stage`` is None for a match that has been scored but not yet entered
    into the deal pipeline. At most one record exists per (buyer_id, property_id);
    a record whose link fields hold several ids covers every combination of them.
    """

    record_id: Optional[str] = Field(None, description="Backing-store id; None until created")
    buyer_id: str
    property_id: str
    score: int = Field(0, ge=0, le=100)
    is_priority: bool = False
    stage: Optional[MatchStage] = None
    notes: Optional[str] = None
    distance_miles: Optional[float] = None
    status: str = "Active"
    created_at: Optional[datetime] = None
    linked_buyer_ids: Tuple[str, ...] = Field((), description="Every buyer linked on the record")
    linked_property_ids: Tuple[str, ...] = Field((), description="Every property linked on the record")

    @field_validator("stage", mode="before")
    @classmethod
    def parse_stage(cls, v: Any) -> Optional[MatchStage]:
        return MatchStage.parse(v)

    @field_validator("distance_miles", mode="before")
    @classmethod
    def finite_or_absent(cls, v: Any) -> Optional[float]:
        return _finite_number(v)

    @field_validator("created_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def pair_key(self) -> Tuple[str, str]:
        return (self.buyer_id, self.property_id)

    @property
    def pair_keys(self) -> List[Tuple[str, str]]:
        """Every (buyer_id, property_id) combination the record links, ``pair_key`` first."""
        buyer_ids = dict.fromkeys((self.buyer_id,) + self.linked_buyer_ids)
        property_ids = dict.fromkeys((self.property_id,) + self.linked_property_ids)
        return [(buyer_id, property_id) for buyer_id in buyer_ids for property_id in property_ids]


class GeocodeResult(BaseModel):
    """Coordinates for a location query, with provenance."""

    query: str
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
    source: str = Field("city", description="address, city or zip")
    confidence: str = Field("low", description="high, medium or low")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        valid = {"address", "city", "zip"}
        if v.lower() not in valid:
            raise ValueError(f"source must be one of {valid}, got: {v}")
        return v.lower()

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: str) -> str:
        valid = {"high", "medium", "low"}
        if v.lower() not in valid:
            raise ValueError(f"confidence must be one of {valid}, got: {v}")
        return v.lower()


class MatchRunSummary(BaseModel):
    """One orchestrator run as kept in the local run history."""

    run_id: str
    mode: str
    target_id: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    buyers_processed: int = 0
    properties_processed: int = 0
    pairs_scored: int = 0
    matches_created: int = 0
    matches_updated: int = 0
    duplicates_skipped: int = 0
    below_threshold: int = 0
    error_count: int = 0
    failed: bool = False
    skipped: bool = False
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    duration_seconds: float = 0.0

    @field_validator("started_at", "finished_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def had_errors(self) -> bool:
        return self.failed or self.error_count > 0
