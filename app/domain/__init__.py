"""Domain models for the buyer/property matcher."""

from .models import (
    BuyerPreferences,
    GeocodeResult,
    MatchRecord,
    MatchRunSummary,
    MatchScore,
    MatchStage,
    PropertyAttributes,
    RawRecord,
)

__all__ = [
    "BuyerPreferences",
    "GeocodeResult",
    "MatchRecord",
    "MatchRunSummary",
    "MatchScore",
    "MatchStage",
    "PropertyAttributes",
    "RawRecord",
]
