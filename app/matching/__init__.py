"""Buyer/property match scoring.

This package provides:
- MatchScorer: rule-based location/beds/baths/budget scoring
- BuyerRanking / ScoredProperty: per-buyer ranked property lists
- MatchOverview / LinkedMatch: stored matches joined with their records
- Helpers to render, persist and parse score reasoning
"""

from .models import BuyerRanking, LinkedMatch, MatchOverview, ScoredProperty
from .scorer import MatchScorer, quality_label
from .utils import (
    build_match_notes,
    build_score_summary,
    format_score_breakdown,
    parse_score_breakdown,
    parse_score_header,
)

__all__ = [
    "MatchScorer",
    "BuyerRanking",
    "ScoredProperty",
    "MatchOverview",
    "LinkedMatch",
    "quality_label",
    "build_match_notes",
    "build_score_summary",
    "format_score_breakdown",
    "parse_score_breakdown",
    "parse_score_header",
]
