"""Data structures built on top of scorer output and stored matches."""

import builtins
from dataclasses import dataclass, field
from typing import List, Optional

from app.domain.models import BuyerPreferences, MatchRecord, MatchScore, PropertyAttributes


@dataclass
class ScoredProperty:
    """A property together with its score for one buyer."""

    property: PropertyAttributes
    score: MatchScore

    @property
    def is_priority(self) -> bool:
        return self.score.is_priority


@dataclass
class BuyerRanking:
    """Every property scored for a single buyer, best first.

    Attributes:
        buyer: The buyer the ranking was computed for
        priority: Properties in a preferred ZIP or within 50 miles
        explore: Everything else
    """

    buyer: BuyerPreferences
    priority: List[ScoredProperty] = field(default_factory=list)
    explore: List[ScoredProperty] = field(default_factory=list)

    @classmethod
    def from_scored(cls, buyer: BuyerPreferences, scored: List[ScoredProperty]) -> "BuyerRanking":
        """Sort by score descending (stable for ties) and split on the priority flag."""
        ordered = sorted(scored, key=lambda item: item.score.score, reverse=True)
        return cls(
            buyer=buyer,
            priority=[item for item in ordered if item.is_priority],
            explore=[item for item in ordered if not item.is_priority],
        )

    @property
    def total_count(self) -> int:
        return len(self.priority) + len(self.explore)


@dataclass
class LinkedMatch:
    """A stored match for one (buyer, property) pair, joined with both records.

    ``buyer`` or ``property`` is None when the linked record no longer exists.
    """

    match: MatchRecord
    buyer_id: str
    property_id: str
    buyer: Optional[BuyerPreferences] = None
    property: Optional[PropertyAttributes] = None


@dataclass
class MatchOverview:
    """Stored matches of one buyer or one property, best score first."""

    buyer: Optional[BuyerPreferences] = None
    property: Optional[PropertyAttributes] = None
    matches: List[LinkedMatch] = field(default_factory=list)

    @builtins.property
    def title(self) -> str:
        if self.buyer is not None:
            return f"Matches for buyer {self.buyer.display_name}"
        return f"Matches for property {self.property.label}"
