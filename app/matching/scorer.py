"""Rule-based buyer/property compatibility scoring.

The score is the sum of four bands:

    location  0-40   preferred ZIP, else distance banding, else ZIP/neutral fallback
    beds      0-25
    baths     0-15
    budget    0-20   down payment as a share of the price

The scorer is pure: identical inputs always give an identical MatchScore.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from app.domain.models import BuyerPreferences, MatchScore, PropertyAttributes
from app.geo.distance import distance_miles
from app.geo.zipcodes import is_in_preferred_zip

logger = logging.getLogger(__name__)

LOCATION_MAX = 40
BEDS_MAX = 25
BATHS_MAX = 15
BUDGET_MAX = 20

# (max miles, points); every band up to 50 mi flags the match as priority
DISTANCE_BANDS = ((5, 38), (10, 35), (25, 28), (50, 20))
PRIORITY_RADIUS_MILES = 50

ZIP_MATCH_POINTS = 40
ZIP_MISS_POINTS = 10
NEUTRAL_LOCATION_POINTS = 20

QUALITY_LABELS = ((80, "Excellent Match"), (60, "Good Match"), (40, "Fair Match"))
FALLBACK_QUALITY_LABEL = "Limited Match"


def format_number(value: float) -> str:
    """Render 3.0 as ``3`` and 2.5 as ``2.5``."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def quality_label(total: int) -> str:
    for threshold, label in QUALITY_LABELS:
        if total >= threshold:
            return label
    return FALLBACK_QUALITY_LABEL


def far_distance_points(miles: float) -> int:
    """Points for a property beyond the priority radius: decays by 1 per 20 mi, floor 5."""
    return max(5, 15 - math.floor(miles / 20))


@dataclass
class _Band:
    """Points for one category plus the clause explaining them."""

    points: int
    reason: Optional[str] = None
    highlights: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)


class MatchScorer:
    """Scores a buyer against a property.

    Location is evaluated in strict order and the first rule that applies wins:

    1. Property ZIP (explicit, else parsed from the address) is preferred: 40, priority.
    2. Both sides have coordinates: distance banding (priority up to 50 mi).
    3. Buyer has preferred ZIPs that did not match: 10.
    4. No location signal: 20.

    The distance is reported whenever both sides have coordinates, even when
    the ZIP rule decided the location points.
    """

    def __init__(self, logger_instance: logging.Logger = None):
        self.logger = logger_instance or logger

    def score(self, buyer: BuyerPreferences, prop: PropertyAttributes) -> MatchScore:
        """Score ``prop`` for ``buyer``.

        Args:
            buyer: Typed buyer preferences
            prop: Typed property attributes

        Returns:
            MatchScore with sub-scores, priority flag, reasoning, highlights
            and concerns
        """
        miles = self._distance(buyer, prop)

        location, is_priority = self._score_location(buyer, prop, miles)
        beds = self._score_beds(buyer.desired_beds, prop.beds)
        baths = self._score_baths(buyer.desired_baths, prop.baths)
        budget = self._score_budget(buyer.down_payment, prop.price)

        total = min(100, location.points + beds.points + baths.points + budget.points)

        highlights: List[str] = []
        concerns: List[str] = []
        for band in (location, beds, baths, budget):
            highlights.extend(band.highlights)
            concerns.extend(band.concerns)

        reasoning = self._build_reasoning(
            total,
            is_priority,
            [
                ("Location", location, LOCATION_MAX),
                ("Beds", beds, BEDS_MAX),
                ("Baths", baths, BATHS_MAX),
                ("Budget", budget, BUDGET_MAX),
            ],
        )

        result = MatchScore(
            score=total,
            location_score=location.points,
            beds_score=beds.points,
            baths_score=baths.points,
            budget_score=budget.points,
            is_priority=is_priority,
            distance_miles=round(miles, 2) if miles is not None else None,
            reasoning=reasoning,
            highlights=tuple(highlights),
            concerns=tuple(concerns),
        )

        self.logger.debug(
            "Scored buyer %s against property %s: %d",
            buyer.record_id,
            prop.record_id,
            total,
            extra={
                "event": "matching.pair.scored",
                "buyer_id": buyer.record_id,
                "property_id": prop.record_id,
                "score": total,
                "is_priority": is_priority,
            },
        )
        return result

    @staticmethod
    def _distance(buyer: BuyerPreferences, prop: PropertyAttributes) -> Optional[float]:
        origin = buyer.coordinates
        target = prop.coordinates
        if origin is None or target is None:
            return None
        miles = distance_miles(origin[0], origin[1], target[0], target[1])
        return miles if math.isfinite(miles) else None

    @staticmethod
    def _score_location(buyer: BuyerPreferences, prop: PropertyAttributes, miles: Optional[float]):
        has_zip_preference = bool(buyer.preferred_zip_codes)

        if has_zip_preference and is_in_preferred_zip(
            prop.zip_code, prop.address, buyer.preferred_zip_codes
        ):
            return _Band(
                ZIP_MATCH_POINTS, "in preferred ZIP", highlights=["In preferred ZIP code"]
            ), True

        if miles is not None:
            distance_text = f"{miles:.1f} mi"
            for max_miles, points in DISTANCE_BANDS:
                if miles <= max_miles:
                    return _Band(
                        points,
                        f"{distance_text} away",
                        highlights=[f"Within {max_miles} miles: {distance_text} away"],
                    ), True
            return _Band(
                far_distance_points(miles),
                f"{distance_text} away, beyond {PRIORITY_RADIUS_MILES} mi",
                concerns=[f"Far from preferred area: {distance_text} away"],
            ), False

        if has_zip_preference:
            return _Band(
                ZIP_MISS_POINTS, "outside preferred ZIPs", concerns=["Not in preferred ZIP codes"]
            ), False

        return _Band(NEUTRAL_LOCATION_POINTS, "no ZIP preference set"), False

    @staticmethod
    def _score_beds(desired: Optional[float], actual: Optional[float]) -> _Band:
        if desired is None or actual is None:
            if actual is not None:
                return _Band(12, highlights=[f"{format_number(actual)} beds"])
            return _Band(12)

        beds = format_number(actual)
        diff = actual - desired
        if diff == 0:
            return _Band(25, f"exact match: {beds} beds", highlights=[f"Exact bed count: {beds} beds"])

        sign = "+" if diff > 0 else ""
        reason = f"{beds} beds, {sign}{format_number(diff)} vs desired"
        if abs(diff) == 1:
            return _Band(15, reason, highlights=[f"Close bed count: {beds} beds"])
        if diff > 0:
            return _Band(10, reason, highlights=[f"{beds} beds (more than desired)"])
        return _Band(
            5, reason, concerns=[f"Fewer bedrooms: {beds} vs {format_number(desired)} desired"]
        )

    @staticmethod
    def _score_baths(desired: Optional[float], actual: Optional[float]) -> _Band:
        if desired is None or actual is None:
            if actual is not None:
                return _Band(8, highlights=[f"{format_number(actual)} baths"])
            return _Band(8)

        baths = format_number(actual)
        if actual >= desired:
            return _Band(15, f"meets requirement: {baths} baths", highlights=[f"{baths} baths"])
        needed = format_number(desired)
        return _Band(
            5,
            f"{baths} baths, needs {needed}",
            concerns=[f"Fewer bathrooms: {baths} vs {needed} desired"],
        )

    @staticmethod
    def _score_budget(down_payment: Optional[float], price: Optional[float]) -> _Band:
        if down_payment is None or price is None:
            return _Band(10)

        ratio = down_payment / price * 100
        percent = round_half_up(ratio)
        reason = f"{percent}% down payment ratio"
        if ratio >= 20:
            return _Band(20, reason, highlights=[f"Strong down payment: {percent}% of price"])
        if ratio >= 10:
            return _Band(15, reason, highlights=[f"Adequate down payment: {percent}%"])
        if ratio >= 5:
            return _Band(10, reason, highlights=[f"Down payment: {percent}%"])
        return _Band(5, reason, concerns=[f"Low down payment ratio: {percent}%"])

    @staticmethod
    def _build_reasoning(total: int, is_priority: bool, bands) -> str:
        lines = []
        for category, band, maximum in bands:
            line = f"• {category}: {band.points}/{maximum} pts"
            if band.reason:
                line += f" ({band.reason})"
            lines.append(line)

        reasoning = f"{quality_label(total)} (Score: {total}/100)\n\nScore Breakdown:\n" + "\n".join(lines)
        if is_priority:
            reasoning = f"[PRIORITY] {reasoning}"
        return reasoning
