"""Helpers for presenting and persisting MatchScore results.

The reasoning text produced by the scorer is parsed back by downstream UI
code, so ``parse_score_breakdown`` is the reference reader for it.
"""

import re
from typing import Dict, Optional, Tuple

from app.domain.models import MatchScore

# "• Beds: 15/25 pts (4 beds, +1 vs desired)"
_BREAKDOWN_LINE = re.compile(
    r"^\s*(?:•\s*)?(?P<category>[A-Za-z ]+):\s*(?P<points>\d+)/(?P<maximum>\d+) pts"
    r"(?:\s*\((?P<reason>.*)\))?\s*$"
)
_SCORE_HEADER = re.compile(r"^(?P<priority>\[PRIORITY\] )?(?P<label>[A-Za-z ]+) \(Score: (?P<score>\d+)/100\)")


def build_match_notes(score: MatchScore) -> str:
    """Text stored in a match record's notes field.

    Reasoning first, then the highlights and concerns paragraphs when there
    are any.
    """
    notes = score.reasoning
    if score.highlights:
        notes += "\n\nHighlights: " + ", ".join(score.highlights)
    if score.concerns:
        notes += "\n\nConcerns: " + ", ".join(score.concerns)
    return notes


def format_score_breakdown(score: MatchScore) -> str:
    """Compact multi-line summary for logs and the CLI."""
    header = f"Total Score: {score.score}/100"
    if score.is_priority:
        header += " (PRIORITY)"

    lines = [
        header,
        f"  - Location: {score.location_score}/40",
        f"  - Beds: {score.beds_score}/25",
        f"  - Baths: {score.baths_score}/15",
        f"  - Budget: {score.budget_score}/20",
    ]
    if score.distance_miles is not None:
        lines.append(f"  - Distance: {score.distance_miles:.1f} mi")

    lines.append("")
    lines.append(f"Highlights: {', '.join(score.highlights)}")
    if score.concerns:
        lines.append(f"Concerns: {', '.join(score.concerns)}")
    return "\n".join(lines)


def parse_score_breakdown(reasoning: str) -> Dict[str, Tuple[int, int, Optional[str]]]:
    """Read the per-category lines out of a reasoning string.

    Returns:
        Mapping of category name to ``(points, max_points, reason)``; reason
        is None for lines without a parenthesised clause.

    Example:
        >>> parse_score_breakdown("• Beds: 25/25 pts (exact match: 3 beds)")
        {'Beds': (25, 25, 'exact match: 3 beds')}
    """
    breakdown: Dict[str, Tuple[int, int, Optional[str]]] = {}
    if not reasoning:
        return breakdown

    for line in reasoning.splitlines():
        match = _BREAKDOWN_LINE.match(line)
        if not match:
            continue
        breakdown[match.group("category").strip()] = (
            int(match.group("points")),
            int(match.group("maximum")),
            match.group("reason"),
        )
    return breakdown


def parse_score_header(reasoning: str) -> Optional[Dict[str, object]]:
    """Read ``[PRIORITY] <label> (Score: N/100)`` from the first line, if present."""
    if not reasoning:
        return None
    match = _SCORE_HEADER.match(reasoning)
    if not match:
        return None
    return {
        "is_priority": match.group("priority") is not None,
        "label": match.group("label"),
        "score": int(match.group("score")),
    }


def build_score_summary(score: MatchScore) -> Dict[str, object]:
    """Flat dict of a score for structured logs and JSON output."""
    return {
        "score": score.score,
        "is_priority": score.is_priority,
        "location_score": score.location_score,
        "beds_score": score.beds_score,
        "baths_score": score.baths_score,
        "budget_score": score.budget_score,
        "distance_miles": score.distance_miles,
        "highlights": list(score.highlights),
        "concerns": list(score.concerns),
    }
