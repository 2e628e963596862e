"""Non-fatal configuration checks surfaced as warnings."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """Inspect a raw config mapping for settings that are valid but risky.

    Returns:
        List of warning messages (empty when nothing looks off)
    """
    messages = []

    matching = config_dict.get("matching") or {}
    if isinstance(matching, dict):
        min_score = matching.get("min_score")
        if isinstance(min_score, int) and not isinstance(min_score, bool) and min_score < 20:
            messages.append(
                f"Low matching.min_score ({min_score}) will store most buyer/property pairs"
            )

        concurrency = matching.get("concurrency")
        if isinstance(concurrency, int) and concurrency > 5:
            messages.append(
                f"matching.concurrency ({concurrency}) exceeds Airtable's 5 requests/second limit"
            )

        if matching.get("refresh_all") is True:
            messages.append(
                "matching.refresh_all is enabled: every run re-scores and rewrites existing matches"
            )

    geocoding = config_dict.get("geocoding") or {}
    if isinstance(geocoding, dict) and geocoding.get("enabled"):
        pacing = geocoding.get("pacing_ms")
        if isinstance(pacing, int) and pacing < 50:
            messages.append(f"geocoding.pacing_ms ({pacing}) may trigger Mapbox rate limits")

    fields = config_dict.get("fields") or {}
    if isinstance(fields, dict):
        for section, mapping in fields.items():
            if not isinstance(mapping, dict):
                continue
            for name, candidates in mapping.items():
                if isinstance(candidates, list) and len(candidates) != len(set(candidates)):
                    messages.append(f"Duplicate field names in fields.{section}.{name}")

    return messages


def emit_warnings(messages: List[str]) -> None:
    for message in messages:
        warnings.warn(message, UserWarning, stacklevel=2)
