"""Utility functions for time handling."""

from .timestamps import (
    elapsed_seconds,
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    "elapsed_seconds",
]
