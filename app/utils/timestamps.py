"""UTC timestamp helpers shared by adapters, persistence and the pipeline."""

from datetime import datetime, timezone
from typing import Optional

_STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix and fractional seconds allowed).

    Returns None for empty or unparseable input.

    >>> parse_iso_datetime("2025-03-01T12:00:00.000Z").isoformat()
    '2025-03-01T12:00:00+00:00'
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_timestamp(dt: datetime) -> str:
    """Fixed-width UTC string used for database columns (sorts chronologically)."""
    return ensure_utc(dt).strftime(_STORAGE_FORMAT)


def elapsed_seconds(started_at: datetime, finished_at: Optional[datetime] = None) -> float:
    """Seconds between two datetimes, ``finished_at`` defaulting to now."""
    end = ensure_utc(finished_at) if finished_at else utc_now()
    return (end - ensure_utc(started_at)).total_seconds()
