"""Database schema definition and ORM models.

Two local tables back the matcher:

- ``geocode_cache``: provider answers per normalized location query, including
  misses, so a location that cannot be resolved is not re-queried on every run.
- ``match_runs``: one row per orchestrator run, for run history.

Timestamps are stored as fixed-width ISO 8601 strings so they sort correctly.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, Float, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from app.domain.models import GeocodeResult, MatchRunSummary
from app.utils.timestamps import format_timestamp, parse_iso_datetime

logger = logging.getLogger(__name__)

Base = declarative_base()


class GeocodeCacheModel(Base):
    """ORM model for the geocode_cache table."""

    __tablename__ = "geocode_cache"

    query_key = Column(String(255), primary_key=True, nullable=False)
    query = Column(Text, nullable=False)

    # False records a provider miss
    found = Column(Boolean, nullable=False, default=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    formatted_address = Column(Text, nullable=True)
    source = Column(String(20), nullable=True)
    confidence = Column(String(20), nullable=True)

    geocoded_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_geocode_cache_geocoded_at", "geocoded_at"),)

    def to_domain(self) -> Optional[GeocodeResult]:
        """Cached result, or None for a cached miss."""
        if not self.found or self.latitude is None or self.longitude is None:
            return None
        return GeocodeResult(
            query=self.query,
            latitude=self.latitude,
            longitude=self.longitude,
            formatted_address=self.formatted_address,
            source=self.source or "city",
            confidence=self.confidence or "low",
        )

    @property
    def geocoded_at_datetime(self) -> Optional[datetime]:
        return parse_iso_datetime(self.geocoded_at)

    def apply(self, query: str, result: Optional[GeocodeResult], geocoded_at: datetime) -> None:
        """Overwrite this row with a fresh provider answer."""
        self.query = query
        self.found = result is not None
        self.latitude = result.latitude if result else None
        self.longitude = result.longitude if result else None
        self.formatted_address = result.formatted_address if result else None
        self.source = result.source if result else None
        self.confidence = result.confidence if result else None
        self.geocoded_at = format_timestamp(geocoded_at)


class MatchRunModel(Base):
    """ORM model for the match_runs table."""

    __tablename__ = "match_runs"

    run_id = Column(String(36), primary_key=True, nullable=False)
    mode = Column(String(20), nullable=False)
    target_id = Column(String(255), nullable=True)

    started_at = Column(String(50), nullable=False)
    finished_at = Column(String(50), nullable=True)

    buyers_processed = Column(Integer, nullable=False, default=0)
    properties_processed = Column(Integer, nullable=False, default=0)
    pairs_scored = Column(Integer, nullable=False, default=0)
    matches_created = Column(Integer, nullable=False, default=0)
    matches_updated = Column(Integer, nullable=False, default=0)
    duplicates_skipped = Column(Integer, nullable=False, default=0)
    below_threshold = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)

    failed = Column(Boolean, nullable=False, default=False)
    skipped = Column(Boolean, nullable=False, default=False)
    error_kind = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    duration_seconds = Column(Float, nullable=False, default=0.0)

    __table_args__ = (Index("idx_match_runs_started_at", "started_at"),)

    def to_domain(self) -> MatchRunSummary:
        return MatchRunSummary(
            run_id=self.run_id,
            mode=self.mode,
            target_id=self.target_id,
            started_at=parse_iso_datetime(self.started_at),
            finished_at=parse_iso_datetime(self.finished_at),
            buyers_processed=self.buyers_processed,
            properties_processed=self.properties_processed,
            pairs_scored=self.pairs_scored,
            matches_created=self.matches_created,
            matches_updated=self.matches_updated,
            duplicates_skipped=self.duplicates_skipped,
            below_threshold=self.below_threshold,
            error_count=self.error_count,
            failed=self.failed,
            skipped=self.skipped,
            error_kind=self.error_kind,
            error_message=self.error_message,
            duration_seconds=self.duration_seconds,
        )

    @classmethod
    def from_domain(cls, summary: MatchRunSummary) -> "MatchRunModel":
        return cls(
            run_id=summary.run_id,
            mode=summary.mode,
            target_id=summary.target_id,
            started_at=format_timestamp(summary.started_at),
            finished_at=format_timestamp(summary.finished_at) if summary.finished_at else None,
            buyers_processed=summary.buyers_processed,
            properties_processed=summary.properties_processed,
            pairs_scored=summary.pairs_scored,
            matches_created=summary.matches_created,
            matches_updated=summary.matches_updated,
            duplicates_skipped=summary.duplicates_skipped,
            below_threshold=summary.below_threshold,
            error_count=summary.error_count,
            failed=summary.failed,
            skipped=summary.skipped,
            error_kind=summary.error_kind,
            error_message=summary.error_message,
            duration_seconds=summary.duration_seconds,
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
