"""Data access layer (repositories) for the local database.

Repositories take an open session (see ``get_session``) and return domain
models rather than ORM rows.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.models import GeocodeResult, MatchRunSummary
from app.utils.timestamps import format_timestamp, utc_now

from .exceptions import DataIntegrityError, PersistenceError
from .schema import GeocodeCacheModel, MatchRunModel

logger = logging.getLogger(__name__)


class GeocodeCacheRepository:
    """Persistent cache of geocoding answers keyed by normalized query."""

    def __init__(self, session: Session):
        self.session = session

    def lookup(
        self,
        query_key: str,
        max_age_seconds: int,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, Optional[GeocodeResult]]:
        """Find a fresh cache entry.

        Args:
            query_key: Normalized query (see GeocodingService.cache_key)
            max_age_seconds: Entries older than this are treated as absent
            now: Reference time (defaults to current UTC time)

        Returns:
            ``(hit, result)``. ``hit`` is False when nothing fresh is cached;
            a hit with ``result`` None is a remembered provider miss.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            row = self.session.get(GeocodeCacheModel, query_key)
        except SQLAlchemyError as e:
            logger.error(f"Error reading geocode cache for {query_key!r}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read geocode cache: {e}") from e

        if row is None:
            return False, None

        geocoded_at = row.geocoded_at_datetime
        reference = now or utc_now()
        if geocoded_at is None or reference - geocoded_at >= timedelta(seconds=max_age_seconds):
            return False, None

        return True, row.to_domain()

    def store(
        self,
        query_key: str,
        query: str,
        result: Optional[GeocodeResult],
        geocoded_at: Optional[datetime] = None,
    ) -> None:
        """Insert or overwrite the cache entry for ``query_key``.

        Pass ``result=None`` to remember a provider miss.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            row = self.session.get(GeocodeCacheModel, query_key)
            if row is None:
                row = GeocodeCacheModel(query_key=query_key)
                self.session.add(row)
            row.apply(query, result, geocoded_at or utc_now())
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error writing geocode cache for {query_key!r}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to write geocode cache: {e}") from e

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete entries geocoded before ``cutoff``; returns the number removed.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = delete(GeocodeCacheModel).where(
                GeocodeCacheModel.geocoded_at < format_timestamp(cutoff)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error purging geocode cache: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge geocode cache: {e}") from e


class MatchRunRepository:
    """History of orchestrator runs."""

    def __init__(self, session: Session):
        self.session = session

    def record(self, summary: MatchRunSummary) -> MatchRunSummary:
        """Insert one run.

        Raises:
            DataIntegrityError: If a run with the same id was already recorded
            PersistenceError: If database error occurs
        """
        try:
            row = MatchRunModel.from_domain(summary)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error recording run {summary.run_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Run {summary.run_id} already recorded: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error recording run {summary.run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record run: {e}") from e

    def get(self, run_id: str) -> Optional[MatchRunSummary]:
        try:
            row = self.session.get(MatchRunModel, run_id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve run: {e}") from e
        return row.to_domain() if row else None

    def latest(self, limit: int = 10) -> List[MatchRunSummary]:
        """Most recent runs first.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(MatchRunModel)
                .order_by(MatchRunModel.started_at.desc())
                .limit(limit)
            )
            rows = self.session.execute(stmt).scalars().all()
            return [row.to_domain() for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Error listing runs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list runs: {e}") from e
