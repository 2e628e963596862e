"""Local SQLite persistence: geocode cache and match-run history.

Example usage:
    >>> from app.persistence import init_database, get_session, MatchRunRepository
    >>> init_database("sqlite:///./data/matcher.db")
    >>> with get_session() as session:
    ...     runs = MatchRunRepository(session).latest(5)
"""

from .database import close_database, get_engine, get_session, init_database, is_initialized
from .exceptions import DatabaseConnectionError, DataIntegrityError, PersistenceError
from .repositories import GeocodeCacheRepository, MatchRunRepository

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "is_initialized",
    # Repositories
    "GeocodeCacheRepository",
    "MatchRunRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
]
