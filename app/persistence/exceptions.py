"""Persistence layer exceptions. All inherit from PersistenceError."""


class PersistenceError(Exception):
    """Base exception for local database errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Database initialization failed or the database is not initialized."""

    pass


class DataIntegrityError(PersistenceError):
    """A constraint was violated, e.g. recording the same run id twice."""

    pass
