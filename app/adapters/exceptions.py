"""Custom exceptions for the Airtable and Mapbox clients."""

from typing import Optional


class AdapterError(Exception):
    """Base exception for all adapter errors.

    The pipeline catches this at the boundary of each fetch or batch write:
    a failed batch is counted and the run moves on, a failed collection fetch
    ends the run with a failed result.
    """


class AdapterHTTPError(AdapterError):
    """HTTP request failed with a 4xx/5xx status, or never got a response (status 0)."""

    def __init__(
        self,
        message: str,
        status_code: int,
        url: str,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.retry_after = retry_after

    @property
    def is_retryable(self) -> bool:
        """Rate limiting, server errors and connection failures may succeed later."""
        return self.status_code in (0, 429) or self.status_code >= 500


class AdapterTimeoutError(AdapterError):
    """HTTP request did not complete within the configured timeout."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class AdapterResponseError(AdapterError):
    """A response arrived but could not be parsed (bad JSON, unexpected shape)."""


class AdapterConfigurationError(AdapterError):
    """Invalid client configuration (missing credentials, bad timeout)."""
