"""Shared HTTP plumbing for the Airtable and Mapbox clients.

``BaseHTTPClient`` owns a ``requests.Session`` and maps transport failures
onto the adapter exception hierarchy so callers only deal with
``AdapterError`` subclasses.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import requests

from app.logging import get_logger
from app.utils.timestamps import parse_iso_datetime

from .exceptions import (
    AdapterConfigurationError,
    AdapterHTTPError,
    AdapterResponseError,
    AdapterTimeoutError,
)

logger = get_logger(__name__, component="adapter")

QueryParams = Union[Dict[str, Any], Sequence[Tuple[str, Any]]]


class BaseHTTPClient(ABC):
    """Base class for outbound API clients.

    Attributes:
        timeout: HTTP request timeout in seconds
        user_agent: User-Agent header sent with every request
    """

    def __init__(self, timeout: int = 30, user_agent: str = "BuyerPropertyMatcher/1.0") -> None:
        """
        Raises:
            AdapterConfigurationError: If timeout is outside 5-300s or user_agent is empty
        """
        if not 5 <= timeout <= 300:
            raise AdapterConfigurationError(
                f"Timeout must be between 5 and 300 seconds, got: {timeout}"
            )
        if not user_agent or not user_agent.strip():
            raise AdapterConfigurationError("user_agent cannot be empty")

        self.timeout = timeout
        self.user_agent = user_agent.strip()

        self._session = requests.Session()
        self._session.headers.update({"User-Agent": self.user_agent})

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Short name of the remote service, used in log events."""

    def close(self) -> None:
        self._session.close()

    def _make_request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[QueryParams] = None,
        json_data: Optional[Dict[str, Any]] = None,
        log_url: Optional[str] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Extra headers merged over the session defaults
            params: Query parameters; a list of pairs allows repeated keys
            json_data: JSON request body
            log_url: URL to log instead of ``url`` (for URLs carrying secrets)

        Raises:
            AdapterHTTPError: On 4xx/5xx status or connection failure (status 0)
            AdapterTimeoutError: On request timeout
            AdapterResponseError: On a body that is not valid JSON
        """
        shown_url = log_url or url
        request_headers = dict(self._session.headers)
        if headers:
            request_headers.update(headers)

        logger.debug(
            f"HTTP {method} {shown_url}",
            extra={
                "event": f"{self.service_name}.request.started",
                "method": method,
                "url": shown_url,
                "timeout": self.timeout,
            },
        )

        try:
            response = self._session.request(
                method=method,
                url=url,
                headers=request_headers,
                params=params,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"{method} {shown_url} timed out after {self.timeout} seconds",
                extra={
                    "event": f"{self.service_name}.request.timeout",
                    "url": shown_url,
                    "timeout": self.timeout,
                },
            )
            raise AdapterTimeoutError(
                f"Request to {shown_url} timed out after {self.timeout} seconds",
                url=shown_url,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"{method} {shown_url} failed: {type(e).__name__}",
                extra={
                    "event": f"{self.service_name}.request.failed",
                    "error_type": type(e).__name__,
                    "url": shown_url,
                },
            )
            raise AdapterHTTPError(
                f"Request to {shown_url} failed: {type(e).__name__}",
                status_code=0,
                url=shown_url,
            ) from e

        if response.status_code >= 400:
            retry_after = self._retry_after(response)
            retryable = response.status_code == 429 or response.status_code >= 500
            logger.log(
                logging.WARNING if retryable else logging.ERROR,
                f"HTTP {response.status_code} from {shown_url}",
                extra={
                    "event": f"{self.service_name}.request.{'retryable_error' if retryable else 'error'}",
                    "status_code": response.status_code,
                    "url": shown_url,
                    "retry_after_seconds": retry_after,
                },
            )
            raise AdapterHTTPError(
                f"HTTP {response.status_code}: {response.reason} ({self._error_detail(response)})",
                status_code=response.status_code,
                url=shown_url,
                retry_after=retry_after,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Invalid JSON from {shown_url}",
                extra={
                    "event": f"{self.service_name}.response.invalid",
                    "url": shown_url,
                },
            )
            raise AdapterResponseError(f"Failed to parse JSON response from {shown_url}: {e}") from e

    @staticmethod
    def _retry_after(response: requests.Response) -> Optional[float]:
        value = response.headers.get("Retry-After") if response.headers else None
        if not value:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        """Best-effort error message from a JSON error body."""
        try:
            body = response.json()
        except ValueError:
            return (response.text or "")[:200]
        if isinstance(body, dict):
            error = body.get("error") or body.get("message")
            if isinstance(error, dict):
                return str(error.get("message") or error.get("type") or error)
            if error:
                return str(error)
        return str(body)[:200]

    @staticmethod
    def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
        """ISO-8601 string to an aware UTC datetime; None (with a warning) if unparseable."""
        parsed = parse_iso_datetime(value)
        if value and parsed is None:
            logger.warning(
                "Failed to parse timestamp",
                extra={"event": "adapter.timestamp.invalid", "timestamp": str(value)},
            )
        return parsed


def chunked(items: Sequence[Any], size: int) -> List[List[Any]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
