"""
Base HTTP client with retry logic and common utilities.

This module provides a synchronous base class for external API
integrations used inside Celery workers:
- Retry logic with exponential backoff and jitter
- Retry-After handling on 429 responses
- A hard per-request timeout
- Conversion of transport and HTTP errors to quillpress exceptions
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import ExternalServiceError, RateLimitError

logger = logging.getLogger(__name__)


class SyncBaseHTTPClient(ABC):
    """
    Abstract base class for synchronous HTTP API clients.

    Subclasses must implement:
    - service_name: Property returning the service name
    - _get_headers(): Method returning default headers
    """

    def __init__(
        self,
        base_url: str = "",
        api_key: str | None = None,
        settings: Settings | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the synchronous HTTP client.

        Args:
            base_url: Base URL for API requests (empty for absolute URLs)
            api_key: API key for authentication
            settings: Application settings instance
            max_retries: Maximum number of attempts per request
            base_delay: Initial delay in seconds for exponential backoff
            max_delay: Maximum delay in seconds between retries
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._settings = settings or get_settings()
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._timeout = timeout

        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            follow_redirects=True,
            transport=transport,
        )

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Return the name of the service for logging and error messages."""
        pass

    @abstractmethod
    def _get_headers(self) -> dict[str, str]:
        """Return default headers for API requests."""
        pass

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()

    def __enter__(self) -> "SyncBaseHTTPClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """
        Calculate exponential backoff delay with jitter.

        Args:
            attempt: Current retry attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = min(self._base_delay * (2**attempt), self._max_delay)
        jitter = delay * (0.1 + 0.2 * random.random())
        return delay + jitter

    def _sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Make a synchronous HTTP request with retry logic.

        ``path`` may be relative to the base URL or absolute.

        Returns:
            httpx.Response object

        Raises:
            ExternalServiceError: If request fails after retries, or on a 4xx
            RateLimitError: If rate limit is exceeded after retries
        """
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self._base_url}/{path.lstrip('/')}"
        request_headers = self._get_headers()
        if headers:
            request_headers.update(headers)

        last_error: str | None = None

        for attempt in range(self._max_retries):
            is_last = attempt == self._max_retries - 1
            try:
                start_time = time.time()

                response = self._client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    params=params,
                    json=json_data,
                    timeout=timeout or self._timeout,
                )

                elapsed_ms = int((time.time() - start_time) * 1000)
                logger.info(
                    f"{self.service_name} API request",
                    extra={
                        "method": method,
                        "url": url,
                        "status_code": response.status_code,
                        "elapsed_ms": elapsed_ms,
                        "attempt": attempt + 1,
                    },
                )
            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
                logger.warning(
                    f"{self.service_name} request timeout",
                    extra={"attempt": attempt + 1, "max_retries": self._max_retries},
                )
                if not is_last:
                    self._sleep(self._calculate_backoff(attempt))
                continue
            except httpx.RequestError as e:
                last_error = str(e)
                logger.warning(
                    f"{self.service_name} connection error",
                    extra={
                        "attempt": attempt + 1,
                        "max_retries": self._max_retries,
                        "error": str(e),
                    },
                )
                if not is_last:
                    self._sleep(self._calculate_backoff(attempt))
                continue

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                delay = float(retry_after) if retry_after else self._calculate_backoff(attempt)
                delay = min(delay, self._max_delay)
                logger.warning(
                    f"{self.service_name} rate limit hit",
                    extra={"attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                if is_last:
                    raise RateLimitError(
                        message=f"{self.service_name} rate limit exceeded after retries",
                        retry_after=int(delay),
                    )
                self._sleep(delay)
                continue

            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}: {response.text[:500]}"
                logger.warning(
                    f"{self.service_name} server error",
                    extra={"status_code": response.status_code, "attempt": attempt + 1},
                )
                if not is_last:
                    self._sleep(self._calculate_backoff(attempt))
                continue

            if response.status_code >= 400:
                error_body = response.text[:500]
                logger.error(
                    f"{self.service_name} API client error",
                    extra={"status_code": response.status_code, "error": error_body},
                )
                # Bad request, auth or not found: another attempt cannot succeed
                raise ExternalServiceError(
                    service=self.service_name,
                    message=f"{self.service_name} API error: {response.status_code}",
                    original_error=error_body,
                    retryable=False,
                )

            return response

        logger.error(
            f"{self.service_name} request failed after all retries",
            extra={"max_retries": self._max_retries, "error": last_error},
        )
        raise ExternalServiceError(
            service=self.service_name,
            message=f"{self.service_name} API call failed after retries",
            original_error=last_error,
        )

    def _post(
        self,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Make a POST request."""
        return self._request(
            "POST",
            path,
            json_data=json_data,
            params=params,
            headers=headers,
            timeout=timeout,
        )
