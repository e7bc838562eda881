"""
Base API Client

Provides unified HTTP request handling, rate limiting, and error mapping
for the external API clients in MoodSync.

HTTP outcomes are translated into the typed errors in moodsync.api.errors
so the services can decide which failures advance a fallback chain.
"""

import asyncio
import json
import random
from abc import ABC, abstractmethod
from typing import Dict, Optional, Any

import aiohttp
import structlog

from .errors import MalformedResponse, NetworkFailure, RateLimited, TokenRejected
from .rate_limiter import UnifiedRateLimiter

logger = structlog.get_logger(__name__)


class BaseAPIClient(ABC):
    """
    Base HTTP client with unified request handling, rate limiting, and error mapping.

    Clients are used as async context managers; the aiohttp session lives for
    the duration of the ``async with`` block.
    """

    def __init__(
        self,
        base_url: str,
        rate_limiter: Optional[UnifiedRateLimiter] = None,
        timeout: float = 10,
        service_name: str = "api"
    ):
        """
        Initialize base API client.

        Args:
            base_url: Base URL for the API
            rate_limiter: Rate limiter instance for this client (optional)
            timeout: Request timeout in seconds
            service_name: Service name for logging and identification
        """
        self.base_url = base_url.rstrip('/')
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.service_name = service_name
        self.session: Optional[aiohttp.ClientSession] = None

        self.logger = logger.bind(
            service=service_name,
            component="BaseAPIClient",
            base_url=self.base_url
        )

    async def __aenter__(self):
        """Async context manager entry."""
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def open(self) -> None:
        """Start the HTTP session if it is not running yet."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self.logger.debug("API client session started")

    async def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("API client session closed")

    async def _make_request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        retries: int = 0
    ) -> Dict[str, Any]:
        """
        Make rate-limited HTTP request with typed error mapping.

        Args:
            endpoint: API endpoint (relative to base_url)
            params: Query parameters
            method: HTTP method
            headers: Additional headers
            data: Form body (sent url-encoded)
            url: Absolute URL overriding base_url/endpoint
            retries: Retry attempts for transport failures and 5xx responses

        Returns:
            Parsed JSON response data

        Raises:
            TokenRejected: 401 response
            RateLimited: 429 response (never retried)
            NetworkFailure: timeout, connection error or other status
            MalformedResponse: non-JSON body or API error in body
        """
        if not self.session:
            self.logger.error("Client not initialized")
            raise RuntimeError(
                f"{self.service_name} client not initialized. Use async context manager."
            )

        if self.rate_limiter:
            await self.rate_limiter.wait_if_needed()

        if url is None:
            url = f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url

        request_headers = dict(headers or {})
        request_headers.setdefault('User-Agent', f'MoodSync-{self.service_name}/1.0')

        last_error: Optional[Exception] = None
        for attempt in range(retries + 1):
            try:
                self.logger.debug(
                    "Making API request",
                    method=method,
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    max_attempts=retries + 1
                )

                async with self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    data=data,
                    headers=request_headers
                ) as response:
                    if response.status == 200:
                        payload = await self._parse_response(response)
                        error_info = self._extract_api_error(payload)
                        if error_info:
                            self.logger.error(
                                "API error in response body",
                                error=error_info,
                                endpoint=endpoint
                            )
                            raise MalformedResponse(
                                f"{self.service_name} API error: {error_info}",
                                service=self.service_name
                            )
                        return payload

                    if response.status == 401:
                        self.logger.warning("Bearer token rejected", endpoint=endpoint)
                        raise TokenRejected(
                            f"{self.service_name} rejected the access token",
                            service=self.service_name
                        )

                    if response.status == 429:
                        retry_after = self._parse_retry_after(response)
                        self.logger.warning(
                            "Rate limited by upstream",
                            endpoint=endpoint,
                            retry_after=retry_after
                        )
                        raise RateLimited(
                            f"{self.service_name} rate limit exceeded",
                            service=self.service_name,
                            retry_after=retry_after
                        )

                    self.logger.warning(
                        "HTTP error",
                        status=response.status,
                        endpoint=endpoint,
                        attempt=attempt + 1
                    )
                    last_error = NetworkFailure(
                        f"{self.service_name} returned HTTP {response.status}",
                        service=self.service_name,
                        status=response.status
                    )
                    # 4xx other than 401/429 will not improve on retry
                    if response.status < 500:
                        raise last_error

            except asyncio.TimeoutError:
                self.logger.warning(
                    "Request timeout",
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    timeout=self.timeout
                )
                last_error = NetworkFailure(
                    f"{self.service_name} request timed out",
                    service=self.service_name
                )

            except aiohttp.ClientError as e:
                self.logger.warning(
                    "HTTP client error",
                    endpoint=endpoint,
                    error=str(e),
                    error_type=type(e).__name__,
                    attempt=attempt + 1
                )
                last_error = NetworkFailure(
                    f"{self.service_name} client error: {e}",
                    service=self.service_name
                )

            if attempt < retries:
                await self._exponential_backoff(attempt)

        raise last_error

    async def _parse_response(self, response: aiohttp.ClientResponse) -> Dict[str, Any]:
        """
        Parse API response. Can be overridden by subclasses for custom parsing.

        Args:
            response: HTTP response object

        Returns:
            Parsed response data
        """
        try:
            payload = await response.json(content_type=None)
        except (json.JSONDecodeError, aiohttp.ContentTypeError) as e:
            self.logger.error("Invalid JSON response", error=str(e))
            raise MalformedResponse(
                f"{self.service_name} returned invalid JSON",
                service=self.service_name
            )

        if not isinstance(payload, dict):
            raise MalformedResponse(
                f"{self.service_name} returned a non-object body",
                service=self.service_name
            )
        return payload

    @abstractmethod
    def _extract_api_error(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Extract API-specific error information from response data.

        Args:
            data: Parsed response data

        Returns:
            Error message if found, None otherwise
        """

    @staticmethod
    def _parse_retry_after(response: aiohttp.ClientResponse) -> Optional[float]:
        retry_after = response.headers.get('Retry-After')
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                return None
        return None

    async def _exponential_backoff(self, attempt: int, base_delay: float = 0.5):
        """
        Exponential backoff with jitter.

        Args:
            attempt: Current attempt number (0-based)
            base_delay: Base delay in seconds
        """
        delay = base_delay * (2 ** attempt)
        total_delay = min(delay + random.uniform(0.1, 0.3) * delay, 10.0)

        self.logger.debug("Backing off before retry", attempt=attempt + 1, delay=total_delay)
        await asyncio.sleep(total_delay)

    def get_service_info(self) -> Dict[str, Any]:
        """
        Get service information for monitoring.

        Returns:
            Service configuration and status information
        """
        return {
            "service_name": self.service_name,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "session_active": self.session is not None,
            "rate_limited": self.rate_limiter is not None,
        }
