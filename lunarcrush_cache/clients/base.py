"""
Base API client with throttling, 429 backoff, and request metrics.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from lunarcrush_cache.config import Settings
from lunarcrush_cache.exceptions import (
    RateLimitExhaustedError,
    UpstreamError,
    UpstreamTimeoutError,
)

logger = structlog.get_logger()

SleepFunc = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """Token bucket rate limiter with async support."""

    def __init__(self, rate: float, capacity: Optional[float] = None):
        """
        Initialize rate limiter.

        Args:
            rate: Tokens per second
            capacity: Maximum burst capacity (default: rate * 2)
        """
        self.rate = rate
        self.capacity = capacity or rate * 2
        self.tokens = self.capacity
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, tokens: float = 1.0) -> float:
        """
        Acquire tokens, waiting if necessary.

        Returns:
            Wait time in seconds (0 if no wait needed)
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
            self.last_update = now

            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0

            wait_time = (tokens - self.tokens) / self.rate
            await asyncio.sleep(wait_time)
            self.tokens = 0
            self.last_update = time.monotonic()
            return wait_time


def backoff_delay(attempt: int, base_seconds: float = 10.0) -> float:
    """
    Seconds to wait after ``attempt`` rate-limited attempts.

    With the default base this yields 10s after the first 429 and 20s
    after the second one. The first attempt is never delayed.
    """
    if attempt < 1:
        return 0.0
    return base_seconds * 2 ** (attempt - 1)


class RateLimitedResponse(Exception):
    """Internal signal that a single attempt came back with HTTP 429."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP 429 for {response.request.url.path}")
        self.response = response


class BaseAPIClient(ABC):
    """
    Abstract base class for upstream API clients.
    Provides throttling, 429 retries, timeouts, and metrics.
    """

    # Must be set by subclasses
    SOURCE: str = "unknown"

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._settings = settings
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

        self._rate_limiter = RateLimiter(
            settings.lunarcrush_rate_limit_rps,
            capacity=settings.lunarcrush_burst,
        )
        self._timeout = settings.api_timeout_seconds
        self._max_attempts = settings.retry_max_attempts
        self._backoff_base = settings.backoff_base_seconds

        # Metrics
        self._request_count = 0
        self._error_count = 0
        self._rate_limited_count = 0
        self._total_latency_ms = 0.0

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Root URL all request paths are relative to."""

    @abstractmethod
    def _get_headers(self) -> dict[str, str]:
        """Get headers for requests."""

    def _get_auth_params(self) -> dict[str, str]:
        """Query parameters added to every request."""
        return {}

    async def __aenter__(self) -> "BaseAPIClient":
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=self._get_headers(),
            transport=self._transport,
        )
        logger.info("API client connected", source=self.SOURCE, base_url=self.base_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(
                "API client closed",
                source=self.SOURCE,
                requests_made=self._request_count,
                errors=self._error_count,
                rate_limited=self._rate_limited_count,
            )

    async def _make_request(self, path: str, params: dict[str, Any]) -> httpx.Response:
        """
        Make a single GET request.
        Does not include retry logic (handled by caller).
        """
        if not self._client:
            raise RuntimeError("Client not connected. Call connect() first.")

        wait_time = await self._rate_limiter.acquire()
        log = logger.bind(source=self.SOURCE, path=path)
        start = time.monotonic()

        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            self._error_count += 1
            log.error("API request timed out", timeout=self._timeout)
            raise UpstreamTimeoutError(
                f"API request timed out after {self._timeout}s for {path}", path=path
            ) from e
        except httpx.TransportError as e:
            self._error_count += 1
            log.error("API request failed", error=str(e))
            raise UpstreamError(f"API request failed for {path}: {e}", path=path) from e

        elapsed_ms = (time.monotonic() - start) * 1000
        self._request_count += 1
        self._total_latency_ms += elapsed_ms

        log.debug(
            "API request completed",
            status=response.status_code,
            latency_ms=round(elapsed_ms, 2),
            wait_time=round(wait_time, 3),
        )

        if response.status_code == 429:
            self._rate_limited_count += 1
            raise RateLimitedResponse(response)

        if not response.is_success:
            self._error_count += 1
            log.warning(
                "API request rejected",
                status=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamError(
                f"API request failed: {response.status_code} for {path}",
                status_code=response.status_code,
                path=path,
            )

        return response

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Rate limited, backing off",
            source=self.SOURCE,
            attempt=retry_state.attempt_number,
            max_attempts=self._max_attempts,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    async def _request_with_retry(self, path: str, params: dict[str, Any]) -> httpx.Response:
        """Make request, retrying only on HTTP 429 with exponential backoff."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitedResponse),
            stop=stop_after_attempt(self._max_attempts),
            wait=lambda state: backoff_delay(state.attempt_number, self._backoff_base),
            before_sleep=self._log_backoff,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._make_request(path, params)
        except RateLimitedResponse as e:
            self._error_count += 1
            logger.error(
                "Rate limit retries exhausted",
                source=self.SOURCE,
                path=path,
                attempts=self._max_attempts,
            )
            raise RateLimitExhaustedError(path, self._max_attempts) from e

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Make a GET request with auth and non-null query parameters.
        Returns parsed JSON response.
        """
        query = dict(self._get_auth_params())
        for name, value in (params or {}).items():
            if value is not None:
                query[name] = value

        response = await self._request_with_retry(path, query)
        try:
            return response.json()
        except ValueError as e:
            self._error_count += 1
            raise UpstreamError(
                "API response is not valid JSON",
                status_code=response.status_code,
                path=path,
            ) from e

    def get_metrics(self) -> dict[str, Any]:
        """Get client metrics."""
        avg_latency = (
            self._total_latency_ms / self._request_count
            if self._request_count > 0
            else 0
        )
        return {
            "source": self.SOURCE,
            "requests": self._request_count,
            "errors": self._error_count,
            "rate_limited": self._rate_limited_count,
            "avg_latency_ms": round(avg_latency, 2),
        }
