"""
Base Market Provider - Abstract interface for all upstream price feeds.

All providers MUST implement this interface to ensure:
- Isolation
- Replaceability
- Fail-safety

A provider call either returns provider-raw records or raises UpstreamError.
There are no retries inside a call; recovery is the orchestrator's job
(it advances to the next tier).
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import aiohttp

from market_data.exceptions import (
    MarketDataError,
    RateLimitError,
    UpstreamError,
)
from market_data.models import (
    CoinDetail,
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
)


logger = logging.getLogger(__name__)


class BaseMarketProvider(ABC):
    """
    Abstract base class for all market data providers.

    Each provider implementation must:
    1. Implement _fetch_listings() - Get the raw top-N listing
    2. Implement metadata() - Return provider metadata
    3. Optionally implement _fetch_detail() - Get a single coin's detail

    Features:
    - Typed error mapping at the HTTP seam
    - Health tracking
    - Incident logging
    """

    # Configuration defaults (can be overridden by subclasses)
    DEFAULT_TIMEOUT = 20.0
    DEFAULT_BASE_URL = ""
    HEALTH_PATH = ""
    HEALTH_PARAMS: Optional[dict[str, Any]] = None
    DEGRADED_THRESHOLD = 3  # consecutive failures before degraded
    UNAVAILABLE_THRESHOLD = 5  # consecutive failures before unavailable

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._api_key = api_key
        self._timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._session = session
        self._owns_session = session is None

        # Health tracking
        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.utcnow(),
        )
        self._last_successful_request: Optional[datetime] = None
        self._request_count = 0
        self._success_count = 0
        self._error_count = 0

        # Incident log
        self._incidents: list[SourceIncident] = []
        self._max_incidents = 100

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider."""
        pass

    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        pass

    @abstractmethod
    async def _fetch_listings(self, include_sparkline: bool) -> list[dict[str, Any]]:
        """
        Fetch the raw top-N listing from the provider API.

        Returns:
            Provider-raw records, envelope already unwrapped

        Raises:
            UpstreamError: On network error, timeout, HTTP >= 400 or bad body
        """
        pass

    async def _fetch_detail(self, coin_id: str) -> CoinDetail:
        """Fetch a single coin's detail. Providers without one raise."""
        raise UpstreamError(
            message="Detail endpoint not supported",
            source_name=self.name,
        )

    @property
    def requires_auth(self) -> bool:
        return False

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    async def fetch_listings(self, include_sparkline: bool = True) -> list[dict[str, Any]]:
        """
        Fetch the provider's top-N listing (main entry point).

        Combines _fetch_listings() with credential checks, empty-body
        detection and health tracking.

        Raises:
            UpstreamError: On any failure, including an empty listing
        """
        self._ensure_credentials()
        try:
            records = await self._fetch_listings(include_sparkline)
            if not records:
                raise UpstreamError(
                    message="Empty listing response",
                    source_name=self.name,
                )
            self._on_success()
            return records

        except UpstreamError as e:
            self._on_error(e, {"operation": "fetch_listings"})
            raise
        except MarketDataError as e:
            error = UpstreamError(
                message=e.message,
                source_name=self.name,
                original_error=e,
            )
            self._on_error(error, {"operation": "fetch_listings"})
            raise error
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            error = UpstreamError(
                message=f"Malformed listing payload: {e}",
                source_name=self.name,
                original_error=e,
            )
            self._on_error(error, {"operation": "fetch_listings"})
            raise error

    async def fetch_detail(self, coin_id: str) -> CoinDetail:
        """
        Fetch detail for one coin.

        Raises:
            UpstreamError: If the provider has no detail or the call fails
        """
        self._ensure_credentials()
        try:
            detail = await self._fetch_detail(coin_id)
            self._on_success()
            return detail

        except UpstreamError as e:
            self._on_error(e, {"operation": "fetch_detail", "coin_id": coin_id})
            raise
        except (KeyError, TypeError, ValueError, AttributeError, IndexError, StopIteration) as e:
            error = UpstreamError(
                message=f"Malformed detail payload: {e}",
                source_name=self.name,
                original_error=e,
            )
            self._on_error(error, {"operation": "fetch_detail", "coin_id": coin_id})
            raise error

    async def health_check(self) -> SourceHealth:
        """
        Check provider connectivity by hitting a cheap endpoint.

        Returns:
            SourceHealth object with current status
        """
        if self.requires_auth and not self.has_credentials:
            self._health.status = SourceStatus.UNAVAILABLE
            self._health.last_check = datetime.utcnow()
            self._health.last_error = "API key not configured"
            return self._health

        start_time = time.time()
        try:
            await self._make_request("GET", self.HEALTH_PATH, params=self.HEALTH_PARAMS)
            latency_ms = (time.time() - start_time) * 1000

            self._health.status = SourceStatus.HEALTHY
            self._health.last_check = datetime.utcnow()
            self._health.latency_ms = latency_ms

            logger.debug(f"[{self.name}] Health check OK, latency={latency_ms:.1f}ms")

        except UpstreamError as e:
            latency_ms = (time.time() - start_time) * 1000

            self._health.status = SourceStatus.UNAVAILABLE
            self._health.last_check = datetime.utcnow()
            self._health.latency_ms = latency_ms
            self._health.last_error = str(e)
            self._health.last_error_time = datetime.utcnow()

            logger.warning(f"[{self.name}] Health check FAILED: {e}")

        return self._health

    def _ensure_credentials(self) -> None:
        if self.requires_auth and not self.has_credentials:
            raise UpstreamError(
                message="API key not configured",
                source_name=self.name,
            )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
                trust_env=True,
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        headers = {
            "Accept": "application/json",
            "User-Agent": "MarketDataAggregator/1.0",
        }
        headers.update(self._get_auth_headers())
        return headers

    def _get_auth_headers(self) -> dict[str, str]:
        """Authentication headers; keyed providers override."""
        return {}

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Make HTTP request with error handling."""
        url = path if path.startswith("http") else f"{self._base_url}{path}"
        session = await self._get_session()
        request_timeout = aiohttp.ClientTimeout(total=timeout or self._timeout)

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
                timeout=request_timeout,
            ) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        source_name=self.name,
                        retry_after_seconds=_parse_retry_after(response.headers.get("Retry-After")),
                        request_url=url,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise UpstreamError(
                        message=f"HTTP {response.status}",
                        source_name=self.name,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise UpstreamError(
                        message="Malformed JSON body",
                        source_name=self.name,
                        status_code=response.status,
                        request_url=url,
                        original_error=e,
                    )

                if data is None:
                    raise UpstreamError(
                        message="Empty response body",
                        source_name=self.name,
                        status_code=response.status,
                        request_url=url,
                    )

                logger.debug(f"[{self.name}] {method} {url} completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            raise UpstreamError(
                message=f"Connection error: {e}",
                source_name=self.name,
                request_url=url,
                original_error=e,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                message=f"Request timed out after {timeout or self._timeout}s",
                source_name=self.name,
                request_url=url,
                original_error=e,
            )

    def _on_success(self) -> None:
        """Handle successful request."""
        self._request_count += 1
        self._success_count += 1
        self._last_successful_request = datetime.utcnow()

        # Reset consecutive failures
        self._health.consecutive_failures = 0

        if self._health.status != SourceStatus.HEALTHY:
            if self._health.status != SourceStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = SourceStatus.HEALTHY

    def _on_error(
        self,
        error: MarketDataError,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Handle request error."""
        self._request_count += 1
        self._error_count += 1
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.utcnow()

        # Update health status based on consecutive failures
        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE after {self._health.consecutive_failures} failures")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED after {self._health.consecutive_failures} failures")

        self._log_incident(error, context)

    def _log_incident(
        self,
        error: MarketDataError,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an incident."""
        incident = SourceIncident(
            source_name=self.name,
            incident_type=error.__class__.__name__,
            timestamp=datetime.utcnow(),
            error_message=str(error),
            context=context,
        )

        self._incidents.append(incident)

        # Trim incidents to max size
        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

        logger.warning(f"[{self.name}] Incident logged: {error}")

    def get_health(self) -> SourceHealth:
        """Get current health status."""
        if self._request_count > 0:
            self._health.uptime_percentage = (
                self._success_count / self._request_count * 100
            )
        return self._health

    def get_incidents(self, limit: int = 10) -> list[SourceIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseMarketProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def to_float(value: Any, default: float = 0.0) -> float:
    """Parse a provider number that may arrive as a string or null."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
