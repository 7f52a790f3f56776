"""
Binance Market Data Provider - Public spot API adapter.

No authentication required. Binance returns every ticker on the exchange
with no market cap; USDT filtering and the market cap estimate happen in
the normalizer. There is no detail endpoint.
"""

import logging
from typing import Any, Optional

import aiohttp

from market_data.base import BaseMarketProvider
from market_data.exceptions import UpstreamError
from market_data.models import SourceMetadata


logger = logging.getLogger(__name__)


class BinanceProvider(BaseMarketProvider):
    """
    Binance spot public API data source.

    Endpoints used:
    - /ticker/24hr - 24h ticker for all symbols (bare array)
    - /ping - Health check

    Rate limits:
    - /ticker/24hr without a symbol weighs 40 (of 6000/minute)
    """

    DEFAULT_BASE_URL = "https://api.binance.com/api/v3"
    DEFAULT_TIMEOUT = 15.0
    HEALTH_PATH = "/ping"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, session=session)

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "binance"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="Binance Spot",
            base_url=self._base_url,
            requires_auth=False,
            supports_sparkline=False,
            supports_detail=False,
            timeout_seconds=self._timeout,
            priority=5,
        )

    async def _fetch_listings(self, include_sparkline: bool) -> list[dict[str, Any]]:
        """Fetch all 24hr tickers."""
        payload = await self._make_request("GET", "/ticker/24hr")

        if not isinstance(payload, list):
            raise UpstreamError(
                message="Unexpected ticker payload (expected array)",
                source_name=self.name,
                response_body=str(payload)[:1000],
            )
        return payload
