"""
CoinGecko Market Data Provider - Public API adapter.

No authentication required. Serves two listing tiers: "full" (with the 7-day
sparkline) and "reduced" (without it, a lighter request that survives some
rate-limit situations the full one does not).
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from market_data.base import BaseMarketProvider, to_float
from market_data.exceptions import UpstreamError
from market_data.models import CoinDetail, CoinMarketData, SourceMetadata


logger = logging.getLogger(__name__)


class CoinGeckoProvider(BaseMarketProvider):
    """
    CoinGecko v3 public API data source.

    Endpoints used:
    - /coins/markets - Top coins (bare array)
    - /coins/{id} - Coin detail
    - /coins/{id}/market_chart - 30-day price and volume history
    - /ping - Health check
    """

    DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"
    DEFAULT_TIMEOUT = 20.0
    HEALTH_PATH = "/ping"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        limit: int = 50,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, session=session)
        self._limit = limit

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "coingecko"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="CoinGecko",
            base_url=self._base_url,
            requires_auth=False,
            supports_sparkline=True,
            supports_detail=True,
            timeout_seconds=self._timeout,
            priority=3,
        )

    async def _fetch_listings(self, include_sparkline: bool) -> list[dict[str, Any]]:
        """Fetch /coins/markets ordered by market cap."""
        payload = await self._make_request(
            "GET",
            "/coins/markets",
            params={
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": self._limit,
                "page": 1,
                "sparkline": "true" if include_sparkline else "false",
                "price_change_percentage": "24h",
            },
        )

        if not isinstance(payload, list):
            raise UpstreamError(
                message="Unexpected listing payload (expected array)",
                source_name=self.name,
                response_body=str(payload)[:1000],
            )
        return payload

    async def _fetch_detail(self, coin_id: str) -> CoinDetail:
        """Fetch detail and market chart concurrently."""
        detail, chart = await asyncio.gather(
            self._make_request(
                "GET",
                f"/coins/{coin_id}",
                params={
                    "localization": "false",
                    "tickers": "false",
                    "market_data": "true",
                    "community_data": "false",
                    "developer_data": "false",
                    "sparkline": "false",
                },
            ),
            self._make_request(
                "GET",
                f"/coins/{coin_id}/market_chart",
                params={"vs_currency": "usd", "days": 30},
            ),
        )

        market = detail.get("market_data") or {}

        def usd(key: str) -> float:
            return to_float((market.get(key) or {}).get("usd"))

        price = usd("current_price")
        return CoinDetail(
            id=detail.get("id") or coin_id,
            symbol=detail.get("symbol") or coin_id,
            name=detail.get("name") or coin_id,
            description=((detail.get("description") or {}).get("en") or "")[:500],
            market_data=CoinMarketData(
                current_price=price,
                market_cap=usd("market_cap"),
                total_volume=usd("total_volume"),
                price_change_percentage_24h=to_float(market.get("price_change_percentage_24h")),
                high_24h=usd("high_24h") or price,
                low_24h=usd("low_24h") or price,
                circulating_supply=to_float(market.get("circulating_supply")),
                total_supply=to_float(market.get("total_supply")),
            ),
            prices=_series(chart.get("prices")),
            volumes=_series(chart.get("total_volumes")),
            source=self.name,
        )


def _series(points: Optional[list[Any]]) -> list[tuple[int, float]]:
    return [(int(point[0]), to_float(point[1])) for point in points or [] if len(point) >= 2]
