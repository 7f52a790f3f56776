"""
CoinMarketCap Market Data Provider - Keyed API adapter.

Listing: /cryptocurrency/listings/latest (no sparkline).
Detail: /cryptocurrency/quotes/latest looked up by symbol, then by slug.
CoinMarketCap's basic plan has no history endpoint, so the 30-day series
is reconstructed from the 24h change.
"""

import logging
import random
from typing import Any, Callable, Optional

import aiohttp

from market_data.base import BaseMarketProvider, to_float
from market_data.exceptions import UpstreamError
from market_data.history import now_ms, reconstruct_from_change
from market_data.models import CoinDetail, CoinMarketData, SourceMetadata


logger = logging.getLogger(__name__)


class CoinMarketCapProvider(BaseMarketProvider):
    """
    CoinMarketCap Pro API data source.

    Endpoints used:
    - /cryptocurrency/listings/latest - Top coins (envelope "data")
    - /cryptocurrency/quotes/latest - Quote by symbol or slug
    - /key/info - Health check

    Authentication: "X-CMC_PRO_API_KEY" header.
    """

    DEFAULT_BASE_URL = "https://pro-api.coinmarketcap.com/v1"
    DEFAULT_TIMEOUT = 20.0
    HEALTH_PATH = "/key/info"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        limit: int = 50,
        session: Optional[aiohttp.ClientSession] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        super().__init__(base_url=base_url, api_key=api_key, timeout=timeout, session=session)
        self._limit = limit
        self._rng = rng or random.Random()
        self._clock = clock or now_ms

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "coinmarketcap"

    @property
    def requires_auth(self) -> bool:
        return True

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="CoinMarketCap",
            base_url=self._base_url,
            requires_auth=True,
            supports_sparkline=False,
            supports_detail=True,
            timeout_seconds=self._timeout,
            priority=2,
        )

    def _get_auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"X-CMC_PRO_API_KEY": self._api_key}

    async def _fetch_listings(self, include_sparkline: bool) -> list[dict[str, Any]]:
        """Fetch latest listings sorted by market cap."""
        payload = await self._make_request(
            "GET",
            "/cryptocurrency/listings/latest",
            params={
                "start": 1,
                "limit": self._limit,
                "convert": "USD",
                "sort": "market_cap",
                "sort_dir": "desc",
            },
        )

        records = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise UpstreamError(
                message="Unexpected listing envelope (missing 'data' array)",
                source_name=self.name,
                response_body=str(payload)[:1000],
            )
        return records

    async def _fetch_detail(self, coin_id: str) -> CoinDetail:
        """Look up a quote by symbol, falling back to slug."""
        try:
            payload = await self._make_request(
                "GET",
                "/cryptocurrency/quotes/latest",
                params={"symbol": coin_id.upper(), "convert": "USD"},
            )
        except UpstreamError as e:
            logger.debug(f"[{self.name}] Symbol lookup failed for {coin_id}, trying slug: {e}")
            payload = await self._make_request(
                "GET",
                "/cryptocurrency/quotes/latest",
                params={"slug": coin_id.lower(), "convert": "USD"},
            )

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise UpstreamError(
                message=f"No quote for {coin_id}",
                source_name=self.name,
            )

        # Keyed by symbol or numeric id; take the first entry
        coin = next(iter(data.values()))
        if isinstance(coin, list):
            coin = coin[0]
        quote = (coin.get("quote") or {}).get("USD") or {}

        price = to_float(quote.get("price"))
        change = to_float(quote.get("percent_change_24h"))
        volume = to_float(quote.get("volume_24h"))
        prices, volumes = reconstruct_from_change(
            current_price=price,
            change_24h=change,
            volume_24h=volume,
            rng=self._rng,
            end_ms=self._clock(),
        )

        return CoinDetail(
            id=coin.get("slug") or (coin.get("symbol") or coin_id).lower(),
            symbol=coin.get("symbol") or coin_id.upper(),
            name=coin.get("name") or coin_id,
            description=coin.get("description") or "",
            market_data=CoinMarketData(
                current_price=price,
                market_cap=to_float(quote.get("market_cap")),
                total_volume=volume,
                price_change_percentage_24h=change,
                high_24h=to_float(quote.get("high_24h")) or price,
                low_24h=to_float(quote.get("low_24h")) or price,
                circulating_supply=to_float(coin.get("circulating_supply")),
                total_supply=to_float(coin.get("total_supply")),
            ),
            prices=prices,
            volumes=volumes,
            source=self.name,
        )
