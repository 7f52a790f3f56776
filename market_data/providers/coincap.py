"""
CoinCap Market Data Provider - Public API adapter.

All numbers arrive as strings. History is best-effort: a failed history
request still yields a detail record with empty series.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import aiohttp

from market_data.base import BaseMarketProvider, to_float
from market_data.exceptions import UpstreamError
from market_data.history import DAY_MS, HISTORY_DAYS, now_ms
from market_data.models import CoinDetail, CoinMarketData, SourceMetadata


logger = logging.getLogger(__name__)


class CoinCapProvider(BaseMarketProvider):
    """
    CoinCap v2 public API data source.

    Endpoints used:
    - /assets - Top assets (envelope "data")
    - /assets/{id} - Single asset
    - /assets/{id}/history - Hourly history
    """

    DEFAULT_BASE_URL = "https://api.coincap.io/v2"
    DEFAULT_TIMEOUT = 15.0
    HEALTH_PATH = "/assets"
    HEALTH_PARAMS = {"limit": 1}

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        limit: int = 50,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, session=session)
        self._limit = limit
        self._clock = clock or now_ms

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "coincap"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="CoinCap",
            base_url=self._base_url,
            requires_auth=False,
            supports_sparkline=False,
            supports_detail=True,
            timeout_seconds=self._timeout,
            priority=4,
        )

    async def _fetch_listings(self, include_sparkline: bool) -> list[dict[str, Any]]:
        """Fetch top assets."""
        payload = await self._make_request("GET", "/assets", params={"limit": self._limit})

        records = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise UpstreamError(
                message="Unexpected listing envelope (missing 'data' array)",
                source_name=self.name,
                response_body=str(payload)[:1000],
            )
        return records

    async def _fetch_detail(self, coin_id: str) -> CoinDetail:
        """Fetch a single asset plus best-effort hourly history."""
        payload = await self._make_request("GET", f"/assets/{coin_id}")
        asset = payload.get("data") if isinstance(payload, dict) else None
        if not asset:
            raise UpstreamError(
                message=f"Unknown asset {coin_id}",
                source_name=self.name,
            )

        prices, volumes = await self._fetch_history(coin_id)

        vwap = to_float(asset.get("vwap24Hr"))
        supply = to_float(asset.get("supply"))
        return CoinDetail(
            id=asset.get("id") or coin_id,
            symbol=asset.get("symbol") or coin_id,
            name=asset.get("name") or coin_id,
            description="",
            market_data=CoinMarketData(
                current_price=to_float(asset.get("priceUsd")),
                market_cap=to_float(asset.get("marketCapUsd")),
                total_volume=to_float(asset.get("volumeUsd24Hr")),
                price_change_percentage_24h=to_float(asset.get("changePercent24Hr")),
                high_24h=vwap,
                low_24h=vwap,
                circulating_supply=supply,
                total_supply=supply,
            ),
            prices=prices,
            volumes=volumes,
            source=self.name,
        )

    async def _fetch_history(self, coin_id: str) -> tuple[list[tuple[int, float]], list[tuple[int, float]]]:
        end = self._clock()
        try:
            payload = await self._make_request(
                "GET",
                f"/assets/{coin_id}/history",
                params={"interval": "h1", "start": end - HISTORY_DAYS * DAY_MS, "end": end},
            )
        except UpstreamError as e:
            logger.info(f"[{self.name}] History unavailable for {coin_id}, using quote only: {e}")
            return [], []

        prices: list[tuple[int, float]] = []
        volumes: list[tuple[int, float]] = []
        for point in (payload.get("data") if isinstance(payload, dict) else None) or []:
            timestamp = _timestamp_ms(point)
            if timestamp is None:
                continue
            prices.append((timestamp, to_float(point.get("priceUsd"))))
            volumes.append((timestamp, to_float(point.get("volumeUsd24Hr"))))
        return prices, volumes


def _timestamp_ms(point: dict[str, Any]) -> Optional[int]:
    """CoinCap history points carry epoch ms in "time" and ISO text in "date"."""
    if isinstance(point.get("time"), (int, float)):
        return int(point["time"])
    date = point.get("date")
    if isinstance(date, str):
        try:
            return int(datetime.fromisoformat(date.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return None
    return None
