"""
CryptoCompare Market Data Provider - Keyed API adapter.

Listing: /top/mktcapfull, optionally enriched with 7-day closes from
/v2/histoday fetched per coin in concurrent batches.
Detail: /pricemultifull plus 30 days of hourly candles from /v2/histohour.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from market_data.base import BaseMarketProvider, to_float
from market_data.exceptions import UpstreamError
from market_data.models import CoinDetail, CoinMarketData, SourceMetadata


logger = logging.getLogger(__name__)


class CryptoCompareProvider(BaseMarketProvider):
    """
    CryptoCompare min-api data source.

    Endpoints used:
    - /top/mktcapfull - Top coins by market cap (envelope "Data")
    - /v2/histoday - Daily candles (sparkline)
    - /pricemultifull - Full quote for one symbol
    - /v2/histohour - Hourly candles (detail history)
    - /price - Health check

    Authentication: "authorization: Apikey <key>" header.
    CryptoCompare reports most failures as HTTP 200 with
    {"Response": "Error", "Message": ...}.
    """

    DEFAULT_BASE_URL = "https://min-api.cryptocompare.com/data"
    DEFAULT_TIMEOUT = 20.0
    HEALTH_PATH = "/price"
    HEALTH_PARAMS = {"fsym": "BTC", "tsyms": "USD"}

    SPARKLINE_BATCH_SIZE = 10
    SPARKLINE_DAYS = 7
    DETAIL_HOURS = 720

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        limit: int = 50,
        history_timeout: float = 8.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(base_url=base_url, api_key=api_key, timeout=timeout, session=session)
        self._limit = limit
        self._history_timeout = history_timeout

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "cryptocompare"

    @property
    def requires_auth(self) -> bool:
        return True

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="CryptoCompare",
            base_url=self._base_url,
            requires_auth=True,
            supports_sparkline=True,
            supports_detail=True,
            timeout_seconds=self._timeout,
            priority=1,
        )

    def _get_auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"authorization": f"Apikey {self._api_key}"}

    async def _fetch_listings(self, include_sparkline: bool) -> list[dict[str, Any]]:
        """Fetch top coins by market cap."""
        payload = await self._make_request(
            "GET",
            "/top/mktcapfull",
            params={"limit": self._limit, "tsym": "USD"},
        )
        self._raise_for_api_error(payload)

        records = payload.get("Data") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise UpstreamError(
                message="Unexpected listing envelope (missing 'Data' array)",
                source_name=self.name,
            )

        if include_sparkline and records:
            await self._attach_sparklines(records)

        return records

    async def _attach_sparklines(self, records: list[dict[str, Any]]) -> None:
        """Attach 7-day closes as SPARKLINE; per-coin failures leave it absent."""
        attached = 0
        for start in range(0, len(records), self.SPARKLINE_BATCH_SIZE):
            batch = records[start:start + self.SPARKLINE_BATCH_SIZE]
            symbols = [(record.get("CoinInfo") or {}).get("Name") for record in batch]
            results = await asyncio.gather(
                *(self._fetch_daily_closes(symbol) for symbol in symbols),
                return_exceptions=True,
            )
            for record, symbol, result in zip(batch, symbols, results):
                if isinstance(result, BaseException):
                    logger.debug(f"[{self.name}] No sparkline for {symbol}: {result}")
                    continue
                if result:
                    record["SPARKLINE"] = result
                    attached += 1

        logger.debug(f"[{self.name}] Attached sparklines to {attached}/{len(records)} coins")

    async def _fetch_daily_closes(self, symbol: Optional[str]) -> list[float]:
        if not symbol:
            return []
        payload = await self._make_request(
            "GET",
            "/v2/histoday",
            params={"fsym": symbol, "tsym": "USD", "limit": self.SPARKLINE_DAYS},
            timeout=self._history_timeout,
        )
        self._raise_for_api_error(payload)
        candles = (payload.get("Data") or {}).get("Data") or []
        return [to_float(candle.get("close")) for candle in candles if candle.get("close") is not None]

    async def _fetch_detail(self, coin_id: str) -> CoinDetail:
        """Fetch quote and 30 days of hourly history for one symbol."""
        symbol = coin_id.upper()

        price_payload = await self._make_request(
            "GET",
            "/pricemultifull",
            params={"fsyms": symbol, "tsyms": "USD"},
        )
        history_payload = await self._make_request(
            "GET",
            "/v2/histohour",
            params={
                "fsym": symbol,
                "tsym": "USD",
                "limit": self.DETAIL_HOURS,
                "toTs": int(time.time()),
            },
        )
        self._raise_for_api_error(price_payload)
        self._raise_for_api_error(history_payload)

        quote = ((price_payload.get("RAW") or {}).get(symbol) or {}).get("USD")
        if not quote:
            raise UpstreamError(
                message=f"No quote for symbol {symbol}",
                source_name=self.name,
            )

        price = to_float(quote.get("PRICE"))
        candles = (history_payload.get("Data") or {}).get("Data") or []

        prices: list[tuple[int, float]] = []
        volumes: list[tuple[int, float]] = []
        for candle in candles:
            timestamp = int(candle["time"]) * 1000
            close = to_float(candle.get("close")) or to_float(candle.get("high")) or to_float(candle.get("low")) or price
            prices.append((timestamp, close))
            volumes.append((timestamp, to_float(candle.get("volumefrom")) * (to_float(candle.get("close")) or price)))

        supply = to_float(quote.get("SUPPLY"))
        return CoinDetail(
            id=coin_id.lower(),
            symbol=symbol,
            name=quote.get("FROMSYMBOL") or symbol,
            description="",
            market_data=CoinMarketData(
                current_price=price,
                market_cap=to_float(quote.get("MKTCAP")),
                total_volume=to_float(quote.get("TOTALVOLUME24HTO")),
                price_change_percentage_24h=to_float(quote.get("CHANGEPCT24HOUR")),
                high_24h=to_float(quote.get("HIGH24HOUR")) or price,
                low_24h=to_float(quote.get("LOW24HOUR")) or price,
                circulating_supply=supply,
                total_supply=supply,
            ),
            prices=prices,
            volumes=volumes,
            source=self.name,
        )

    def _raise_for_api_error(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("Response") == "Error":
            raise UpstreamError(
                message=f"API error: {payload.get('Message', 'unknown')}",
                source_name=self.name,
                response_body=str(payload)[:1000],
            )
