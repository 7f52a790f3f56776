"""
Provider Normalizer - Maps heterogeneous provider payloads to NormalizedCoin.

============================================================
FIELD MAPPING
============================================================
provider        id / symbol / name                       price / change / mcap / volume
cryptocompare   CoinInfo.Name(lower) / Name / FullName   RAW.USD.PRICE / CHANGEPCT24HOUR / MKTCAP / VOLUME24HOURTO
coinmarketcap   slug / symbol / name                     quote.USD.price / percent_change_24h / market_cap / volume_24h
coingecko       id / symbol / name                       current_price / price_change_percentage_24h / market_cap / total_volume
coincap         id / symbol / name                       priceUsd / changePercent24Hr / marketCapUsd / volumeUsd24Hr
binance         symbol minus USDT (lower) / same / upper lastPrice / priceChangePercent / quoteVolume x 10 / quoteVolume

Records that fail the schema invariant are dropped silently.
Pure: no I/O, no clock.
============================================================
"""

import logging
import math
from typing import Any, Callable, Optional

from market_data.exceptions import NormalizationError
from market_data.models import NormalizedCoin


logger = logging.getLogger(__name__)


LOCAL_SNAPSHOT = "local_snapshot"

Record = dict[str, Any]


def _number(value: Any) -> Optional[float]:
    """Parse a finite number; provider numbers may be strings."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _sparkline(values: Any) -> Optional[tuple[float, ...]]:
    if not isinstance(values, list):
        return None
    points = [p for p in (_number(v) for v in values) if p is not None]
    return tuple(points) if len(points) >= 2 else None


class ProviderNormalizer:
    """
    Stateless payload normalizer.

    Usage:
        normalizer = ProviderNormalizer()
        coins = normalizer.normalize("coingecko", payload)
    """

    BINANCE_QUOTE_ASSET = "USDT"
    BINANCE_MARKET_CAP_MULTIPLIER = 10.0

    def __init__(self, binance_limit: int = 50) -> None:
        self._binance_limit = binance_limit
        self._parsers: dict[str, Callable[[Record], Optional[NormalizedCoin]]] = {
            "cryptocompare": self._parse_cryptocompare,
            "coinmarketcap": self._parse_coinmarketcap,
            "coingecko": self._parse_coingecko,
            "coincap": self._parse_coincap,
            "binance": self._parse_binance,
        }

    def normalize(self, provider_name: str, payload: Any) -> list[NormalizedCoin]:
        """
        Normalize a raw payload from one provider.

        Args:
            provider_name: A provider name or "local_snapshot" (auto-detect
                each record's shape)
            payload: Bare record array or the provider's envelope

        Returns:
            Valid, de-duplicated records in payload order (possibly empty)

        Raises:
            NormalizationError: Unknown provider or unrecognizable payload
        """
        if provider_name != LOCAL_SNAPSHOT and provider_name not in self._parsers:
            raise NormalizationError(
                message=f"Unknown provider '{provider_name}'",
                source_name=provider_name,
            )

        records = self._unwrap(provider_name, payload)

        if provider_name == "binance":
            records = self._select_binance_pairs(records)

        coins: list[NormalizedCoin] = []
        seen: set[str] = set()
        dropped = 0

        for record in records:
            coin = self._parse_record(provider_name, record)
            if coin is None:
                dropped += 1
                continue
            if coin.id in seen:
                continue
            seen.add(coin.id)
            coins.append(coin)

        if dropped:
            logger.debug(f"[{provider_name}] Dropped {dropped} invalid records")

        return coins

    def detect_provider(self, record: Record) -> Optional[str]:
        """Guess which provider produced a raw record from its keys."""
        if "CoinInfo" in record:
            return "cryptocompare"
        if "quote" in record:
            return "coinmarketcap"
        if "current_price" in record:
            return "coingecko"
        if "priceUsd" in record:
            return "coincap"
        if "lastPrice" in record:
            return "binance"
        return None

    def _unwrap(self, provider_name: str, payload: Any) -> list[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in ("Data", "data"):
                if isinstance(payload.get(key), list):
                    return payload[key]
        raise NormalizationError(
            message="Payload is neither a record array nor a known envelope",
            source_name=provider_name,
            raw_data=payload,
        )

    def _select_binance_pairs(self, records: list[Any]) -> list[Any]:
        """Keep USDT pairs, ordered by quote volume, top N."""
        pairs = [
            r for r in records
            if isinstance(r, dict) and _text(r.get("symbol")).upper().endswith(self.BINANCE_QUOTE_ASSET)
        ]
        pairs.sort(key=lambda r: _number(r.get("quoteVolume")) or 0.0, reverse=True)
        return pairs[:self._binance_limit]

    def _parse_record(self, provider_name: str, record: Any) -> Optional[NormalizedCoin]:
        if not isinstance(record, dict):
            return None

        if provider_name == LOCAL_SNAPSHOT:
            detected = self.detect_provider(record)
            if detected is None:
                return None
            provider_name = detected

        try:
            coin = self._parsers[provider_name](record)
        except (AttributeError, KeyError, TypeError, ValueError):
            return None

        if coin is None or not self._is_valid(coin):
            return None
        return coin

    def _is_valid(self, coin: NormalizedCoin) -> bool:
        return bool(coin.id and coin.symbol and coin.name) and coin.current_price > 0 \
            and coin.market_cap >= 0 and coin.total_volume >= 0

    def _build(
        self,
        coin_id: Any,
        symbol: Any,
        name: Any,
        price: Any,
        change: Any,
        market_cap: Any,
        volume: Any,
        sparkline: Any = None,
    ) -> Optional[NormalizedCoin]:
        current_price = _number(price)
        cap = _number(market_cap)
        total_volume = _number(volume)
        if current_price is None or cap is None or total_volume is None:
            return None

        change_value = _number(change)
        if change is not None and change_value is None:
            return None

        return NormalizedCoin(
            id=_text(coin_id).lower(),
            symbol=_text(symbol).lower(),
            name=_text(name),
            current_price=current_price,
            price_change_percentage_24h=change_value if change_value is not None else 0.0,
            market_cap=cap,
            total_volume=total_volume,
            sparkline_7d=_sparkline(sparkline),
        )

    # ------------------------------------------------------------
    # Per-provider parsers
    # ------------------------------------------------------------

    def _parse_cryptocompare(self, record: Record) -> Optional[NormalizedCoin]:
        info = record.get("CoinInfo") or {}
        raw = (record.get("RAW") or {}).get("USD") or {}
        ticker = _text(info.get("Name"))
        volume = raw.get("VOLUME24HOURTO", raw.get("VOLUME24HOUR"))
        return self._build(
            coin_id=ticker,
            symbol=ticker,
            name=info.get("FullName") or ticker,
            price=raw.get("PRICE"),
            change=raw.get("CHANGEPCT24HOUR"),
            market_cap=raw.get("MKTCAP"),
            volume=volume,
            sparkline=record.get("SPARKLINE"),
        )

    def _parse_coinmarketcap(self, record: Record) -> Optional[NormalizedCoin]:
        quote = (record.get("quote") or {}).get("USD") or {}
        return self._build(
            coin_id=record.get("slug") or record.get("symbol"),
            symbol=record.get("symbol"),
            name=record.get("name"),
            price=quote.get("price"),
            change=quote.get("percent_change_24h"),
            market_cap=quote.get("market_cap"),
            volume=quote.get("volume_24h"),
        )

    def _parse_coingecko(self, record: Record) -> Optional[NormalizedCoin]:
        return self._build(
            coin_id=record.get("id"),
            symbol=record.get("symbol"),
            name=record.get("name"),
            price=record.get("current_price"),
            change=record.get("price_change_percentage_24h"),
            market_cap=record.get("market_cap"),
            volume=record.get("total_volume"),
            sparkline=(record.get("sparkline_in_7d") or {}).get("price"),
        )

    def _parse_coincap(self, record: Record) -> Optional[NormalizedCoin]:
        return self._build(
            coin_id=record.get("id"),
            symbol=record.get("symbol"),
            name=record.get("name"),
            price=record.get("priceUsd"),
            change=record.get("changePercent24Hr"),
            market_cap=record.get("marketCapUsd"),
            volume=record.get("volumeUsd24Hr"),
        )

    def _parse_binance(self, record: Record) -> Optional[NormalizedCoin]:
        pair = _text(record.get("symbol")).upper()
        if not pair.endswith(self.BINANCE_QUOTE_ASSET):
            return None
        base = pair[:-len(self.BINANCE_QUOTE_ASSET)]
        quote_volume = _number(record.get("quoteVolume"))
        return self._build(
            coin_id=base,
            symbol=base,
            name=base.upper(),
            price=record.get("lastPrice"),
            change=record.get("priceChangePercent"),
            market_cap=quote_volume * self.BINANCE_MARKET_CAP_MULTIPLIER if quote_volume is not None else None,
            volume=quote_volume,
        )
