"""
Market Data Models - Canonical records shared by every tier.

Whatever tier produced the data (a live provider, the local snapshot or the
synthetic generator), records leave the normalizer as NormalizedCoin and
leave the analytics engine as CoinOverview, so degraded responses are shaped
exactly like healthy ones.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class DataTier(Enum):
    """Fallback tiers; also the values of the cached provider preference."""
    CRYPTOCOMPARE = "cryptocompare"
    COINMARKETCAP = "coinmarketcap"
    COINGECKO = "coingecko"
    COINCAP = "coincap"
    BINANCE = "binance"
    LOCAL_SNAPSHOT = "local_snapshot"
    SYNTHETIC = "synthetic"
    NONE = "none"

    @property
    def is_live(self) -> bool:
        """True for tiers backed by an upstream API."""
        return self not in (DataTier.LOCAL_SNAPSHOT, DataTier.SYNTHETIC, DataTier.NONE)


class Recommendation(Enum):
    """Recommendation label attached to every overview record."""
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"


class SourceStatus(Enum):
    """Health status of a provider."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NormalizedCoin:
    """
    Normalized per-coin record - STRICT schema.

    All providers are mapped to this shape. No downstream code depends on
    provider-specific fields.
    """
    id: str
    symbol: str
    name: str
    current_price: float
    price_change_percentage_24h: float
    market_cap: float
    total_volume: float
    sparkline_7d: Optional[tuple[float, ...]] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    """Component signals behind a composite score."""
    vol_score: float
    momentum_score: float
    trend_score: float
    raw_trend_score: float
    market_cap_score: float
    buy_signal: float
    sell_signal: float


@dataclass(frozen=True)
class CoinOverview:
    """NormalizedCoin plus freshly derived analytics."""
    id: str
    symbol: str
    name: str
    current_price: float
    price_change_percentage_24h: float
    market_cap: float
    total_volume: float
    sparkline_7d: tuple[float, ...]
    score: float
    recommendation: Recommendation
    insight: str
    breakdown: Optional[ScoreBreakdown] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the overview wire shape."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "current_price": round(self.current_price, 8),
            "price_change_percentage_24h": round(self.price_change_percentage_24h, 2),
            "market_cap": round(self.market_cap),
            "total_volume": round(self.total_volume),
            "sparkline_in_7d": {"price": [round(p, 8) for p in self.sparkline_7d]},
            "score": self.score,
            "recommendation": self.recommendation.value,
            "insight": self.insight,
        }


@dataclass(frozen=True)
class CoinMarketData:
    """Market block of a coin detail record (USD)."""
    current_price: float = 0.0
    market_cap: float = 0.0
    total_volume: float = 0.0
    price_change_percentage_24h: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
    circulating_supply: float = 0.0
    total_supply: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the USD-keyed wire shape."""
        return {
            "current_price": {"usd": self.current_price},
            "market_cap": {"usd": self.market_cap},
            "total_volume": {"usd": self.total_volume},
            "price_change_percentage_24h": self.price_change_percentage_24h,
            "high_24h": {"usd": self.high_24h},
            "low_24h": {"usd": self.low_24h},
            "circulating_supply": self.circulating_supply,
            "total_supply": self.total_supply,
        }


@dataclass(frozen=True)
class CoinDetail:
    """Per-coin detail record with 30 days of price and volume history."""
    id: str
    symbol: str
    name: str
    description: str
    market_data: CoinMarketData
    prices: list[tuple[int, float]] = field(default_factory=list)
    volumes: list[tuple[int, float]] = field(default_factory=list)
    source: str = DataTier.NONE.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to the detail wire shape."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "description": self.description,
            "market_data": self.market_data.to_dict(),
            "community_data": {},
            "developer_data": {},
            "prices": [[ts, value] for ts, value in self.prices],
            "volumes": [[ts, value] for ts, value in self.volumes],
        }


@dataclass
class PriceContinuityEntry:
    """Last synthetic price emitted for a coin."""
    last_price: float
    last_timestamp: float


@dataclass
class SourceHealth:
    """Health status of a provider."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    uptime_percentage: float = 100.0

    def is_healthy(self) -> bool:
        """Check if provider is operational."""
        return self.status == SourceStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "uptime_percentage": self.uptime_percentage,
        }


@dataclass
class SourceMetadata:
    """Static metadata about a provider."""
    name: str
    display_name: str
    base_url: str
    requires_auth: bool = False
    supports_sparkline: bool = False
    supports_detail: bool = True
    timeout_seconds: float = 20.0
    priority: int = 0  # Lower = tried earlier


@dataclass
class SourceIncident:
    """Record of a provider or tier incident."""
    source_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    context: Optional[dict[str, Any]] = None
