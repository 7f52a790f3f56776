"""
Market Data Package - Crypto market data aggregation and normalization.

Queries several unreliable upstream price feeds, falls back across them in
priority order, normalizes their payloads into one schema and derives a
composite score, recommendation and insight for every coin. A response is
always produced: when every upstream fails, a local snapshot and then a
synthetic random walk take over.

Features:
- Five isolated, replaceable providers (2 keyed, 3 public)
- Cached last-known-good provider with force-refresh override
- Normalized output regardless of source tier
- Health monitoring with incident logging
- Never-raising overview and detail entry points

Quick Start:
    from market_data import create_orchestrator

    async def main():
        async with create_orchestrator() as orchestrator:
            coins = await orchestrator.get_market_overview()
            for coin in coins[:5]:
                print(coin.symbol, coin.current_price, coin.recommendation.value)

            detail = await orchestrator.get_coin_detail("bitcoin")
            print(detail.market_data.current_price)

Adding New Providers:
    1. Create class extending BaseMarketProvider
    2. Implement: name, metadata(), _fetch_listings() and optionally _fetch_detail()
    3. Add a parser to ProviderNormalizer
    4. Register it and add a tier to the orchestrator chain
"""

from market_data.analytics import AnalyticsEngine
from market_data.base import BaseMarketProvider
from market_data.config import EndpointConfig, MarketDataConfig, TimeoutConfig
from market_data.exceptions import (
    ConfigurationError,
    MarketDataError,
    NormalizationError,
    RateLimitError,
    SnapshotUnavailable,
    UpstreamError,
)
from market_data.models import (
    CoinDetail,
    CoinMarketData,
    CoinOverview,
    DataTier,
    NormalizedCoin,
    Recommendation,
    ScoreBreakdown,
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
)
from market_data.normalizer import ProviderNormalizer
from market_data.orchestrator import MarketDataOrchestrator, create_orchestrator
from market_data.providers import (
    BinanceProvider,
    CoinCapProvider,
    CoinGeckoProvider,
    CoinMarketCapProvider,
    CryptoCompareProvider,
)
from market_data.registry import FallbackAttempt, ProviderRegistry
from market_data.snapshot import LocalSnapshotStore
from market_data.synthetic import DEFAULT_SEED_COINS, SyntheticDataGenerator


__version__ = "1.0.0"

__all__ = [
    # Entry points
    "MarketDataOrchestrator",
    "create_orchestrator",
    # Components
    "AnalyticsEngine",
    "BaseMarketProvider",
    "FallbackAttempt",
    "LocalSnapshotStore",
    "ProviderNormalizer",
    "ProviderRegistry",
    "SyntheticDataGenerator",
    "DEFAULT_SEED_COINS",
    # Providers
    "BinanceProvider",
    "CoinCapProvider",
    "CoinGeckoProvider",
    "CoinMarketCapProvider",
    "CryptoCompareProvider",
    # Config
    "EndpointConfig",
    "MarketDataConfig",
    "TimeoutConfig",
    # Exceptions
    "ConfigurationError",
    "MarketDataError",
    "NormalizationError",
    "RateLimitError",
    "SnapshotUnavailable",
    "UpstreamError",
    # Models
    "CoinDetail",
    "CoinMarketData",
    "CoinOverview",
    "DataTier",
    "NormalizedCoin",
    "Recommendation",
    "ScoreBreakdown",
    "SourceHealth",
    "SourceIncident",
    "SourceMetadata",
    "SourceStatus",
]
