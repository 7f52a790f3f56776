"""
Aggregation Orchestrator - Tiered fallback across providers, snapshot and synthesis.

============================================================
PURPOSE
============================================================
Owns the fallback chain, the cached provider preference and the
force-refresh override.

Overview tiers, in order:
    cryptocompare -> coinmarketcap -> coingecko (full) -> coingecko (reduced)
    -> coincap -> binance -> local snapshot -> synthetic

Detail chain:
    cryptocompare -> coinmarketcap -> coingecko -> coincap
    -> rebuild from the overview dataset -> stub record

Neither get_market_overview() nor get_coin_detail() raises. Degraded
responses are shaped exactly like healthy ones.
============================================================
"""

import logging
import random
from typing import Any, Callable, Optional

from market_data.analytics import AnalyticsEngine
from market_data.config import MarketDataConfig
from market_data.exceptions import MarketDataError, NormalizationError, UpstreamError
from market_data.history import detail_from_overview, now_ms, stub_detail
from market_data.models import (
    CoinDetail,
    CoinOverview,
    DataTier,
    NormalizedCoin,
    SourceHealth,
)
from market_data.normalizer import ProviderNormalizer
from market_data.providers import (
    BinanceProvider,
    CoinCapProvider,
    CoinGeckoProvider,
    CoinMarketCapProvider,
    CryptoCompareProvider,
)
from market_data.registry import FallbackAttempt, ProviderRegistry
from market_data.snapshot import LocalSnapshotStore
from market_data.synthetic import SyntheticDataGenerator


logger = logging.getLogger(__name__)


# (attempt name, provider name, include sparkline, tier recorded on success)
LIVE_TIERS: tuple[tuple[str, str, bool, DataTier], ...] = (
    ("cryptocompare", "cryptocompare", True, DataTier.CRYPTOCOMPARE),
    ("coinmarketcap", "coinmarketcap", False, DataTier.COINMARKETCAP),
    ("coingecko_full", "coingecko", True, DataTier.COINGECKO),
    ("coingecko_reduced", "coingecko", False, DataTier.COINGECKO),
    ("coincap", "coincap", False, DataTier.COINCAP),
    ("binance", "binance", False, DataTier.BINANCE),
)

# Request shape used when a tier is retried from the cached preference
CACHED_REQUEST: dict[DataTier, tuple[str, bool]] = {
    DataTier.CRYPTOCOMPARE: ("cryptocompare", True),
    DataTier.COINMARKETCAP: ("coinmarketcap", False),
    DataTier.COINGECKO: ("coingecko", False),
    DataTier.COINCAP: ("coincap", False),
    DataTier.BINANCE: ("binance", False),
}

DETAIL_CHAIN: tuple[str, ...] = ("cryptocompare", "coinmarketcap", "coingecko", "coincap")
SYMBOL_RETRY_CHAIN: tuple[str, ...] = ("cryptocompare", "coinmarketcap")


class MarketDataOrchestrator:
    """
    Market overview and coin detail with guaranteed availability.

    Usage:
        async with create_orchestrator() as orchestrator:
            coins = await orchestrator.get_market_overview()
            detail = await orchestrator.get_coin_detail("bitcoin")
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        snapshot: LocalSnapshotStore,
        synthetic: Optional[SyntheticDataGenerator] = None,
        normalizer: Optional[ProviderNormalizer] = None,
        analytics: Optional[AnalyticsEngine] = None,
        rng: Optional[random.Random] = None,
        clock_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self._registry = registry
        self._snapshot = snapshot
        self._synthetic = synthetic or SyntheticDataGenerator()
        self._normalizer = normalizer or ProviderNormalizer()
        self._analytics = analytics or AnalyticsEngine()
        self._rng = rng or random.Random()
        self._clock_ms = clock_ms or now_ms

        self._preference = DataTier.NONE
        self._last_tier = DataTier.NONE
        self._force_refresh = False

    # ------------------------------------------------------------
    # State
    # ------------------------------------------------------------

    @property
    def preference(self) -> DataTier:
        """Tier that served the last successful overview (NONE when unknown)."""
        return self._preference

    @property
    def last_tier(self) -> DataTier:
        """Tier that produced the most recent overview response."""
        return self._last_tier

    @property
    def force_refresh_pending(self) -> bool:
        return self._force_refresh

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def snapshot(self) -> LocalSnapshotStore:
        return self._snapshot

    def set_force_refresh(self, flag: bool) -> None:
        """Make the next overview ignore the cached preference."""
        self._force_refresh = bool(flag)
        if flag:
            logger.info("Force refresh scheduled for next overview request")

    # ------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------

    async def get_market_overview(self) -> list[CoinOverview]:
        """
        Resolve the best available dataset and derive analytics for it.

        Returns:
            Non-empty list of CoinOverview

        Note:
            Never raises; unexpected errors degrade to synthetic data
        """
        try:
            tier, coins = await self._resolve_overview()
            overviews = self._analytics.analyze_all(coins)
        except Exception as e:
            logger.exception(f"Overview resolution failed, serving synthetic data: {e}")
            tier, coins = DataTier.SYNTHETIC, self._synthetic.generate()
            self._preference = DataTier.SYNTHETIC
            overviews = self._analytics.analyze_all(coins)

        self._last_tier = tier
        logger.info(f"Market overview served from {tier.value} ({len(overviews)} coins)")
        return overviews

    async def _resolve_overview(self) -> tuple[DataTier, list[NormalizedCoin]]:
        if self._force_refresh:
            logger.info("Force refresh: clearing provider preference")
            self._preference = DataTier.NONE
            self._force_refresh = False

        preference = self._preference

        if preference.is_live:
            coins = await self._fetch_cached_live(preference)
            if coins:
                return preference, coins
            logger.warning(f"Cached provider {preference.value} failed, clearing preference")
            self._preference = DataTier.NONE
            return self._resolve_local()

        if preference == DataTier.LOCAL_SNAPSHOT:
            coins = self._snapshot.load()
            if coins:
                return DataTier.LOCAL_SNAPSHOT, coins
            logger.warning("Cached snapshot tier failed, clearing preference")
            self._preference = DataTier.NONE

        elif preference == DataTier.SYNTHETIC:
            return self._resolve_local()

        return await self._resolve_cold()

    async def _resolve_cold(self) -> tuple[DataTier, list[NormalizedCoin]]:
        """Walk every live tier; the first non-empty dataset wins."""
        tiers_by_attempt = {}
        attempts = []
        for attempt_name, provider_name, include_sparkline, tier in LIVE_TIERS:
            if self._registry.get(provider_name) is None:
                continue
            tiers_by_attempt[attempt_name] = tier
            attempts.append(FallbackAttempt(
                name=attempt_name,
                fetch=self._live_fetcher(provider_name, include_sparkline),
            ))

        result = await self._registry.first_success(attempts)
        if result is not None:
            attempt_name, coins = result
            tier = tiers_by_attempt[attempt_name]
            self._preference = tier
            return tier, coins

        logger.warning("All live providers failed, falling back to local data")
        return self._resolve_local()

    def _resolve_local(self) -> tuple[DataTier, list[NormalizedCoin]]:
        """Snapshot, then synthetic; records whichever produced data."""
        coins = self._snapshot.load()
        if coins:
            self._preference = DataTier.LOCAL_SNAPSHOT
            return DataTier.LOCAL_SNAPSHOT, coins

        self._preference = DataTier.SYNTHETIC
        return DataTier.SYNTHETIC, self._synthetic.generate()

    async def _fetch_cached_live(self, tier: DataTier) -> Optional[list[NormalizedCoin]]:
        provider_name, include_sparkline = CACHED_REQUEST[tier]
        try:
            return await self._fetch_live(provider_name, include_sparkline)
        except MarketDataError as e:
            logger.warning(f"[{provider_name}] Cached provider failed: {e}")
            return None
        except Exception as e:
            logger.exception(f"[{provider_name}] Unexpected error from cached provider: {e}")
            return None

    def _live_fetcher(self, provider_name: str, include_sparkline: bool):
        async def fetch() -> list[NormalizedCoin]:
            return await self._fetch_live(provider_name, include_sparkline)
        return fetch

    async def _fetch_live(self, provider_name: str, include_sparkline: bool) -> list[NormalizedCoin]:
        provider = self._registry.get(provider_name)
        if provider is None:
            raise UpstreamError(
                message="Provider not registered",
                source_name=provider_name,
            )

        raw = await provider.fetch_listings(include_sparkline=include_sparkline)
        coins = self._normalizer.normalize(provider_name, raw)
        if not coins:
            raise NormalizationError(
                message="No valid records after normalization",
                source_name=provider_name,
            )
        logger.info(f"[{provider_name}] Normalized {len(coins)} records")
        return coins

    # ------------------------------------------------------------
    # Detail
    # ------------------------------------------------------------

    async def get_coin_detail(self, coin_id: str) -> CoinDetail:
        """
        Resolve detail for one coin through the detail chain.

        Note:
            Never raises; unresolvable ids yield the stub record
        """
        coin_id = (coin_id or "").strip()
        if not coin_id:
            return stub_detail(coin_id)

        try:
            return await self._resolve_detail(coin_id)
        except Exception as e:
            logger.exception(f"Detail resolution failed for {coin_id}: {e}")
            return stub_detail(coin_id)

    async def _resolve_detail(self, coin_id: str) -> CoinDetail:
        for provider_name in DETAIL_CHAIN:
            detail = await self._fetch_detail(provider_name, coin_id)
            if detail is not None:
                return detail

        overview = await self.get_market_overview()
        match = find_coin(overview, coin_id)
        if match is None:
            logger.warning(f"No data anywhere for {coin_id}, returning stub")
            return stub_detail(coin_id)

        if match.symbol.lower() != coin_id.lower():
            for provider_name in SYMBOL_RETRY_CHAIN:
                detail = await self._fetch_detail(provider_name, match.symbol)
                if detail is not None:
                    return detail

        logger.info(f"Rebuilding {coin_id} detail from overview data ({self._last_tier.value})")
        return detail_from_overview(match, self._rng, self._clock_ms())

    async def _fetch_detail(self, provider_name: str, coin_id: str) -> Optional[CoinDetail]:
        provider = self._registry.get(provider_name)
        if provider is None:
            return None
        try:
            detail = await provider.fetch_detail(coin_id)
        except MarketDataError as e:
            logger.info(f"[{provider_name}] Detail for {coin_id} failed: {e}")
            return None

        if detail.market_data.current_price <= 0:
            logger.info(f"[{provider_name}] Detail for {coin_id} has no price, skipping")
            return None
        return detail

    # ------------------------------------------------------------
    # Diagnostics and maintenance
    # ------------------------------------------------------------

    async def diagnose(self) -> dict[str, SourceHealth]:
        """Ping every provider concurrently."""
        return await self._registry.health_check_all()

    async def refresh_snapshot(self) -> int:
        """
        Replace the snapshot with a fresh CoinGecko listing (with sparklines).

        Returns:
            Number of records written

        Raises:
            MarketDataError: Fetch failed or nothing usable came back
        """
        provider = self._registry.get("coingecko")
        if provider is None:
            raise UpstreamError(message="Provider not registered", source_name="coingecko")

        raw = await provider.fetch_listings(include_sparkline=True)
        if not self._normalizer.normalize("coingecko", raw):
            raise NormalizationError(
                message="Refusing to save a snapshot with no valid records",
                source_name="coingecko",
            )
        self._snapshot.save(raw)
        return len(raw)

    async def close(self) -> None:
        await self._registry.close()

    async def __aenter__(self) -> "MarketDataOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def find_coin(coins: list[CoinOverview], coin_id: str) -> Optional[CoinOverview]:
    """Match by id, then by symbol (case-insensitive)."""
    needle = coin_id.lower()
    for coin in coins:
        if coin.id.lower() == needle:
            return coin
    for coin in coins:
        if coin.symbol.lower() == needle:
            return coin
    return None


def create_orchestrator(config: Optional[MarketDataConfig] = None, **overrides: Any) -> MarketDataOrchestrator:
    """
    Build an orchestrator with all five providers registered.

    Args:
        config: Configuration (defaults to MarketDataConfig.from_env())
        overrides: Passed through to MarketDataOrchestrator (e.g. synthetic)
    """
    if config is None:
        config = MarketDataConfig.from_env()
    config.validate()

    endpoints = config.endpoints
    timeouts = config.timeouts
    limit = config.listing_limit

    registry = ProviderRegistry()
    registry.register(CryptoCompareProvider(
        api_key=config.cryptocompare_api_key,
        base_url=endpoints.cryptocompare,
        timeout=timeouts.cryptocompare,
        limit=limit,
        history_timeout=timeouts.history,
    ))
    registry.register(CoinMarketCapProvider(
        api_key=config.coinmarketcap_api_key,
        base_url=endpoints.coinmarketcap,
        timeout=timeouts.coinmarketcap,
        limit=limit,
    ))
    registry.register(CoinGeckoProvider(
        base_url=endpoints.coingecko,
        timeout=timeouts.coingecko,
        limit=limit,
    ))
    registry.register(CoinCapProvider(
        base_url=endpoints.coincap,
        timeout=timeouts.coincap,
        limit=limit,
    ))
    registry.register(BinanceProvider(
        base_url=endpoints.binance,
        timeout=timeouts.binance,
    ))

    normalizer = overrides.pop("normalizer", None) or ProviderNormalizer(binance_limit=limit)
    snapshot = overrides.pop("snapshot", None) or LocalSnapshotStore(config.snapshot_path, normalizer)

    return MarketDataOrchestrator(
        registry=registry,
        snapshot=snapshot,
        normalizer=normalizer,
        **overrides,
    )
