"""
Synthetic Data Generator - Availability guarantee of last resort.

Produces plausible data for a fixed list of 50 coins when every real tier
has failed. Stateful: each coin's price random-walks from the last price
this instance emitted (1-3% per call) so a dashboard polling every few
minutes sees continuous prices instead of jumps.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from market_data.models import NormalizedCoin, PriceContinuityEntry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedCoin:
    id: str
    symbol: str
    name: str
    base_price: float


DEFAULT_SEED_COINS: tuple[SeedCoin, ...] = (
    SeedCoin("bitcoin", "btc", "Bitcoin", 45000),
    SeedCoin("ethereum", "eth", "Ethereum", 2800),
    SeedCoin("binancecoin", "bnb", "BNB", 320),
    SeedCoin("solana", "sol", "Solana", 95),
    SeedCoin("cardano", "ada", "Cardano", 0.55),
    SeedCoin("ripple", "xrp", "XRP", 0.62),
    SeedCoin("polkadot", "dot", "Polkadot", 7.2),
    SeedCoin("dogecoin", "doge", "Dogecoin", 0.08),
    SeedCoin("avalanche", "avax", "Avalanche", 38),
    SeedCoin("chainlink", "link", "Chainlink", 14.5),
    SeedCoin("polygon", "matic", "Polygon", 0.85),
    SeedCoin("litecoin", "ltc", "Litecoin", 72),
    SeedCoin("uniswap", "uni", "Uniswap", 6.5),
    SeedCoin("ethereum-classic", "etc", "Ethereum Classic", 25),
    SeedCoin("stellar", "xlm", "Stellar", 0.12),
    SeedCoin("cosmos", "atom", "Cosmos", 9.8),
    SeedCoin("algorand", "algo", "Algorand", 0.18),
    SeedCoin("vechain", "vet", "VeChain", 0.035),
    SeedCoin("filecoin", "fil", "Filecoin", 5.2),
    SeedCoin("tron", "trx", "TRON", 0.11),
    SeedCoin("monero", "xmr", "Monero", 165),
    SeedCoin("eos", "eos", "EOS", 0.75),
    SeedCoin("aave", "aave", "Aave", 88),
    SeedCoin("theta", "theta", "Theta Network", 1.05),
    SeedCoin("crypto-com-chain", "cro", "Crypto.com Coin", 0.095),
    SeedCoin("hedera-hashgraph", "hbar", "Hedera", 0.075),
    SeedCoin("tezos", "xtz", "Tezos", 0.95),
    SeedCoin("elrond-erd-2", "egld", "MultiversX", 42),
    SeedCoin("the-graph", "grt", "The Graph", 0.15),
    SeedCoin("helium", "hnt", "Helium", 4.8),
    SeedCoin("fantom", "ftm", "Fantom", 0.35),
    SeedCoin("near", "near", "NEAR Protocol", 3.2),
    SeedCoin("decentraland", "mana", "Decentraland", 0.45),
    SeedCoin("gala", "gala", "Gala", 0.025),
    SeedCoin("axie-infinity", "axs", "Axie Infinity", 7.8),
    SeedCoin("the-sandbox", "sand", "The Sandbox", 0.42),
    SeedCoin("chiliz", "chz", "Chiliz", 0.085),
    SeedCoin("enjin-coin", "enj", "Enjin Coin", 0.32),
    SeedCoin("flow", "flow", "Flow", 0.75),
    SeedCoin("wax", "waxp", "WAX", 0.055),
    SeedCoin("immutable-x", "imx", "Immutable X", 1.25),
    SeedCoin("loopring", "lrc", "Loopring", 0.22),
    SeedCoin("zilliqa", "zil", "Zilliqa", 0.021),
    SeedCoin("waves", "waves", "Waves", 2.5),
    SeedCoin("dash", "dash", "Dash", 32),
    SeedCoin("maker", "mkr", "Maker", 2100),
    SeedCoin("compound-governance-token", "comp", "Compound", 52),
    SeedCoin("yearn-finance", "yfi", "yearn.finance", 6800),
    SeedCoin("sushi", "sushi", "SushiSwap", 1.15),
    SeedCoin("synthetix-network-token", "snx", "Synthetix", 2.8),
)

MIN_PRICE = 0.0001
SPARKLINE_POINTS = 7


def circulating_supply(base_price: float) -> float:
    """Supply tier by base price."""
    if base_price > 1000:
        return 20_000_000
    if base_price > 100:
        return 50_000_000
    if base_price > 1:
        return 100_000_000
    return 500_000_000


class SyntheticDataGenerator:
    """
    Random-walk market data for the seed coins.

    Args:
        seed_coins: Coins to generate (defaults to DEFAULT_SEED_COINS)
        rng: Random source; inject a seeded random.Random for tests
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        seed_coins: tuple[SeedCoin, ...] = DEFAULT_SEED_COINS,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._seed_coins = seed_coins
        self._rng = rng or random.Random()
        self._clock = clock or time.time
        self._cache: dict[str, PriceContinuityEntry] = {}

    @property
    def seed_coins(self) -> tuple[SeedCoin, ...]:
        return self._seed_coins

    def continuity_entry(self, coin_id: str) -> Optional[PriceContinuityEntry]:
        return self._cache.get(coin_id)

    def last_price(self, coin_id: str) -> Optional[float]:
        entry = self._cache.get(coin_id)
        return entry.last_price if entry else None

    def generate(self) -> list[NormalizedCoin]:
        """Produce one record per seed coin and advance the random walk."""
        now = self._clock()
        coins = [self._generate_coin(seed, now) for seed in self._seed_coins]
        logger.info(f"[synthetic] Generated {len(coins)} records")
        return coins

    def _generate_coin(self, seed: SeedCoin, now: float) -> NormalizedCoin:
        rng = self._rng
        entry = self._cache.get(seed.id)
        last = entry.last_price if entry else seed.base_price

        magnitude = 0.01 + rng.random() * 0.02
        direction = 1 if rng.random() > 0.5 else -1
        current = max(MIN_PRICE, last * (1 + magnitude * direction))

        change_24h = (current - seed.base_price) / seed.base_price * 100
        market_cap = current * circulating_supply(seed.base_price)
        total_volume = market_cap * (0.05 + rng.random() * 0.1)

        sparkline = []
        for i in range(SPARKLINE_POINTS):
            days_ago = SPARKLINE_POINTS - 1 - i
            spread = (rng.random() - 0.5) * 0.1 * (1 + days_ago * 0.1)
            sparkline.append(current * (1 + spread))

        self._cache[seed.id] = PriceContinuityEntry(last_price=current, last_timestamp=now)

        return NormalizedCoin(
            id=seed.id,
            symbol=seed.symbol,
            name=seed.name,
            current_price=current,
            price_change_percentage_24h=change_24h,
            market_cap=market_cap,
            total_volume=total_volume,
            sparkline_7d=tuple(sparkline),
        )
