"""
Synthetic Data Generator Tests.

============================================================
PURPOSE
============================================================
Verify the last-resort tier: seed list, random walk continuity
and derived fields.

============================================================
"""

import random

import pytest

from market_data.synthetic import (
    DEFAULT_SEED_COINS,
    SeedCoin,
    SyntheticDataGenerator,
    circulating_supply,
)


@pytest.fixture
def generator():
    return SyntheticDataGenerator(rng=random.Random(42), clock=lambda: 1700000000.0)


# ============================================================
# SEED LIST
# ============================================================

class TestSeedList:
    """Tests for the fixed seed coins."""

    def test_fifty_unique_coins(self):
        ids = [seed.id for seed in DEFAULT_SEED_COINS]

        assert len(ids) == 50
        assert len(set(ids)) == 50

    def test_known_base_prices(self):
        by_id = {seed.id: seed for seed in DEFAULT_SEED_COINS}

        assert by_id["bitcoin"].base_price == 45000
        assert by_id["ethereum"].base_price == 2800
        assert by_id["yearn-finance"].base_price == 6800
        assert by_id["zilliqa"].base_price == 0.021

    def test_supply_tiers(self):
        assert circulating_supply(45000) == 20_000_000
        assert circulating_supply(165) == 50_000_000
        assert circulating_supply(7.2) == 100_000_000
        assert circulating_supply(0.55) == 500_000_000


# ============================================================
# GENERATION
# ============================================================

class TestGenerate:
    """Tests for a single generation pass."""

    def test_one_record_per_seed(self, generator):
        coins = generator.generate()

        assert [c.id for c in coins] == [seed.id for seed in DEFAULT_SEED_COINS]

    def test_first_call_moves_one_to_three_percent_from_base(self, generator):
        coins = generator.generate()

        for seed, coin in zip(DEFAULT_SEED_COINS, coins):
            move = abs(coin.current_price / seed.base_price - 1)
            assert 0.01 - 1e-9 <= move < 0.03 + 1e-9

    def test_change_is_relative_to_base(self, generator):
        coins = generator.generate()

        for seed, coin in zip(DEFAULT_SEED_COINS, coins):
            expected = (coin.current_price - seed.base_price) / seed.base_price * 100
            assert coin.price_change_percentage_24h == pytest.approx(expected)

    def test_market_cap_and_volume(self, generator):
        coins = generator.generate()

        for seed, coin in zip(DEFAULT_SEED_COINS, coins):
            assert coin.market_cap == pytest.approx(coin.current_price * circulating_supply(seed.base_price))
            ratio = coin.total_volume / coin.market_cap
            assert 0.05 - 1e-9 <= ratio < 0.15 + 1e-9

    def test_sparkline(self, generator):
        for coin in generator.generate():
            assert coin.sparkline_7d is not None
            assert len(coin.sparkline_7d) == 7
            assert all(p > 0 for p in coin.sparkline_7d)

    def test_price_floor(self):
        generator = SyntheticDataGenerator(
            seed_coins=(SeedCoin("dust", "dst", "Dust", 0.00001),),
            rng=random.Random(3),
        )

        coin = generator.generate()[0]

        assert coin.current_price == 0.0001


# ============================================================
# CONTINUITY
# ============================================================

class TestContinuity:
    """Prices random-walk from the last emitted value."""

    def test_consecutive_calls_stay_within_three_percent(self, generator):
        first = {c.id: c.current_price for c in generator.generate()}
        second = {c.id: c.current_price for c in generator.generate()}

        for coin_id, price in second.items():
            move = abs(price / first[coin_id] - 1)
            assert 0.01 - 1e-9 <= move < 0.03 + 1e-9

    def test_many_calls_walk_from_previous_price(self, generator):
        previous = {c.id: c.current_price for c in generator.generate()}
        for _ in range(20):
            current = {c.id: c.current_price for c in generator.generate()}
            for coin_id, price in current.items():
                assert abs(price / previous[coin_id] - 1) <= 0.03 + 1e-9
            previous = current

    def test_cache_records_price_and_clock(self, generator):
        coins = generator.generate()

        entry = generator.continuity_entry("bitcoin")
        assert entry is not None
        assert entry.last_price == coins[0].current_price
        assert entry.last_timestamp == 1700000000.0

    def test_separate_instances_do_not_share_cache(self):
        a = SyntheticDataGenerator(rng=random.Random(1))
        b = SyntheticDataGenerator(rng=random.Random(1))

        a.generate()

        assert a.last_price("bitcoin") is not None
        assert b.last_price("bitcoin") is None

    def test_seeded_rng_is_reproducible(self):
        a = SyntheticDataGenerator(rng=random.Random(9)).generate()
        b = SyntheticDataGenerator(rng=random.Random(9)).generate()

        assert a == b
