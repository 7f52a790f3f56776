"""
History reconstruction for coin detail records.

Used when a tier has a current quote but no usable history: CoinMarketCap
quotes, and detail records rebuilt from an overview entry. Every series is
30 daily points, oldest first, ending at `end_ms`.
"""

import random
import time

from market_data.models import CoinDetail, CoinMarketData, CoinOverview


DAY_MS = 24 * 60 * 60 * 1000
HISTORY_DAYS = 30
MIN_TREND_FACTOR = 0.01

Series = list[tuple[int, float]]


def now_ms() -> int:
    return int(time.time() * 1000)


def _timestamps(end_ms: int, days: int) -> list[int]:
    return [end_ms - (days - 1 - i) * DAY_MS for i in range(days)]


def trend_factor(change_pct: float, days_ago: int, span: int) -> float:
    """Drift multiplier for a point `days_ago` back along the 24h change, floored above zero."""
    return max(MIN_TREND_FACTOR, 1 + (change_pct / 100) * (days_ago / span))


def reconstruct_from_change(
    current_price: float,
    change_24h: float,
    volume_24h: float,
    rng: random.Random,
    end_ms: int,
    days: int = HISTORY_DAYS,
) -> tuple[Series, Series]:
    """
    Build a price/volume series that drifts toward the current price.

    Older points are pushed further along the 24h change direction with up
    to +/-2.5% noise; volumes are 50-100% of the 24h volume.
    """
    prices: Series = []
    volumes: Series = []
    for i, timestamp in enumerate(_timestamps(end_ms, days)):
        days_ago = days - 1 - i
        noise = (rng.random() - 0.5) * 0.05
        prices.append((timestamp, current_price * trend_factor(change_24h, days_ago, days) * (1 + noise)))
        volumes.append((timestamp, volume_24h * (0.5 + rng.random() * 0.5)))
    return prices, volumes


def interpolate_sparkline(sparkline: tuple[float, ...], days: int = HISTORY_DAYS) -> list[float]:
    """Stretch a short sparkline over `days` points by linear interpolation."""
    if len(sparkline) == 1:
        return [sparkline[0]] * days

    last_index = len(sparkline) - 1
    points = []
    for i in range(days):
        position = i * last_index / (days - 1)
        lower = int(position)
        upper = min(lower + 1, last_index)
        weight = position - lower
        points.append(sparkline[lower] * (1 - weight) + sparkline[upper] * weight)
    return points


def detail_from_overview(
    coin: CoinOverview,
    rng: random.Random,
    end_ms: int,
    days: int = HISTORY_DAYS,
) -> CoinDetail:
    """Rebuild a detail record from an overview entry and its sparkline."""
    timestamps = _timestamps(end_ms, days)

    if coin.sparkline_7d:
        closes = interpolate_sparkline(coin.sparkline_7d, days)
        prices = list(zip(timestamps, closes))
        volumes = [
            (timestamp, coin.total_volume * (0.5 + rng.random() * 0.5))
            for timestamp in timestamps
        ]
    else:
        prices, volumes = reconstruct_from_change(
            coin.current_price,
            coin.price_change_percentage_24h,
            coin.total_volume,
            rng,
            end_ms,
            days,
        )

    supply = coin.market_cap / coin.current_price if coin.current_price > 0 else 0.0
    return CoinDetail(
        id=coin.id,
        symbol=coin.symbol,
        name=coin.name,
        description=coin.insight,
        market_data=CoinMarketData(
            current_price=coin.current_price,
            market_cap=coin.market_cap,
            total_volume=coin.total_volume,
            price_change_percentage_24h=coin.price_change_percentage_24h,
            high_24h=coin.current_price * 1.05,
            low_24h=coin.current_price * 0.95,
            circulating_supply=supply,
            total_supply=supply,
        ),
        prices=prices,
        volumes=volumes,
        source="overview",
    )


UNAVAILABLE_DESCRIPTION = "Coin details are currently unavailable. Please try again later."


def stub_detail(coin_id: str) -> CoinDetail:
    """All-zero record returned when nothing else resolves."""
    return CoinDetail(
        id=coin_id,
        symbol=coin_id.upper(),
        name=coin_id,
        description=UNAVAILABLE_DESCRIPTION,
        market_data=CoinMarketData(),
        prices=[],
        volumes=[],
    )
