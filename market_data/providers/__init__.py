"""
Providers package - Upstream market data API adapters.
"""

from market_data.providers.binance import BinanceProvider
from market_data.providers.coincap import CoinCapProvider
from market_data.providers.coingecko import CoinGeckoProvider
from market_data.providers.coinmarketcap import CoinMarketCapProvider
from market_data.providers.cryptocompare import CryptoCompareProvider


__all__ = [
    "BinanceProvider",
    "CoinCapProvider",
    "CoinGeckoProvider",
    "CoinMarketCapProvider",
    "CryptoCompareProvider",
]
