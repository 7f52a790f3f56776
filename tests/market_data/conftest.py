"""
Shared fixtures: provider-raw payloads as the upstream APIs return them.
"""

import pytest


BTC_SPARKLINE = [43000.0, 43500.0, 44100.0, 43800.0, 44300.0, 44700.0, 45000.0]


@pytest.fixture
def coingecko_markets():
    """Bare array from /coins/markets with sparkline."""
    return [
        {
            "id": "bitcoin",
            "symbol": "btc",
            "name": "Bitcoin",
            "current_price": 45000,
            "price_change_percentage_24h": 3.2,
            "market_cap": 880000000000,
            "total_volume": 25000000000,
            "sparkline_in_7d": {"price": list(BTC_SPARKLINE)},
        },
        {
            "id": "ethereum",
            "symbol": "eth",
            "name": "Ethereum",
            "current_price": 2800.5,
            "price_change_percentage_24h": -1.4,
            "market_cap": 336000000000,
            "total_volume": 12000000000,
            "sparkline_in_7d": {"price": [2850, 2840, 2830, 2820, 2810, 2805, 2800.5]},
        },
        {
            "id": "deadcoin",
            "symbol": "dead",
            "name": "Dead Coin",
            "current_price": 0,
            "price_change_percentage_24h": 0,
            "market_cap": 0,
            "total_volume": 0,
            "sparkline_in_7d": None,
        },
    ]


@pytest.fixture
def coingecko_top50(coingecko_markets):
    """Full 50-coin page from /coins/markets: bitcoin, ethereum and 48 smaller caps."""
    payload = coingecko_markets[:2]
    for rank in range(3, 51):
        price = round(100.0 / rank, 4)
        payload.append({
            "id": f"altcoin-{rank}",
            "symbol": f"alt{rank}",
            "name": f"Altcoin {rank}",
            "current_price": price,
            "price_change_percentage_24h": (rank % 7) - 3.0,
            "market_cap": price * 1e8,
            "total_volume": price * 5e6,
            "sparkline_in_7d": {"price": [price * (1 + (i - 3) / 100) for i in range(7)]},
        })
    return payload


@pytest.fixture
def cryptocompare_toplist():
    """Envelope from /top/mktcapfull."""
    return {
        "Message": "Success",
        "Type": 100,
        "Data": [
            {
                "CoinInfo": {"Name": "BTC", "FullName": "Bitcoin"},
                "RAW": {"USD": {
                    "PRICE": 45100.0,
                    "CHANGEPCT24HOUR": 2.5,
                    "MKTCAP": 881000000000.0,
                    "VOLUME24HOURTO": 21000000000.0,
                }},
            },
            {
                "CoinInfo": {"Name": "ETH", "FullName": "Ethereum"},
                "RAW": {"USD": {
                    "PRICE": 2810.0,
                    "CHANGEPCT24HOUR": -0.5,
                    "MKTCAP": 337000000000.0,
                    "VOLUME24HOURTO": 9000000000.0,
                }},
            },
        ],
    }


@pytest.fixture
def coinmarketcap_listings():
    """Envelope from /cryptocurrency/listings/latest."""
    return {
        "status": {"error_code": 0},
        "data": [
            {
                "id": 1,
                "slug": "bitcoin",
                "symbol": "BTC",
                "name": "Bitcoin",
                "quote": {"USD": {
                    "price": 45050.0,
                    "percent_change_24h": 1.1,
                    "market_cap": 880500000000.0,
                    "volume_24h": 20000000000.0,
                }},
            },
        ],
    }


@pytest.fixture
def coincap_assets():
    """Envelope from /assets; numbers are strings."""
    return {
        "data": [
            {
                "id": "bitcoin",
                "symbol": "BTC",
                "name": "Bitcoin",
                "priceUsd": "44990.1234",
                "changePercent24Hr": "0.8",
                "marketCapUsd": "879000000000.5",
                "volumeUsd24Hr": "15000000000.1",
            },
            {
                "id": "tether",
                "symbol": "USDT",
                "name": "Tether",
                "priceUsd": "1.0001",
                "changePercent24Hr": "0.01",
                "marketCapUsd": None,
                "volumeUsd24Hr": "40000000000",
            },
        ],
        "timestamp": 1700000000000,
    }


@pytest.fixture
def binance_tickers():
    """Bare array from /ticker/24hr."""
    return [
        {"symbol": "ETHUSDT", "lastPrice": "2805.10", "priceChangePercent": "-0.9", "quoteVolume": "900000000"},
        {"symbol": "BTCUSDT", "lastPrice": "45010.00", "priceChangePercent": "1.2", "quoteVolume": "1500000000"},
        {"symbol": "ETHBTC", "lastPrice": "0.0623", "priceChangePercent": "-2.0", "quoteVolume": "4000"},
        {"symbol": "DOGEUSDT", "lastPrice": "0.081", "priceChangePercent": "5.5", "quoteVolume": "300000000"},
    ]
