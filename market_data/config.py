"""
Market Data - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the aggregation pipeline.

- Upstream API keys and base URLs
- Per-provider request timeouts
- Listing size and snapshot file location

Values are read from the environment (a local .env file is
loaded first) and can be overridden per field in code.

============================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from market_data.exceptions import ConfigurationError


DEFAULT_SNAPSHOT_PATH = Path("data") / "coins-backup.json"


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    Per-provider request timeouts in seconds.

    Each client enforces its own timeout; the orchestrator adds
    no aggregate deadline on top.
    """

    cryptocompare: float = 20.0
    coinmarketcap: float = 20.0
    coingecko: float = 20.0
    coincap: float = 15.0
    binance: float = 15.0

    history: float = 8.0
    """Timeout for per-coin sparkline history requests."""


# ============================================================
# PROVIDER ENDPOINTS
# ============================================================

@dataclass
class EndpointConfig:
    """Base URLs of the upstream APIs."""

    cryptocompare: str = "https://min-api.cryptocompare.com/data"
    coinmarketcap: str = "https://pro-api.coinmarketcap.com/v1"
    coingecko: str = "https://api.coingecko.com/api/v3"
    coincap: str = "https://api.coincap.io/v2"
    binance: str = "https://api.binance.com/api/v3"


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class MarketDataConfig:
    """Complete market data configuration."""

    cryptocompare_api_key: Optional[str] = None
    coinmarketcap_api_key: Optional[str] = None

    listing_limit: int = 50
    """Number of coins requested from each listing endpoint."""

    snapshot_path: Path = DEFAULT_SNAPSHOT_PATH

    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    def validate(self) -> None:
        """Raise ConfigurationError on invalid values."""
        if self.listing_limit < 1 or self.listing_limit > 250:
            raise ConfigurationError(
                message=f"listing_limit must be between 1 and 250, got {self.listing_limit}",
                config_key="listing_limit",
            )
        for name in ("cryptocompare", "coinmarketcap", "coingecko", "coincap", "binance", "history"):
            value = getattr(self.timeouts, name)
            if value <= 0:
                raise ConfigurationError(
                    message=f"Timeout for {name} must be positive, got {value}",
                    source_name=name,
                    config_key=f"timeouts.{name}",
                )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "MarketDataConfig":
        """
        Build configuration from environment variables.

        Without `env_file`, the nearest .env at or above the working
        directory is loaded first. Variables already set are never overridden.
        """
        if env_file is None:
            env_file = find_dotenv(usecwd=True)
        if env_file:
            load_dotenv(env_file)

        endpoints = EndpointConfig(
            cryptocompare=os.getenv("CRYPTOCOMPARE_BASE_URL", EndpointConfig.cryptocompare),
            coinmarketcap=os.getenv("COINMARKETCAP_BASE_URL", EndpointConfig.coinmarketcap),
            coingecko=os.getenv("COINGECKO_BASE_URL", EndpointConfig.coingecko),
            coincap=os.getenv("COINCAP_BASE_URL", EndpointConfig.coincap),
            binance=os.getenv("BINANCE_BASE_URL", EndpointConfig.binance),
        )
        timeouts = TimeoutConfig(
            cryptocompare=_env_float("CRYPTOCOMPARE_TIMEOUT", TimeoutConfig.cryptocompare),
            coinmarketcap=_env_float("COINMARKETCAP_TIMEOUT", TimeoutConfig.coinmarketcap),
            coingecko=_env_float("COINGECKO_TIMEOUT", TimeoutConfig.coingecko),
            coincap=_env_float("COINCAP_TIMEOUT", TimeoutConfig.coincap),
            binance=_env_float("BINANCE_TIMEOUT", TimeoutConfig.binance),
            history=_env_float("HISTORY_TIMEOUT", TimeoutConfig.history),
        )

        config = cls(
            cryptocompare_api_key=os.getenv("CRYPTOCOMPARE_API_KEY") or None,
            coinmarketcap_api_key=os.getenv("COINMARKETCAP_API_KEY") or None,
            listing_limit=_env_int("MARKET_DATA_LISTING_LIMIT", 50),
            snapshot_path=Path(os.getenv("MARKET_DATA_SNAPSHOT_PATH", str(DEFAULT_SNAPSHOT_PATH))),
            endpoints=endpoints,
            timeouts=timeouts,
        )
        config.validate()
        return config


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            message=f"{name} must be a number, got {raw!r}",
            config_key=name,
            original_error=e,
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            message=f"{name} must be an integer, got {raw!r}",
            config_key=name,
            original_error=e,
        )
