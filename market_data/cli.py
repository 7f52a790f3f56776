"""
Market Data - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the aggregation pipeline.

- Prints the market overview and coin details
- Runs provider diagnostics
- Refreshes the local snapshot file (out-of-band maintenance)

============================================================
USAGE
============================================================
market-data overview --limit 10
market-data overview --force --json
market-data detail bitcoin
market-data diagnose --json
market-data update-snapshot --snapshot-path data/coins-backup.json

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from market_data.config import MarketDataConfig
from market_data.exceptions import ConfigurationError, MarketDataError
from market_data.models import CoinDetail, CoinOverview, SourceHealth
from market_data.orchestrator import MarketDataOrchestrator, create_orchestrator


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="market-data",
        description="Crypto market data aggregation with tiered provider fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  overview         - Top coins with score, recommendation and insight
  detail           - Detail and 30-day history for one coin
  diagnose         - Ping every upstream provider
  update-snapshot  - Refresh the local snapshot from CoinGecko

Examples:
  %(prog)s overview --limit 10
  %(prog)s detail ethereum --json
        """
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    # --------------------------------------------------------
    # Data Options
    # --------------------------------------------------------
    parser.add_argument(
        "--snapshot-path",
        type=Path,
        default=None,
        help="Snapshot file (default: MARKET_DATA_SNAPSHOT_PATH or data/coins-backup.json)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    overview = subparsers.add_parser("overview", help="Print the market overview")
    overview.add_argument(
        "--force",
        action="store_true",
        help="Ignore the cached provider and walk every tier",
    )
    overview.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Only print the first N coins",
    )
    overview.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a table",
    )

    detail = subparsers.add_parser("detail", help="Print detail for one coin")
    detail.add_argument("coin_id", help="Coin slug or ticker (e.g. bitcoin, btc)")
    detail.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a summary",
    )

    diagnose = subparsers.add_parser("diagnose", help="Check upstream provider health")
    diagnose.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a table",
    )
    subparsers.add_parser("update-snapshot", help="Refresh the local snapshot file")

    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate parsed arguments."""
    errors = []
    if getattr(args, "limit", None) is not None and args.limit < 1:
        errors.append("--limit must be a positive integer")
    return errors


def build_config(args: argparse.Namespace) -> MarketDataConfig:
    """Build configuration from environment and CLI overrides."""
    config = MarketDataConfig.from_env()
    if args.snapshot_path is not None:
        config.snapshot_path = args.snapshot_path
    return config


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ============================================================
# OUTPUT
# ============================================================

def print_overview(coins: List[CoinOverview], source: str) -> None:
    print()
    print("=" * 84)
    print(f"  MARKET OVERVIEW  (source: {source})")
    print("=" * 84)
    print(f"  {'#':>3}  {'SYMBOL':<7} {'PRICE':>14} {'24H %':>8} {'MARKET CAP':>18} {'SCORE':>6}  REC")
    print("-" * 84)
    for rank, coin in enumerate(coins, start=1):
        print(
            f"  {rank:>3}  {coin.symbol.upper():<7} "
            f"{coin.current_price:>14,.4f} "
            f"{coin.price_change_percentage_24h:>+8.2f} "
            f"{coin.market_cap:>18,.0f} "
            f"{coin.score:>6.2f}  {coin.recommendation.value}"
        )
    print("=" * 84)
    print()


def print_detail(detail: CoinDetail) -> None:
    market = detail.market_data
    print()
    print("=" * 60)
    print(f"  {detail.name} ({detail.symbol})  source: {detail.source}")
    print("=" * 60)
    print(f"  Price:       ${market.current_price:,.6f}")
    print(f"  24h change:  {market.price_change_percentage_24h:+.2f}%")
    print(f"  24h range:   ${market.low_24h:,.6f} - ${market.high_24h:,.6f}")
    print(f"  Market cap:  ${market.market_cap:,.0f}")
    print(f"  Volume 24h:  ${market.total_volume:,.0f}")
    print(f"  Supply:      {market.circulating_supply:,.0f}")
    print(f"  History:     {len(detail.prices)} price points")
    if detail.description:
        print()
        print(f"  {detail.description[:300]}")
    print("=" * 60)
    print()


def print_health(results: dict[str, SourceHealth]) -> None:
    print()
    print("=" * 60)
    print("  PROVIDER DIAGNOSTICS")
    print("=" * 60)
    for name, health in results.items():
        latency = f"{health.latency_ms:.0f}ms" if health.latency_ms is not None else "-"
        line = f"  {name:<15} {health.status.value:<12} {latency:>8}"
        if health.last_error:
            line += f"  {health.last_error[:60]}"
        print(line)
    print("=" * 60)
    print()


# ============================================================
# COMMANDS
# ============================================================

async def run_command(args: argparse.Namespace, orchestrator: MarketDataOrchestrator) -> int:
    """Dispatch one subcommand. Returns exit code."""
    if args.command == "overview":
        if args.force:
            orchestrator.set_force_refresh(True)
        coins = await orchestrator.get_market_overview()
        if args.limit is not None:
            coins = coins[:args.limit]
        if args.json:
            print(json.dumps([coin.to_dict() for coin in coins], indent=2))
        else:
            print_overview(coins, orchestrator.last_tier.value)
        return 0

    if args.command == "detail":
        detail = await orchestrator.get_coin_detail(args.coin_id)
        if args.json:
            print(json.dumps(detail.to_dict(), indent=2))
        else:
            print_detail(detail)
        return 0

    if args.command == "diagnose":
        results = await orchestrator.diagnose()
        if args.json:
            print(json.dumps({name: health.to_dict() for name, health in results.items()}, indent=2))
        else:
            print_health(results)
        return 0 if any(h.is_healthy() for h in results.values()) else 1

    if args.command == "update-snapshot":
        try:
            count = await orchestrator.refresh_snapshot()
        except MarketDataError as e:
            logger.error(f"Snapshot update failed: {e}")
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        print(f"Saved {count} records to {orchestrator.snapshot.path}")
        return 0

    print(f"Error: unknown command {args.command}", file=sys.stderr)
    return 2


async def async_main(args: argparse.Namespace) -> int:
    """Async main entry point."""
    try:
        config = build_config(args)
        orchestrator = create_orchestrator(config)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    try:
        return await run_command(args, orchestrator)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    finally:
        await orchestrator.close()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(args.log_level)

    return asyncio.run(async_main(args))


if __name__ == "__main__":
    sys.exit(main())
