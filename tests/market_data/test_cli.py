"""
CLI Tests.

============================================================
PURPOSE
============================================================
Argument parsing, command dispatch and exit codes.

The orchestrator is mocked; see test_orchestrator.py for the
fallback behavior itself.
============================================================
"""

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from market_data.cli import create_parser, main, run_command, validate_args
from market_data.exceptions import ConfigurationError, UpstreamError
from market_data.history import stub_detail
from market_data.models import (
    CoinOverview,
    DataTier,
    Recommendation,
    SourceHealth,
    SourceStatus,
)


def overview(coin_id, symbol, price):
    return CoinOverview(
        id=coin_id,
        symbol=symbol,
        name=coin_id.title(),
        current_price=price,
        price_change_percentage_24h=1.5,
        market_cap=price * 1e6,
        total_volume=price * 1e5,
        sparkline_7d=(price,) * 7,
        score=0.6,
        recommendation=Recommendation.HOLD,
        insight="Up 1.50% in 24h.",
    )


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.last_tier = DataTier.COINGECKO
    mock.get_market_overview = AsyncMock(return_value=[
        overview("bitcoin", "btc", 45000.0),
        overview("ethereum", "eth", 2800.0),
    ])
    mock.get_coin_detail = AsyncMock(return_value=stub_detail("nope"))
    mock.snapshot.path = Path("data/coins-backup.json")
    return mock


def health(status):
    return SourceHealth(status=status, last_check=datetime.utcnow(), latency_ms=42.0)


# ============================================================
# PARSER
# ============================================================

class TestParser:
    """Tests for create_parser() and validate_args()."""

    def test_overview_options(self):
        args = create_parser().parse_args(["overview", "--force", "--limit", "5", "--json"])

        assert args.command == "overview"
        assert args.force is True
        assert args.limit == 5
        assert args.json is True
        assert args.log_level == "WARNING"

    def test_global_options(self):
        args = create_parser().parse_args(["--log-level", "DEBUG", "--snapshot-path", "/tmp/s.json", "diagnose"])

        assert args.log_level == "DEBUG"
        assert args.snapshot_path == Path("/tmp/s.json")

    def test_detail_requires_coin_id(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["detail"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])

    def test_invalid_limit(self):
        args = create_parser().parse_args(["overview", "--limit", "0"])

        assert validate_args(args) == ["--limit must be a positive integer"]

    def test_valid_args(self):
        assert validate_args(create_parser().parse_args(["diagnose"])) == []


# ============================================================
# COMMANDS
# ============================================================

class TestRunCommand:
    """Tests for run_command()."""

    @pytest.mark.asyncio
    async def test_overview_table(self, orchestrator, capsys):
        args = create_parser().parse_args(["overview"])

        code = await run_command(args, orchestrator)

        out = capsys.readouterr().out
        assert code == 0
        assert "source: coingecko" in out
        assert "BTC" in out
        orchestrator.set_force_refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_overview_json_with_force_and_limit(self, orchestrator, capsys):
        args = create_parser().parse_args(["overview", "--force", "--limit", "1", "--json"])

        code = await run_command(args, orchestrator)

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert [c["id"] for c in data] == ["bitcoin"]
        assert data[0]["recommendation"] == "hold"
        orchestrator.set_force_refresh.assert_called_once_with(True)

    @pytest.mark.asyncio
    async def test_detail_json(self, orchestrator, capsys):
        args = create_parser().parse_args(["detail", "nope", "--json"])

        code = await run_command(args, orchestrator)

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["market_data"]["current_price"]["usd"] == 0
        orchestrator.get_coin_detail.assert_awaited_once_with("nope")

    @pytest.mark.asyncio
    async def test_detail_summary(self, orchestrator, capsys):
        args = create_parser().parse_args(["detail", "nope"])

        await run_command(args, orchestrator)

        assert "currently unavailable" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_diagnose_exit_codes(self, orchestrator, capsys):
        args = create_parser().parse_args(["diagnose"])

        orchestrator.diagnose = AsyncMock(return_value={
            "coingecko": health(SourceStatus.HEALTHY),
            "binance": health(SourceStatus.UNAVAILABLE),
        })
        assert await run_command(args, orchestrator) == 0
        assert "coingecko" in capsys.readouterr().out

        orchestrator.diagnose = AsyncMock(return_value={
            "binance": health(SourceStatus.UNAVAILABLE),
        })
        assert await run_command(args, orchestrator) == 1

    @pytest.mark.asyncio
    async def test_diagnose_json(self, orchestrator, capsys):
        args = create_parser().parse_args(["diagnose", "--json"])
        orchestrator.diagnose = AsyncMock(return_value={
            "coingecko": health(SourceStatus.HEALTHY),
            "binance": SourceHealth(
                status=SourceStatus.UNAVAILABLE,
                last_check=datetime.utcnow(),
                last_error="HTTP 451",
            ),
        })

        code = await run_command(args, orchestrator)

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["coingecko"]["status"] == "healthy"
        assert data["coingecko"]["latency_ms"] == 42.0
        assert data["binance"]["status"] == "unavailable"
        assert data["binance"]["last_error"] == "HTTP 451"

    @pytest.mark.asyncio
    async def test_update_snapshot(self, orchestrator, capsys):
        orchestrator.refresh_snapshot = AsyncMock(return_value=50)
        args = create_parser().parse_args(["update-snapshot"])

        code = await run_command(args, orchestrator)

        assert code == 0
        assert "Saved 50 records" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_update_snapshot_failure(self, orchestrator, capsys):
        orchestrator.refresh_snapshot = AsyncMock(side_effect=UpstreamError("HTTP 503", source_name="coingecko"))
        args = create_parser().parse_args(["update-snapshot"])

        code = await run_command(args, orchestrator)

        assert code == 1
        assert "HTTP 503" in capsys.readouterr().err


# ============================================================
# MAIN
# ============================================================

class TestMain:
    """Tests for main()."""

    def test_invalid_args_exit_1(self, capsys):
        assert main(["overview", "--limit", "-1"]) == 1
        assert "--limit" in capsys.readouterr().err

    def test_configuration_error_exit_2(self, capsys):
        with patch("market_data.cli.build_config", side_effect=ConfigurationError("bad limit", config_key="listing_limit")):
            assert main(["diagnose"]) == 2

        assert "bad limit" in capsys.readouterr().err

    def test_runs_command_and_closes(self, orchestrator, tmp_path):
        orchestrator.close = AsyncMock()
        orchestrator.refresh_snapshot = AsyncMock(side_effect=UpstreamError("down", source_name="coingecko"))

        with patch("market_data.cli.build_config") as build_config, \
                patch("market_data.cli.create_orchestrator", return_value=orchestrator):
            code = main(["--snapshot-path", str(tmp_path / "s.json"), "update-snapshot"])

        assert code == 1
        build_config.assert_called_once()
        orchestrator.close.assert_awaited_once()
