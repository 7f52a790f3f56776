"""
Provider Registry Tests.

============================================================
PURPOSE
============================================================
Verify registration order, the first-success walker and
concurrent health checks.

============================================================
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from market_data.exceptions import NormalizationError, RateLimitError, UpstreamError
from market_data.models import SourceHealth, SourceStatus
from market_data.providers import (
    BinanceProvider,
    CoinCapProvider,
    CoinGeckoProvider,
    CryptoCompareProvider,
)
from market_data.registry import FallbackAttempt, ProviderRegistry


def attempt(name, result=None, error=None):
    fetch = AsyncMock(return_value=result, side_effect=error)
    return FallbackAttempt(name=name, fetch=fetch)


# ============================================================
# REGISTRATION
# ============================================================

class TestRegistration:
    """Tests for register() ordering."""

    def test_metadata_priority_order(self):
        registry = ProviderRegistry()
        registry.register(BinanceProvider())
        registry.register(CoinGeckoProvider())
        registry.register(CryptoCompareProvider(api_key="k"))
        registry.register(CoinCapProvider())

        assert registry.list_providers() == ["cryptocompare", "coingecko", "coincap", "binance"]

    def test_replace_keeps_single_entry(self):
        registry = ProviderRegistry()
        registry.register(CoinGeckoProvider())
        replacement = CoinGeckoProvider(base_url="https://mirror.test")
        registry.register(replacement)

        assert registry.list_providers() == ["coingecko"]
        assert registry.get("coingecko") is replacement

    def test_unknown_provider(self):
        assert ProviderRegistry().get("kraken") is None

    def test_metadata_and_stats(self):
        registry = ProviderRegistry()
        registry.register(CoinGeckoProvider())

        assert registry.get_all_metadata()["coingecko"].priority == 3
        stats = registry.get_stats()
        assert stats["total_providers"] == 1
        assert stats["health_summary"]["unknown"] == 1


# ============================================================
# FIRST SUCCESS
# ============================================================

class TestFirstSuccess:
    """Tests for the fallback walker."""

    @pytest.mark.asyncio
    async def test_first_attempt_wins(self):
        registry = ProviderRegistry()
        second = attempt("b", result=[2])

        result = await registry.first_success([attempt("a", result=[1]), second])

        assert result == ("a", [1])
        second.fetch.assert_not_awaited()
        assert registry.get_incidents() == []

    @pytest.mark.asyncio
    async def test_skips_failures_and_empty_results(self):
        registry = ProviderRegistry()
        fallbacks = []
        registry.on_fallback(lambda src, dst: fallbacks.append((src, dst)))

        result = await registry.first_success([
            attempt("a", error=UpstreamError("HTTP 500", source_name="a", status_code=500)),
            attempt("b", result=[]),
            attempt("c", error=NormalizationError("nothing usable", source_name="c")),
            attempt("d", result=["ok"]),
        ])

        assert result == ("d", ["ok"])
        assert fallbacks == [("c", "d")]
        types = [i.incident_type for i in registry.get_incidents()]
        assert types == ["fetch_error", "empty_result", "fetch_error", "fallback"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_advances(self):
        registry = ProviderRegistry()

        result = await registry.first_success([
            attempt("a", error=RuntimeError("bug")),
            attempt("b", result=[1]),
        ])

        assert result == ("b", [1])
        assert registry.get_incidents()[0].incident_type == "unexpected_error"

    @pytest.mark.asyncio
    async def test_fetch_error_incident_carries_error_details(self):
        registry = ProviderRegistry()

        await registry.first_success([
            attempt("a", error=UpstreamError("HTTP 503", source_name="a", status_code=503, request_url="https://a.test/x")),
            attempt("b", error=RateLimitError("HTTP 429", source_name="b", retry_after_seconds=30)),
            attempt("c", result=[1]),
        ])

        first, second = registry.get_incidents()[:2]
        assert first.context["error_type"] == "UpstreamError"
        assert first.context["status_code"] == 503
        assert first.context["request_url"] == "https://a.test/x"
        assert second.context["error_type"] == "RateLimitError"
        assert second.context["retry_after_seconds"] == 30

    @pytest.mark.asyncio
    async def test_all_failed_returns_none(self):
        registry = ProviderRegistry()
        seen = []
        registry.on_incident(seen.append)

        result = await registry.first_success([
            attempt("a", error=UpstreamError("down", source_name="a")),
            attempt("b", result=None),
        ])

        assert result is None
        last = registry.get_incidents()[-1]
        assert last.source_name == "registry"
        assert last.incident_type == "all_sources_failed"
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_no_attempts(self):
        assert await ProviderRegistry().first_success([]) is None

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self):
        registry = ProviderRegistry()
        registry.on_fallback(MagicMock(side_effect=RuntimeError("callback bug")))

        result = await registry.first_success([
            attempt("a", error=UpstreamError("down", source_name="a")),
            attempt("b", result=[1]),
        ])

        assert result == ("b", [1])

    @pytest.mark.asyncio
    async def test_incident_cap(self):
        registry = ProviderRegistry(max_incidents=3)

        for _ in range(3):
            await registry.first_success([attempt("a", error=UpstreamError("down", source_name="a"))])

        assert len(registry.get_incidents()) == 3


# ============================================================
# HEALTH CHECKS
# ============================================================

class TestHealthCheckAll:
    """Tests for health_check_all()."""

    @pytest.mark.asyncio
    async def test_exceptions_become_unavailable(self):
        registry = ProviderRegistry()
        gecko = CoinGeckoProvider()
        coincap = CoinCapProvider()
        gecko.health_check = AsyncMock(return_value=SourceHealth(
            status=SourceStatus.HEALTHY,
            last_check=datetime.utcnow(),
            latency_ms=12.0,
        ))
        coincap.health_check = AsyncMock(side_effect=RuntimeError("boom"))
        registry.register(gecko)
        registry.register(coincap)

        results = await registry.health_check_all()

        assert list(results) == ["coingecko", "coincap"]
        assert results["coingecko"].is_healthy()
        assert results["coincap"].status == SourceStatus.UNAVAILABLE
        assert results["coincap"].last_error == "boom"

    @pytest.mark.asyncio
    async def test_close_closes_providers(self):
        registry = ProviderRegistry()
        gecko = CoinGeckoProvider()
        gecko.close = AsyncMock()
        registry.register(gecko)

        async with registry:
            pass

        gecko.close.assert_awaited_once()
