"""
Provider Registry - Central registry for market data providers with fallback logic.

Provides:
- Provider registration and discovery in priority order
- Health checks across all providers
- A generic "first success wins" walker over ordered fallback attempts
- No downstream dependency on specific providers
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from market_data.base import BaseMarketProvider
from market_data.exceptions import MarketDataError
from market_data.models import (
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
)


logger = logging.getLogger(__name__)


@dataclass
class FallbackAttempt:
    """One step of a fallback walk: a label and a zero-arg coroutine factory."""
    name: str
    fetch: Callable[[], Awaitable[list[Any]]]


class ProviderRegistry:
    """
    Central registry for market data providers.

    Features:
    - Register multiple providers
    - Ordered fallback with incident tracking
    - Health checks on demand
    - Event callbacks for incidents and fallbacks

    Usage:
        registry = ProviderRegistry()
        registry.register(CoinGeckoProvider())
        registry.register(CoinCapProvider())

        result = await registry.first_success([
            FallbackAttempt("coingecko", fetch_coingecko),
            FallbackAttempt("coincap", fetch_coincap),
        ])
    """

    def __init__(self, max_incidents: int = 1000) -> None:
        self._providers: dict[str, BaseMarketProvider] = {}
        self._provider_order: list[str] = []  # Priority order

        # Incident tracking
        self._incidents: list[SourceIncident] = []
        self._max_incidents = max_incidents

        # Event callbacks
        self._on_incident_callbacks: list[Callable[[SourceIncident], None]] = []
        self._on_fallback_callbacks: list[Callable[[str, str], None]] = []

    def register(
        self,
        provider: BaseMarketProvider,
        priority: Optional[int] = None,
    ) -> None:
        """
        Register a provider.

        Args:
            provider: Provider instance
            priority: Lower = tried earlier (optional, uses metadata priority)
        """
        name = provider.name

        if name in self._providers:
            logger.warning(f"Provider '{name}' already registered, replacing")

        self._providers[name] = provider

        if priority is None:
            priority = provider.metadata().priority

        insert_idx = len(self._provider_order)
        for i, existing_name in enumerate(self._provider_order):
            if existing_name in self._providers and existing_name != name:
                existing_priority = self._providers[existing_name].metadata().priority
                if priority < existing_priority:
                    insert_idx = i
                    break

        if name not in self._provider_order:
            self._provider_order.insert(insert_idx, name)

        logger.info(f"Registered provider '{name}' with priority {priority}")

    def get(self, name: str) -> Optional[BaseMarketProvider]:
        """Get a specific provider by name."""
        return self._providers.get(name)

    def list_providers(self) -> list[str]:
        """List all registered provider names in priority order."""
        return self._provider_order.copy()

    def get_all_metadata(self) -> dict[str, SourceMetadata]:
        """Get metadata for all registered providers."""
        return {name: self._providers[name].metadata() for name in self._provider_order}

    async def first_success(
        self,
        attempts: list[FallbackAttempt],
    ) -> Optional[tuple[str, list[Any]]]:
        """
        Walk attempts in order; the first non-empty result wins.

        A failure (any MarketDataError, or an empty result) advances to the
        next attempt and is recorded as an incident.

        Returns:
            (attempt name, result) or None when every attempt failed

        Note:
            Never raises for attempt failures
        """
        attempted: list[str] = []
        last_failed: Optional[str] = None

        for attempt in attempts:
            attempted.append(attempt.name)
            try:
                result = await attempt.fetch()
            except MarketDataError as e:
                logger.warning(f"[{attempt.name}] Failed: {e}")
                self._log_incident(attempt.name, "fetch_error", str(e), context=e.to_dict())
                last_failed = attempt.name
                continue
            except Exception as e:
                logger.exception(f"[{attempt.name}] Unexpected error: {e}")
                self._log_incident(attempt.name, "unexpected_error", str(e))
                last_failed = attempt.name
                continue

            if result:
                if last_failed is not None:
                    self._on_fallback(last_failed, attempt.name)
                return attempt.name, result

            logger.warning(f"[{attempt.name}] Empty result")
            self._log_incident(attempt.name, "empty_result", "No usable records")
            last_failed = attempt.name

        logger.error(f"All attempts failed: {attempted}")
        self._log_incident(
            "registry",
            "all_sources_failed",
            f"Attempted: {attempted}",
        )
        return None

    async def health_check_all(self) -> dict[str, SourceHealth]:
        """Run health check on all providers concurrently."""
        names = list(self._provider_order)
        outcomes = await asyncio.gather(
            *(self._providers[name].health_check() for name in names),
            return_exceptions=True,
        )

        results: dict[str, SourceHealth] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, SourceHealth):
                results[name] = outcome
                continue

            logger.warning(f"[{name}] Health check failed: {outcome}")
            results[name] = SourceHealth(
                status=SourceStatus.UNAVAILABLE,
                last_check=datetime.utcnow(),
                last_error=str(outcome),
            )

        return results

    def on_incident(self, callback: Callable[[SourceIncident], None]) -> None:
        """Register callback for incidents."""
        self._on_incident_callbacks.append(callback)

    def on_fallback(self, callback: Callable[[str, str], None]) -> None:
        """Register callback for fallbacks (from_source, to_source)."""
        self._on_fallback_callbacks.append(callback)

    def _log_incident(
        self,
        source_name: str,
        incident_type: str,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an incident."""
        incident = SourceIncident(
            source_name=source_name,
            incident_type=incident_type,
            timestamp=datetime.utcnow(),
            error_message=message,
            context=context,
        )

        self._incidents.append(incident)

        # Trim to max size
        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

        for callback in self._on_incident_callbacks:
            try:
                callback(incident)
            except Exception as e:
                logger.error(f"Incident callback error: {e}")

    def _on_fallback(self, from_source: str, to_source: str) -> None:
        """Handle fallback from one source to the next."""
        logger.warning(f"Fallback: {from_source} -> {to_source}")

        self._log_incident(
            from_source,
            "fallback",
            f"Switched to {to_source}",
        )

        for callback in self._on_fallback_callbacks:
            try:
                callback(from_source, to_source)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")

    def get_incidents(self, limit: int = 100) -> list[SourceIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        health_summary = {}
        for status in SourceStatus:
            health_summary[status.value] = sum(
                1 for p in self._providers.values()
                if p.get_health().status == status
            )

        return {
            "total_providers": len(self._providers),
            "provider_order": self._provider_order.copy(),
            "health_summary": health_summary,
            "total_incidents": len(self._incidents),
        }

    async def close(self) -> None:
        """Close all provider sessions."""
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as e:
                logger.error(f"Error closing provider {provider.name}: {e}")

    async def __aenter__(self) -> "ProviderRegistry":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
