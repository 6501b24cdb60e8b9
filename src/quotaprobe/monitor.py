from __future__ import annotations

import asyncio
import logging

from quotaprobe.models import UsageSnapshot
from quotaprobe.providers import Provider

logger = logging.getLogger(__name__)


class QuotaMonitor:
    """Refreshes every registered provider at once."""

    def __init__(self, providers: list[Provider] | None = None) -> None:
        self._providers: dict[str, Provider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        if provider.id in self._providers:
            raise ValueError(f"provider already registered: {provider.id}")
        self._providers[provider.id] = provider

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers.values())

    def get(self, provider_id: str) -> Provider | None:
        return self._providers.get(provider_id)

    async def available_providers(self) -> list[Provider]:
        checks = await asyncio.gather(*(p.is_available() for p in self._providers.values()))
        return [p for p, ok in zip(self._providers.values(), checks) if ok]

    async def refresh_all(self) -> dict[str, UsageSnapshot]:
        """Refresh concurrently and return the latest snapshot per provider.

        Failures stay on the failing provider (``last_error``); a provider that
        has never produced a snapshot is simply missing from the result.
        """
        providers = list(self._providers.values())
        results = await asyncio.gather(*(p.refresh() for p in providers), return_exceptions=True)

        failed = sum(isinstance(r, BaseException) for r in results)
        logger.info("refreshed %d provider(s), %d failed", len(providers), failed)

        return {p.id: p.snapshot for p in providers if p.snapshot is not None}

    def snapshots(self) -> dict[str, UsageSnapshot]:
        return {p.id: p.snapshot for p in self._providers.values() if p.snapshot is not None}
