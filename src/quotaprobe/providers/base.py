from __future__ import annotations

import asyncio
from enum import Enum
import logging

from quotaprobe.models import QuotaStatus, UsageSnapshot
from quotaprobe.probes.base import UsageProbe

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Provider:
    """One AI service: its identity, its probe, and what the last refresh saw.

    ``snapshot`` survives failed refreshes so callers can keep showing stale
    data; ``last_error`` tells them the data is stale. Concurrent ``refresh``
    calls share a single in-flight probe instead of racing each other.
    """

    def __init__(
        self,
        id: str,
        name: str,
        cli_command: str,
        probe: UsageProbe,
        dashboard_url: str | None = None,
        status_page_url: str | None = None,
        enabled: bool = True,
    ) -> None:
        self.id = id
        self.name = name
        self.cli_command = cli_command
        self.probe = probe
        self.dashboard_url = dashboard_url
        self.status_page_url = status_page_url
        self.enabled = enabled

        self.state = RefreshState.IDLE
        self.last_outcome: RefreshState | None = None
        self.snapshot: UsageSnapshot | None = None
        self.last_error: BaseException | None = None
        self._inflight: asyncio.Future[UsageSnapshot] | None = None

    def __repr__(self) -> str:
        return f"Provider(id={self.id!r}, state={self.state.value})"

    @property
    def is_syncing(self) -> bool:
        return self.state is RefreshState.SYNCING

    @property
    def status(self) -> QuotaStatus | None:
        return self.snapshot.overall_status if self.snapshot else None

    async def is_available(self) -> bool:
        return await self.probe.is_available()

    async def refresh(self) -> UsageSnapshot:
        inflight = self._inflight
        if inflight is None:
            inflight = asyncio.ensure_future(self._refresh_once())
            self._inflight = inflight
        else:
            logger.debug("%s: joining refresh already in flight", self.id)
        return await asyncio.shield(inflight)

    async def _refresh_once(self) -> UsageSnapshot:
        self.state = RefreshState.SYNCING
        try:
            snapshot = await self.probe.probe()
        except Exception as exc:
            self.last_error = exc
            self.last_outcome = RefreshState.FAILED
            logger.warning("%s: refresh failed: %s", self.id, exc)
            raise
        else:
            self.snapshot = snapshot
            self.last_error = None
            self.last_outcome = RefreshState.SUCCEEDED
            logger.info("%s: refreshed %d quota(s)", self.id, len(snapshot.quotas))
            return snapshot
        finally:
            self.state = RefreshState.IDLE
            self._inflight = None
