from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
import logging
from types import MappingProxyType

from quotaprobe.models import ClaudeAccountType, ProviderName, UsageSnapshot
from quotaprobe.parsers import claude as claude_parser
from quotaprobe.probes.base import DEFAULT_CLI_TIMEOUT, CLIBinaryProbe
from quotaprobe.runner import InteractiveRunner

logger = logging.getLogger(__name__)


class ClaudeUsageProbe(CLIBinaryProbe):
    """Reads subscription quotas from ``claude /usage``.

    API-key accounts have no quota screen; for them the probe falls back to
    ``/cost`` and returns a snapshot carrying only cost usage, with the
    configured budget attached when there is one.
    """

    provider_id = ProviderName.CLAUDE.value
    binary = "claude"
    auto_responses = MappingProxyType(
        {
            "Do you trust the files in this folder?": "\r",
            "Press Enter to continue": "\r",
        }
    )

    def __init__(
        self,
        runner: InteractiveRunner,
        timeout: float = DEFAULT_CLI_TIMEOUT,
        workdir: str | None = None,
        budget: Decimal | None = None,
    ) -> None:
        super().__init__(runner, timeout=timeout, workdir=workdir)
        self.budget = budget

    async def probe(self) -> UsageSnapshot:
        result = await self.run_cli("/usage")
        if claude_parser.detect_account_type(result.output) is ClaudeAccountType.API:
            logger.info("claude: API account detected, reading /cost instead")
            cost = await self.run_cli("/cost")
            snapshot = self.parse_result(cost, claude_parser.cost_snapshot)
            if self.budget is not None and snapshot.cost_usage is not None:
                snapshot = replace(snapshot, cost_usage=replace(snapshot.cost_usage, budget=self.budget))
            return snapshot
        return self.parse_result(result, claude_parser.parse_usage)
