from __future__ import annotations

from types import MappingProxyType

from quotaprobe.models import ProviderName, UsageSnapshot
from quotaprobe.parsers import codex as codex_parser
from quotaprobe.probes.base import CLIBinaryProbe


class CodexUsageProbe(CLIBinaryProbe):
    provider_id = ProviderName.CODEX.value
    binary = "codex"
    arguments = ("-s", "read-only", "-a", "untrusted")
    auto_responses = MappingProxyType({"Press Enter to continue": "\r"})

    async def probe(self) -> UsageSnapshot:
        result = await self.run_cli("/status")
        return self.parse_result(result, codex_parser.parse_status)
