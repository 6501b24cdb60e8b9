from __future__ import annotations

from types import MappingProxyType

from quotaprobe.discovery import ProcessSignature
from quotaprobe.models import ProviderName, UsageSnapshot
from quotaprobe.parsers import antigravity as antigravity_parser
from quotaprobe.probes.base import LocalProcessProbe

SERVICE = "/exa.language_server_pb.LanguageServerService"


class AntigravityUsageProbe(LocalProcessProbe):
    provider_id = ProviderName.ANTIGRAVITY.value
    signature = ProcessSignature(
        name_pattern=r"^language_server",
        argument_pattern=r"antigravity",
        label="Antigravity language server",
    )
    endpoints = (f"{SERVICE}/GetUserStatus", f"{SERVICE}/GetCommandModelConfigs")
    payload = MappingProxyType(
        {
            "metadata": {
                "ideName": "antigravity",
                "extensionName": "antigravity",
                "ideVersion": "unknown",
                "locale": "en",
            }
        }
    )
    token_header = "X-Codeium-Csrf-Token"
    extra_headers = MappingProxyType({"Connect-Protocol-Version": "1"})

    def parse(self, raw: bytes) -> UsageSnapshot:
        return antigravity_parser.parse_user_status(raw, self.provider_id)
