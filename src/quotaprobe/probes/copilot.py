from __future__ import annotations

import logging

import httpx

from quotaprobe.credentials import GITHUB_TOKEN, GITHUB_USERNAME, CredentialRepository
from quotaprobe.errors import AuthenticationRequired, ExecutionFailed
from quotaprobe.models import ProviderName, UsageSnapshot
from quotaprobe.parsers import copilot as copilot_parser
from quotaprobe.probes.base import DEFAULT_HTTP_TIMEOUT, RemoteAPIProbe

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


class CopilotUsageProbe(RemoteAPIProbe):
    provider_id = ProviderName.COPILOT.value

    def __init__(
        self,
        credential_store: CredentialRepository,
        request_limit: int = copilot_parser.DEFAULT_REQUEST_LIMIT,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credential_store = credential_store
        self.request_limit = request_limit
        self.http_timeout = timeout
        self.transport = transport

    def has_credentials(self) -> bool:
        return bool(self.credential_store.get(GITHUB_TOKEN)) and bool(self.credential_store.get(GITHUB_USERNAME))

    async def probe(self) -> UsageSnapshot:
        token = self.credential_store.get(GITHUB_TOKEN)
        if not token:
            raise AuthenticationRequired("GitHub token is not configured")
        username = self.credential_store.get(GITHUB_USERNAME)
        if not username:
            raise ExecutionFailed("GitHub username is not configured")

        body = await self.request(
            "GET",
            f"{GITHUB_API}/users/{username}/settings/billing/premium_request/usage",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )
        snapshot = copilot_parser.parse_usage(body, self.provider_id, cap=self.request_limit)
        logger.debug("copilot: %s", snapshot.quotas[0].reset_text)
        return snapshot
