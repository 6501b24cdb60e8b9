"""Gemini quota via the Cloud Code private API.

Credentials are the OAuth tokens the ``gemini`` CLI leaves in
``~/.gemini/oauth_creds.json``; the probe never refreshes them itself, so an
expired token means the user has to run the CLI once.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import base64
import json
import logging
import os

import httpx

from quotaprobe.errors import AuthenticationRequired, ExecutionFailed
from quotaprobe.models import ProviderName, UsageSnapshot
from quotaprobe.parsers import gemini as gemini_parser
from quotaprobe.probes.base import DEFAULT_HTTP_TIMEOUT, RemoteAPIProbe

logger = logging.getLogger(__name__)

CREDS_PATH = Path.home() / ".gemini/oauth_creds.json"
QUOTA_URL = "https://cloudcode-pa.googleapis.com/v1internal:retrieveUserQuota"
PROJECTS_URL = "https://cloudresourcemanager.googleapis.com/v1/projects"
PROJECT_ENV = "GOOGLE_CLOUD_PROJECT"


@dataclass(frozen=True)
class GeminiCredentials:
    access_token: str
    expires_at: datetime | None = None
    email: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(timezone.utc))


def email_from_id_token(id_token: object) -> str | None:
    if not isinstance(id_token, str):
        return None
    parts = id_token.split(".")
    if len(parts) < 2:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return None
    email = claims.get("email") if isinstance(claims, dict) else None
    return email if isinstance(email, str) else None


def load_credentials(path: Path) -> GeminiCredentials:
    if not path.exists():
        raise AuthenticationRequired(f"{path} not found; run `gemini` to log in")
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise AuthenticationRequired(f"{path} is unreadable: {exc}") from exc
    token = raw.get("access_token") if isinstance(raw, dict) else None
    if not token:
        raise AuthenticationRequired(f"{path} has no access token")
    expiry = raw.get("expiry_date")
    expires_at = None
    if isinstance(expiry, (int, float)) and not isinstance(expiry, bool):
        expires_at = datetime.fromtimestamp(expiry / 1000.0, tz=timezone.utc)
    return GeminiCredentials(access_token=token, expires_at=expires_at, email=email_from_id_token(raw.get("id_token")))


class GeminiUsageProbe(RemoteAPIProbe):
    provider_id = ProviderName.GEMINI.value

    def __init__(
        self,
        creds_path: Path = CREDS_PATH,
        environ: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.creds_path = Path(creds_path)
        self.environ = dict(os.environ if environ is None else environ)
        self.http_timeout = timeout
        self.transport = transport

    def has_credentials(self) -> bool:
        return not load_credentials(self.creds_path).is_expired()

    async def probe(self) -> UsageSnapshot:
        creds = load_credentials(self.creds_path)
        if creds.is_expired():
            raise AuthenticationRequired("Gemini token expired; run `gemini` to refresh it")
        headers = {"Authorization": f"Bearer {creds.access_token}"}

        project = await self._project_id(headers)
        logger.debug("gemini: using project %s", project)
        body = await self.request("POST", QUOTA_URL, headers=headers, json={"project": project})
        return gemini_parser.parse_quota(body, self.provider_id, account_email=creds.email)

    async def _project_id(self, headers: dict[str, str]) -> str:
        configured = self.environ.get(PROJECT_ENV, "").strip()
        if configured:
            return configured
        body = await self.request("GET", PROJECTS_URL, headers=headers)
        project = gemini_parser.best_project_id(body)
        if project is None:
            raise ExecutionFailed("no Gemini-enabled Google Cloud project found")
        return project
