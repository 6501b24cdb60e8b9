"""Provider registry.

To add a provider: write a probe under ``quotaprobe.probes``, add its
``ProviderName`` member, and register a factory in ``_PROBE_FACTORIES``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
import os

from quotaprobe.config import Config, search_config
from quotaprobe.credentials import CredentialRepository, FileCredentialStore
from quotaprobe.models import ProviderName
from quotaprobe.parsers.copilot import DEFAULT_REQUEST_LIMIT
from quotaprobe.probes import (
    AntigravityUsageProbe,
    ClaudeUsageProbe,
    CodexUsageProbe,
    CopilotUsageProbe,
    GeminiUsageProbe,
    UsageProbe,
)
from quotaprobe.providers.base import Provider, RefreshState
from quotaprobe.runner import InteractiveRunner


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    cli_command: str
    dashboard_url: str | None
    status_page_url: str | None


PROVIDER_INFO: dict[ProviderName, ProviderInfo] = {
    ProviderName.CLAUDE: ProviderInfo(
        "Claude", "claude", "https://console.anthropic.com/settings/billing", "https://status.anthropic.com"
    ),
    ProviderName.CODEX: ProviderInfo(
        "Codex", "codex", "https://chatgpt.com/codex/settings/usage", "https://status.openai.com"
    ),
    ProviderName.GEMINI: ProviderInfo(
        "Gemini", "gemini", "https://aistudio.google.com/usage", "https://aistudio.google.com/status"
    ),
    ProviderName.COPILOT: ProviderInfo(
        "Copilot", "gh", "https://github.com/settings/billing/premium_requests_usage", "https://www.githubstatus.com"
    ),
    ProviderName.ANTIGRAVITY: ProviderInfo("Antigravity", "antigravity", None, None),
}


@dataclass
class ProbeContext:
    cfg: Config
    runner: InteractiveRunner
    credential_store: CredentialRepository
    environ: Mapping[str, str]


def _claude(ctx: ProbeContext) -> UsageProbe:
    budget = ctx.cfg.providers[ProviderName.CLAUDE.value].budget
    return ClaudeUsageProbe(
        ctx.runner,
        timeout=ctx.cfg.probes.cli_timeout_seconds,
        workdir=ctx.cfg.probes.workdir,
        budget=Decimal(str(budget)) if budget is not None else None,
    )


def _codex(ctx: ProbeContext) -> UsageProbe:
    return CodexUsageProbe(ctx.runner, timeout=ctx.cfg.probes.cli_timeout_seconds, workdir=ctx.cfg.probes.workdir)


def _gemini(ctx: ProbeContext) -> UsageProbe:
    return GeminiUsageProbe(environ=ctx.environ, timeout=ctx.cfg.probes.http_timeout_seconds)


def _copilot(ctx: ProbeContext) -> UsageProbe:
    limit = ctx.cfg.providers[ProviderName.COPILOT.value].request_limit or DEFAULT_REQUEST_LIMIT
    return CopilotUsageProbe(ctx.credential_store, request_limit=limit, timeout=ctx.cfg.probes.http_timeout_seconds)


def _antigravity(ctx: ProbeContext) -> UsageProbe:
    return AntigravityUsageProbe(timeout=ctx.cfg.probes.http_timeout_seconds)


_PROBE_FACTORIES: dict[ProviderName, Callable[[ProbeContext], UsageProbe]] = {
    ProviderName.CLAUDE: _claude,
    ProviderName.CODEX: _codex,
    ProviderName.GEMINI: _gemini,
    ProviderName.COPILOT: _copilot,
    ProviderName.ANTIGRAVITY: _antigravity,
}


def make_provider(name: ProviderName, probe: UsageProbe, enabled: bool = True) -> Provider:
    info = PROVIDER_INFO[name]
    return Provider(
        id=name.value,
        name=info.name,
        cli_command=info.cli_command,
        probe=probe,
        dashboard_url=info.dashboard_url,
        status_page_url=info.status_page_url,
        enabled=enabled,
    )


def build_providers(
    cfg: Config,
    environ: Mapping[str, str] | None = None,
    credential_store: CredentialRepository | None = None,
) -> list[Provider]:
    """Create one provider per enabled entry in the config, in registry order."""
    environ = dict(os.environ if environ is None else environ)
    ctx = ProbeContext(
        cfg=cfg,
        runner=InteractiveRunner(search_config(cfg, environ), settle_seconds=cfg.probes.settle_seconds, environ=environ),
        credential_store=credential_store or FileCredentialStore(cfg.credentials.path),
        environ=environ,
    )
    providers = []
    for name in ProviderName:
        pc = cfg.providers.get(name.value)
        if pc is None or not pc.enabled:
            continue
        providers.append(make_provider(name, _PROBE_FACTORIES[name](ctx)))
    return providers


__all__ = ["PROVIDER_INFO", "Provider", "RefreshState", "build_providers", "make_provider"]
