"""Screen-scrapers for the Claude CLI's ``/usage`` and ``/cost`` views."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import re

from quotaprobe.errors import AuthenticationRequired, ParseFailed
from quotaprobe.models import ClaudeAccountType, CostUsage, ProviderName, QuotaType, UsageQuota, UsageSnapshot
from quotaprobe.parsers.common import strip_ansi

SESSION_HEADER_RE = re.compile(r"^current session\b", re.IGNORECASE)
WEEKLY_ALL_RE = re.compile(r"^current week \(all models\)", re.IGNORECASE)
WEEKLY_MODEL_RE = re.compile(r"^current week \((.+?)\)", re.IGNORECASE)
PERCENT_RE = re.compile(r"([0-9]{1,3}(?:\.[0-9]+)?)\s*%\s*(used|left|remaining)", re.IGNORECASE)
RESETS_RE = re.compile(r"^(Resets?\b.*)$", re.IGNORECASE)
EMAIL_RE = re.compile(r"(?:Email|Account):\s*([^\s@]+@[^\s@]+\.[^\s]+)", re.IGNORECASE)

AUTH_MARKERS = ("invalid api key", "please run /login", "not logged in", "oauth token has expired")
API_ACCOUNT_MARKERS = ("only available for subscription plans", "only available for claude.ai subscribers")

COST_RE = re.compile(r"Total cost:\s*\$\s*([0-9][0-9,]*(?:\.[0-9]+)?)")
API_DURATION_RE = re.compile(r"Total duration \(API\):\s*([^\n]+)")
WALL_DURATION_RE = re.compile(r"Total duration \(wall\):\s*([^\n]+)")
CHANGES_RE = re.compile(r"([0-9,]+) lines? added,\s*([0-9,]+) lines? removed")
DURATION_PART_RE = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*([dhms])\b")
DURATION_UNITS = {"d": 86400.0, "h": 3600.0, "m": 60.0, "s": 1.0}


def detect_account_type(output: str) -> ClaudeAccountType | None:
    lowered = strip_ansi(output).lower()
    if any(marker in lowered for marker in API_ACCOUNT_MARKERS):
        return ClaudeAccountType.API
    if "claude max" in lowered:
        return ClaudeAccountType.MAX
    if "claude pro" in lowered:
        return ClaudeAccountType.PRO
    return None


def _check_auth(lowered: str) -> None:
    if any(marker in lowered for marker in AUTH_MARKERS):
        raise AuthenticationRequired("Claude CLI is not logged in; run `claude` and /login")


def _section_type(line: str) -> QuotaType | None:
    if SESSION_HEADER_RE.match(line):
        return QuotaType.session()
    if WEEKLY_ALL_RE.match(line):
        return QuotaType.weekly()
    m = WEEKLY_MODEL_RE.match(line)
    if m:
        label = re.sub(r"\s+only$", "", m.group(1).strip(), flags=re.IGNORECASE)
        return QuotaType.model_specific(label)
    return None


def parse_usage(output: str, provider_id: str = ProviderName.CLAUDE.value) -> UsageSnapshot:
    text = strip_ansi(output)
    _check_auth(text.lower())

    lines = [line.strip() for line in text.splitlines()]
    quotas: list[UsageQuota] = []
    seen: set[QuotaType] = set()
    for i, line in enumerate(lines):
        quota_type = _section_type(line)
        if quota_type is None or quota_type in seen:
            continue
        percent: float | None = None
        reset_text: str | None = None
        for follow in lines[i + 1 : i + 6]:
            if _section_type(follow) is not None:
                break
            m = PERCENT_RE.search(follow)
            if m and percent is None:
                value = float(m.group(1))
                percent = 100.0 - value if m.group(2).lower() == "used" else value
                continue
            m = RESETS_RE.match(follow)
            if m and reset_text is None:
                reset_text = m.group(1).strip()
        if percent is None:
            continue
        seen.add(quota_type)
        quotas.append(UsageQuota(quota_type=quota_type, percent_remaining=percent, reset_text=reset_text))

    if not quotas:
        raise ParseFailed("no quota sections in claude /usage output")

    email = EMAIL_RE.search(text)
    return UsageSnapshot(
        provider_id=provider_id,
        quotas=tuple(quotas),
        account_email=email.group(1) if email else None,
        account_type=detect_account_type(text),
    )


def parse_duration(text: str) -> float:
    return sum(float(value) * DURATION_UNITS[unit] for value, unit in DURATION_PART_RE.findall(text))


def parse_cost(output: str, provider_id: str = ProviderName.CLAUDE.value) -> CostUsage:
    text = strip_ansi(output)
    _check_auth(text.lower())

    cost = COST_RE.search(text)
    if cost is None:
        raise ParseFailed("no total cost in claude /cost output")
    try:
        total = Decimal(cost.group(1).replace(",", ""))
    except InvalidOperation as exc:
        raise ParseFailed(f"bad cost value: {cost.group(1)}") from exc

    api = API_DURATION_RE.search(text)
    wall = WALL_DURATION_RE.search(text)
    changes = CHANGES_RE.search(text)
    return CostUsage(
        total_cost=total,
        api_duration=parse_duration(api.group(1)) if api else 0.0,
        wall_duration=parse_duration(wall.group(1)) if wall else 0.0,
        lines_added=int(changes.group(1).replace(",", "")) if changes else 0,
        lines_removed=int(changes.group(2).replace(",", "")) if changes else 0,
        provider_id=provider_id,
    )


def cost_snapshot(output: str, provider_id: str = ProviderName.CLAUDE.value) -> UsageSnapshot:
    email = EMAIL_RE.search(strip_ansi(output))
    return UsageSnapshot(
        provider_id=provider_id,
        account_email=email.group(1) if email else None,
        account_type=ClaudeAccountType.API,
        cost_usage=parse_cost(output, provider_id),
    )
