from __future__ import annotations

from datetime import datetime, timedelta
import re

from quotaprobe.errors import AuthenticationRequired, ParseFailed
from quotaprobe.models import ProviderName, QuotaType, UsageQuota, UsageSnapshot
from quotaprobe.parsers.common import strip_ansi

FIVE_HOUR_RE = re.compile(r"5h limit:\s*(?:\[[^\]]*\])?\s*([0-9]{1,3})% left(?:\s*\(resets ([^)]+)\))?")
WEEKLY_RE = re.compile(r"Weekly limit:\s*(?:\[[^\]]*\])?\s*([0-9]{1,3})% left(?:\s*\(resets ([^)]+)\))?")
CLOCK_RE = re.compile(r"^([0-9]{1,2}:[0-9]{2})$")
CLOCK_ON_DAY_RE = re.compile(r"^([0-9]{1,2}:[0-9]{2}) on ([0-9]{1,2} [A-Za-z]{3})$")
ACCOUNT_RE = re.compile(r"Account:\s*([^\s()]+@[^\s()]+)")
AUTH_MARKERS = ("not logged in", "codex login", "sign in with chatgpt")


def _reset_at(text: str | None, now: datetime) -> datetime | None:
    if not text:
        return None
    text = text.strip()
    m = CLOCK_RE.match(text)
    if m:
        clock = datetime.strptime(m.group(1), "%H:%M").time()
        reset = datetime.combine(now.date(), clock).astimezone()
        return reset if reset >= now else reset + timedelta(days=1)
    m = CLOCK_ON_DAY_RE.match(text)
    if m:
        try:
            reset = datetime.strptime(f"{m.group(2)} {now.year} {m.group(1)}", "%d %b %Y %H:%M").astimezone()
        except ValueError:
            return None
        if reset < now - timedelta(days=1):
            reset = reset.replace(year=reset.year + 1)
        return reset
    return None


def _quota(match: re.Match, quota_type: QuotaType, now: datetime) -> UsageQuota:
    reset = match.group(2)
    return UsageQuota(
        quota_type=quota_type,
        percent_remaining=float(match.group(1)),
        resets_at=_reset_at(reset, now),
        reset_text=f"Resets {reset.strip()}" if reset else None,
    )


def parse_status(
    output: str,
    provider_id: str = ProviderName.CODEX.value,
    now: datetime | None = None,
) -> UsageSnapshot:
    now = now or datetime.now().astimezone()
    text = strip_ansi(output)
    lowered = text.lower()

    quotas: list[UsageQuota] = []
    m = FIVE_HOUR_RE.search(text)
    if m:
        quotas.append(_quota(m, QuotaType.session(), now))
    m = WEEKLY_RE.search(text)
    if m:
        quotas.append(_quota(m, QuotaType.weekly(), now))

    if not quotas:
        if any(marker in lowered for marker in AUTH_MARKERS):
            raise AuthenticationRequired("Codex is not logged in; run `codex login`")
        raise ParseFailed("no rate limit lines in codex /status output")

    account = ACCOUNT_RE.search(text)
    return UsageSnapshot(
        provider_id=provider_id,
        quotas=tuple(quotas),
        account_email=account.group(1) if account else None,
    )
