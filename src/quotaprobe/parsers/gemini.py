from __future__ import annotations

from quotaprobe.errors import ParseFailed
from quotaprobe.models import ProviderName, QuotaType, UsageQuota, UsageSnapshot
from quotaprobe.parsers.common import decode_json, fraction_to_percent, parse_iso

CLI_PROJECT_PREFIX = "gen-lang-client"
GENERATIVE_LANGUAGE_LABEL = "generative-language"


def parse_quota(
    raw: bytes | str,
    provider_id: str = ProviderName.GEMINI.value,
    account_email: str | None = None,
) -> UsageSnapshot:
    data = decode_json(raw)
    buckets = data.get("buckets")
    if not isinstance(buckets, list):
        raise ParseFailed("response has no buckets")

    lowest: dict[str, UsageQuota] = {}
    for bucket in buckets:
        if not isinstance(bucket, dict):
            raise ParseFailed("bucket is not an object")
        model = bucket.get("modelId")
        if not isinstance(model, str) or "remainingFraction" not in bucket:
            continue
        quota = UsageQuota(
            quota_type=QuotaType.model_specific(model),
            percent_remaining=fraction_to_percent(bucket["remainingFraction"]),
            resets_at=parse_iso(bucket.get("resetTime")),
        )
        current = lowest.get(model)
        if current is None or quota.percent_remaining < current.percent_remaining:
            lowest[model] = quota

    if not lowest:
        raise ParseFailed("no quota buckets with remainingFraction")
    return UsageSnapshot(
        provider_id=provider_id,
        quotas=tuple(lowest[m] for m in sorted(lowest)),
        account_email=account_email,
    )


def best_project_id(raw: bytes | str) -> str | None:
    """Prefer a CLI-created project, then any project labelled for the Generative Language API."""
    data = decode_json(raw)
    raw_projects = data.get("projects", [])
    if not isinstance(raw_projects, list):
        raise ParseFailed("projects is not a list")
    projects = [p for p in raw_projects if isinstance(p, dict) and isinstance(p.get("projectId"), str)]
    for project in projects:
        if project["projectId"].startswith(CLI_PROJECT_PREFIX):
            return project["projectId"]
    for project in projects:
        if GENERATIVE_LANGUAGE_LABEL in (project.get("labels") or {}):
            return project["projectId"]
    return None
