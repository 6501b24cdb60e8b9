from __future__ import annotations

from quotaprobe.errors import ParseFailed
from quotaprobe.models import ProviderName, QuotaType, UsageQuota, UsageSnapshot
from quotaprobe.parsers.common import decode_json, fraction_to_percent, parse_iso


def _model_configs(data: dict) -> list:
    user_status = data.get("userStatus")
    if isinstance(user_status, dict):
        cascade = user_status.get("cascadeModelConfigData")
        configs = cascade.get("clientModelConfigs") if isinstance(cascade, dict) else None
        if isinstance(configs, list):
            return configs
    configs = data.get("clientModelConfigs")
    if isinstance(configs, list):
        return configs
    raise ParseFailed("response has no clientModelConfigs")


def _model_name(model_or_alias: object) -> str | None:
    if isinstance(model_or_alias, dict):
        model = model_or_alias.get("model")
        return model if isinstance(model, str) else None
    if isinstance(model_or_alias, str):
        return model_or_alias
    return None


def parse_user_status(raw: bytes | str, provider_id: str = ProviderName.ANTIGRAVITY.value) -> UsageSnapshot:
    data = decode_json(raw)
    quotas: list[UsageQuota] = []
    for config in _model_configs(data):
        if not isinstance(config, dict):
            continue
        info = config.get("quotaInfo")
        if not isinstance(info, dict):
            continue
        label = config.get("label") or _model_name(config.get("modelOrAlias")) or "Unknown model"
        # An exhausted model drops remainingFraction entirely.
        fraction = info.get("remainingFraction", 0.0)
        quotas.append(
            UsageQuota(
                quota_type=QuotaType.model_specific(str(label)),
                percent_remaining=fraction_to_percent(fraction),
                resets_at=parse_iso(info.get("resetTime")),
            )
        )

    if not quotas:
        raise ParseFailed("no model carries quota information")

    email = None
    user_status = data.get("userStatus")
    if isinstance(user_status, dict) and isinstance(user_status.get("email"), str):
        email = user_status["email"] or None
    return UsageSnapshot(provider_id=provider_id, quotas=tuple(quotas), account_email=email)
