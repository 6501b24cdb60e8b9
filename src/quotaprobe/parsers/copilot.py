"""GitHub premium-request billing usage.

The billing endpoint reports a month of line items; only the ones counting
against the Copilot premium-request allowance are summed against the cap.
"""

from __future__ import annotations

from datetime import datetime, timezone

from quotaprobe.errors import ParseFailed
from quotaprobe.models import ProviderName, QuotaType, UsageQuota, UsageSnapshot
from quotaprobe.parsers.common import decode_json

DEFAULT_REQUEST_LIMIT = 2000
DEFAULT_EXCLUDED_PRODUCTS = ("Actions",)
DEFAULT_UNIT = "requests"


def usage_counter_percent(used: float, cap: float) -> float:
    if cap <= 0:
        return 0.0
    return max(0.0, min(100.0, (cap - used) / cap * 100.0))


def _fmt_count(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _next_month(time_period: object) -> datetime | None:
    if not isinstance(time_period, dict):
        return None
    year, month = time_period.get("year"), time_period.get("month")
    if not isinstance(year, int) or not isinstance(month, int) or not 1 <= month <= 12:
        return None
    if month == 12:
        return datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(year, month + 1, 1, tzinfo=timezone.utc)


def parse_usage(
    raw: bytes | str,
    provider_id: str = ProviderName.COPILOT.value,
    cap: int = DEFAULT_REQUEST_LIMIT,
    excluded_products: tuple[str, ...] = DEFAULT_EXCLUDED_PRODUCTS,
    unit: str = DEFAULT_UNIT,
) -> UsageSnapshot:
    data = decode_json(raw)
    items = data.get("usageItems", [])
    if not isinstance(items, list):
        raise ParseFailed("usageItems is not a list")

    excluded = {p.lower() for p in excluded_products}
    used = 0.0
    for item in items:
        if not isinstance(item, dict):
            raise ParseFailed("usage item is not an object")
        if str(item.get("product", "")).lower() in excluded:
            continue
        quantity = item.get("grossQuantity", 0)
        if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
            raise ParseFailed(f"grossQuantity is not a number: {quantity!r}")
        used += float(quantity)

    quota = UsageQuota(
        quota_type=QuotaType.session(),
        percent_remaining=usage_counter_percent(used, cap),
        resets_at=_next_month(data.get("timePeriod")),
        reset_text=f"{_fmt_count(used)}/{cap} {unit}",
    )
    user = data.get("user")
    return UsageSnapshot(
        provider_id=provider_id,
        quotas=(quota,),
        account_email=user if isinstance(user, str) and user else None,
    )
