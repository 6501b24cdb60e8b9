from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
import json

from quotaprobe.models import ClaudeAccountType, CostUsage, QuotaKind, QuotaType, UsageQuota, UsageSnapshot


def _json_default(obj):
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"not serializable: {type(obj)!r}")


def snapshot_to_json(snapshots: dict[str, UsageSnapshot]) -> str:
    payload = {pid: asdict(snap) for pid, snap in snapshots.items()}
    return json.dumps(payload, default=_json_default, indent=2)


def write_snapshot_file(path: str | Path, snapshots: dict[str, UsageSnapshot]) -> None:
    state_file = Path(path)
    state_file.parent.mkdir(parents=True, exist_ok=True)
    state_file.write_text(snapshot_to_json(snapshots))


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _quota_from_dict(item: dict) -> UsageQuota:
    qt = item["quota_type"]
    return UsageQuota(
        quota_type=QuotaType(QuotaKind(qt["kind"]), qt.get("label")),
        percent_remaining=item["percent_remaining"],
        resets_at=_dt(item.get("resets_at")),
        reset_text=item.get("reset_text"),
    )


def _cost_from_dict(item: dict | None) -> CostUsage | None:
    if not item:
        return None
    return CostUsage(
        total_cost=Decimal(item["total_cost"]),
        api_duration=item["api_duration"],
        wall_duration=item["wall_duration"],
        lines_added=item["lines_added"],
        lines_removed=item["lines_removed"],
        provider_id=item["provider_id"],
        budget=Decimal(item["budget"]) if item.get("budget") is not None else None,
    )


def snapshots_from_json(body: str) -> dict[str, UsageSnapshot]:
    raw = json.loads(body)
    out: dict[str, UsageSnapshot] = {}
    for pid, item in raw.items():
        out[pid] = UsageSnapshot(
            provider_id=item["provider_id"],
            quotas=tuple(_quota_from_dict(q) for q in item.get("quotas", [])),
            fetched_at=datetime.fromisoformat(item["fetched_at"]),
            account_email=item.get("account_email"),
            account_type=ClaudeAccountType(item["account_type"]) if item.get("account_type") else None,
            cost_usage=_cost_from_dict(item.get("cost_usage")),
        )
    return out


def read_snapshot(path: str | Path) -> dict[str, UsageSnapshot]:
    return snapshots_from_json(Path(path).read_text())
