from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum


class ProviderName(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"
    COPILOT = "copilot"
    ANTIGRAVITY = "antigravity"


class QuotaKind(str, Enum):
    SESSION = "session"
    WEEKLY = "weekly"
    MODEL = "model"


class QuotaStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    DEPLETED = "depleted"

    @classmethod
    def from_percent_remaining(cls, percent: float) -> QuotaStatus:
        if percent > 50:
            return cls.HEALTHY
        if percent > 20:
            return cls.WARNING
        if percent > 0:
            return cls.CRITICAL
        return cls.DEPLETED


class BudgetStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    DEPLETED = "depleted"

    @classmethod
    def from_percent_used(cls, percent: float) -> BudgetStatus:
        if percent < 75:
            return cls.HEALTHY
        if percent < 90:
            return cls.WARNING
        if percent < 100:
            return cls.CRITICAL
        return cls.DEPLETED

    @property
    def quota_status(self) -> QuotaStatus:
        return QuotaStatus(self.value)


class ClaudeAccountType(str, Enum):
    MAX = "max"
    PRO = "pro"
    API = "api"

    @property
    def display_name(self) -> str:
        return {"max": "Claude Max", "pro": "Claude Pro", "api": "API Usage"}[self.value]

    @property
    def badge_text(self) -> str:
        return self.value.upper()


@dataclass(frozen=True)
class QuotaType:
    """Session | Weekly | ModelSpecific(label)."""

    kind: QuotaKind
    label: str | None = None

    @classmethod
    def session(cls) -> QuotaType:
        return cls(QuotaKind.SESSION)

    @classmethod
    def weekly(cls) -> QuotaType:
        return cls(QuotaKind.WEEKLY)

    @classmethod
    def model_specific(cls, label: str) -> QuotaType:
        return cls(QuotaKind.MODEL, label)

    @property
    def display_name(self) -> str:
        if self.kind is QuotaKind.MODEL:
            return self.label or "Model"
        return self.kind.value.capitalize()


@dataclass(frozen=True)
class UsageQuota:
    quota_type: QuotaType
    percent_remaining: float
    resets_at: datetime | None = None
    reset_text: str | None = None

    def __post_init__(self) -> None:
        pct = round(max(0.0, min(100.0, float(self.percent_remaining))), 1)
        object.__setattr__(self, "percent_remaining", pct)

    @property
    def status(self) -> QuotaStatus:
        return QuotaStatus.from_percent_remaining(self.percent_remaining)

    @property
    def reset_description(self) -> str | None:
        if self.reset_text:
            return self.reset_text
        if self.resets_at is None:
            return None
        return f"Resets {self.resets_at.astimezone().strftime('%b %d %H:%M')}"


@dataclass(frozen=True)
class CostUsage:
    total_cost: Decimal
    api_duration: float
    wall_duration: float
    lines_added: int
    lines_removed: int
    provider_id: str = ProviderName.CLAUDE.value
    budget: Decimal | None = None

    def budget_percent_used(self, budget: Decimal) -> float:
        if budget <= 0:
            return 0.0
        return float(self.total_cost / budget * 100)

    def budget_status(self, budget: Decimal) -> BudgetStatus:
        return BudgetStatus.from_percent_used(self.budget_percent_used(budget))

    @property
    def formatted_cost(self) -> str:
        return f"${self.total_cost:,.2f}"

    @property
    def formatted_api_duration(self) -> str:
        return format_duration(self.api_duration)

    @property
    def formatted_wall_duration(self) -> str:
        return format_duration(self.wall_duration)


@dataclass(frozen=True)
class UsageSnapshot:
    provider_id: str
    quotas: tuple[UsageQuota, ...] = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    account_email: str | None = None
    account_type: ClaudeAccountType | None = None
    cost_usage: CostUsage | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quotas", tuple(self.quotas))

    def quota(self, quota_type: QuotaType) -> UsageQuota | None:
        return next((q for q in self.quotas if q.quota_type == quota_type), None)

    @property
    def lowest_quota(self) -> UsageQuota | None:
        return min(self.quotas, key=lambda q: q.percent_remaining, default=None)

    @property
    def overall_status(self) -> QuotaStatus:
        lowest = self.lowest_quota
        if lowest is None:
            return QuotaStatus.HEALTHY
        return lowest.status

    def age(self, now: datetime | None = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return max(timedelta(0), now - self.fetched_at)

    def age_description(self, now: datetime | None = None) -> str:
        seconds = int(self.age(now).total_seconds())
        if seconds < 60:
            return "just now"
        if seconds < 3600:
            return f"{seconds // 60}m ago"
        if seconds < 86400:
            return f"{seconds // 3600}h ago"
        return f"{seconds // 86400}d ago"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"
