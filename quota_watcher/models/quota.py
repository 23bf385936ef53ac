"""
Normalized quota models.

DATA STRUCTURES:
- BudgetPeriod: one accounting window (daily, weekly, five-hour, ...) with its
  own budget/spent/remaining/percentage figures
- ExtendedQuotaData: optional per-platform payload. Each platform that exposes
  more than a single total gets its own variant (PackyCodeExtendedData,
  CubenceExtendedData); callers that only need the periods use periods()
- QuotaSnapshot: the normalized unit every adapter produces
- QuotaResult: success/failure wrapper returned by adapters

All snapshot types are frozen. A new fetch produces a new snapshot; the
previous one is never mutated.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

from .platforms import PlatformType


def _percentage(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return max(0.0, part / whole * 100.0)


class PeriodKind(str, Enum):
    """Named budget periods."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    FIVE_HOUR = "five_hour"
    API_KEY = "api_key"

    @property
    def display_name(self) -> str:
        names = {
            self.DAILY: "Daily",
            self.WEEKLY: "Weekly",
            self.MONTHLY: "Monthly",
            self.FIVE_HOUR: "5 hours",
            self.API_KEY: "API key",
        }
        return names.get(self, self.value)


@dataclass(frozen=True)
class BudgetPeriod:
    """
    Budget figures for one accounting window.

    Fields:
        budget: Total budget for the window (USD)
        spent: Amount spent in the window (USD)
        remaining: budget - spent
        percentage: spent / budget * 100, 0 when budget is 0. Never below 0
            but may exceed 100 when the budget is overspent
        reset_at: Instant after which the window counters reset (if known)
    """
    budget: float
    spent: float
    remaining: float
    percentage: float
    reset_at: Optional[datetime] = None

    @classmethod
    def from_spent(cls, budget: float, spent: float, reset_at: Optional[datetime] = None) -> "BudgetPeriod":
        """Build a period from budget and spent, deriving the rest."""
        return cls(
            budget=budget,
            spent=spent,
            remaining=budget - spent,
            percentage=_percentage(spent, budget),
            reset_at=reset_at,
        )

    @classmethod
    def from_remaining(cls, budget: float, remaining: float, reset_at: Optional[datetime] = None) -> "BudgetPeriod":
        """Build a period from budget and the upstream remaining amount."""
        spent = budget - remaining
        return cls(
            budget=budget,
            spent=spent,
            remaining=remaining,
            percentage=_percentage(spent, budget),
            reset_at=reset_at,
        )


@dataclass(frozen=True)
class ExtendedQuotaData:
    """Base for platform-specific extended payloads."""
    kind: ClassVar[Optional[PlatformType]] = None

    balance_usd: Optional[float] = None

    def periods(self) -> list[tuple[PeriodKind, BudgetPeriod]]:
        """Populated budget periods, in display order."""
        return []


@dataclass(frozen=True)
class PackyCodeExtendedData(ExtendedQuotaData):
    """Account, plan and budget data returned by PackyCode monthly plans."""
    kind: ClassVar[Optional[PlatformType]] = PlatformType.PACKYCODE

    username: Optional[str] = None
    email: Optional[str] = None
    plan_type: Optional[str] = None
    plan_expires_at: Optional[datetime] = None
    total_spent_usd: Optional[float] = None
    daily: Optional[BudgetPeriod] = None
    weekly: Optional[BudgetPeriod] = None
    monthly: Optional[BudgetPeriod] = None
    weekly_window_start: Optional[datetime] = None
    weekly_window_end: Optional[datetime] = None
    total_quota: Optional[float] = None
    used_quota: Optional[float] = None
    remaining_quota: Optional[float] = None

    def periods(self) -> list[tuple[PeriodKind, BudgetPeriod]]:
        pairs = [
            (PeriodKind.DAILY, self.daily),
            (PeriodKind.WEEKLY, self.weekly),
            (PeriodKind.MONTHLY, self.monthly),
        ]
        return [(kind, period) for kind, period in pairs if period is not None]


@dataclass(frozen=True)
class CubenceExtendedData(ExtendedQuotaData):
    """Subscription windows and API key quota returned by Cubence."""
    kind: ClassVar[Optional[PlatformType]] = PlatformType.CUBENCE

    five_hour: Optional[BudgetPeriod] = None
    weekly: Optional[BudgetPeriod] = None
    api_key_quota: Optional[BudgetPeriod] = None

    def periods(self) -> list[tuple[PeriodKind, BudgetPeriod]]:
        pairs = [
            (PeriodKind.FIVE_HOUR, self.five_hour),
            (PeriodKind.WEEKLY, self.weekly),
            (PeriodKind.API_KEY, self.api_key_quota),
        ]
        return [(kind, period) for kind, period in pairs if period is not None]


@dataclass(frozen=True)
class QuotaSnapshot:
    """
    Normalized point-in-time view of one account's credit.

    Invariants: total == used + remaining, percentage == used / total * 100
    (0 when total is not positive).
    """
    plan_name: str
    used: float
    total: float
    remaining: float
    percentage: float
    extended: Optional[ExtendedQuotaData] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), compare=False)

    @classmethod
    def build(
        cls,
        plan_name: str,
        *,
        used: Optional[float] = None,
        total: Optional[float] = None,
        remaining: Optional[float] = None,
        extended: Optional[ExtendedQuotaData] = None,
    ) -> "QuotaSnapshot":
        """
        Build a snapshot from any two of used/total/remaining.

        The missing figure is derived so the invariants always hold.
        """
        known = sum(value is not None for value in (used, total, remaining))
        if known < 2:
            raise ValueError("At least two of used, total and remaining are required")

        if total is None:
            total = used + remaining
        elif used is None:
            used = total - remaining
        else:
            remaining = total - used

        return cls(
            plan_name=plan_name,
            used=used,
            total=total,
            remaining=remaining,
            percentage=_percentage(used, total),
            extended=extended,
        )

    @property
    def remaining_percentage(self) -> float:
        """Share of the total still available (0-100)."""
        if self.total <= 0:
            return 0.0
        return self.remaining / self.total * 100.0

    def periods(self) -> list[tuple[PeriodKind, BudgetPeriod]]:
        """Budget periods of the extended payload, if any."""
        if self.extended is None:
            return []
        return self.extended.periods()


@dataclass(frozen=True)
class QuotaResult:
    """Adapter outcome: a snapshot on success, an error message on failure."""
    snapshot: Optional[QuotaSnapshot] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.snapshot is not None and self.error is None

    @classmethod
    def ok(cls, snapshot: QuotaSnapshot) -> "QuotaResult":
        return cls(snapshot=snapshot)

    @classmethod
    def failure(cls, message: str) -> "QuotaResult":
        return cls(error=message or "Unknown error")
