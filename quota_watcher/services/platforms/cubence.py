"""Cubence quota adapter.

Subscription windows are reported in units (1,000,000 units = 1 USD); the
API key quota and the balance carry separate dollar fields. The five-hour
window is the primary figure. For both windows `used` is derived as
`limit - remaining` from the raw remaining value, even when the body also
carries a `used` field.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models.platforms import Credentials, PlatformType
from ...models.quota import BudgetPeriod, CubenceExtendedData, QuotaSnapshot
from .base import BasePlatformAdapter
from .parsing import from_timestamp, to_float

UNITS_PER_USD = 1_000_000
PLAN_NAME = "Cubence"


def units_to_usd(units: float) -> float:
    return units / UNITS_PER_USD


class _CubenceModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CubenceWindow(_CubenceModel):
    limit: float = 0.0
    remaining: float = 0.0
    used: float = 0.0
    reset_at: Optional[float] = None

    @field_validator("limit", "remaining", "used", mode="before")
    @classmethod
    def _units(cls, value):
        return to_float(value)

    @field_validator("reset_at", mode="before")
    @classmethod
    def _timestamp(cls, value):
        return to_float(value) or None

    def to_period(self) -> BudgetPeriod:
        return BudgetPeriod.from_remaining(
            units_to_usd(self.limit),
            units_to_usd(self.remaining),
            reset_at=from_timestamp(self.reset_at),
        )


class CubenceSubscriptionWindow(_CubenceModel):
    five_hour: CubenceWindow = Field(default_factory=CubenceWindow)
    weekly: CubenceWindow = Field(default_factory=CubenceWindow)

    @field_validator("five_hour", "weekly", mode="before")
    @classmethod
    def _window(cls, value):
        return value or {}


class CubenceApiKeyQuota(_CubenceModel):
    quota_limit_dollar: float = 0.0
    quota_used_dollar: float = 0.0
    remaining_dollar: float = 0.0

    @field_validator("quota_limit_dollar", "quota_used_dollar", "remaining_dollar", mode="before")
    @classmethod
    def _dollars(cls, value):
        return to_float(value)


class CubenceBalance(_CubenceModel):
    amount_dollar: float = 0.0

    @field_validator("amount_dollar", mode="before")
    @classmethod
    def _dollars(cls, value):
        return to_float(value)


class CubenceSubscriptionInfo(_CubenceModel):
    """Response of GET /api/v1/user/subscription-info."""
    api_key_quota: CubenceApiKeyQuota = Field(default_factory=CubenceApiKeyQuota)
    normal_balance: CubenceBalance = Field(default_factory=CubenceBalance)
    subscription_window: CubenceSubscriptionWindow = Field(default_factory=CubenceSubscriptionWindow)
    timestamp: Optional[float] = None

    @field_validator("api_key_quota", "normal_balance", "subscription_window", mode="before")
    @classmethod
    def _nested(cls, value):
        return value or {}


class CubenceAdapter(BasePlatformAdapter):
    """Fetches subscription windows from Cubence."""

    platform_type = PlatformType.CUBENCE
    api_path = "/api/v1/user/subscription-info"

    def build_headers(self, credentials: Credentials) -> dict[str, str]:
        # Cubence expects the raw token, no "Bearer" prefix
        return {"Authorization": credentials.access_token}

    def _parse_response(self, data: dict[str, Any]) -> QuotaSnapshot:
        info = CubenceSubscriptionInfo.model_validate(data)

        five_hour = info.subscription_window.five_hour.to_period()
        api_key = info.api_key_quota
        extended = CubenceExtendedData(
            balance_usd=info.normal_balance.amount_dollar,
            five_hour=five_hour,
            weekly=info.subscription_window.weekly.to_period(),
            api_key_quota=BudgetPeriod.from_spent(api_key.quota_limit_dollar, api_key.quota_used_dollar),
        )

        return QuotaSnapshot.build(
            PLAN_NAME,
            total=five_hour.budget,
            remaining=five_hour.remaining,
            extended=extended,
        )
