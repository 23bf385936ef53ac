"""PackyCode monthly (Codex subscription) quota adapter.

The users/info endpoint returns USD amounts directly, encoded as strings.
The status bar shows the daily budget; weekly and monthly budgets, balance
and plan information go into the extended payload.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...models.platforms import Credentials, PlatformType
from ...models.quota import BudgetPeriod, PackyCodeExtendedData, QuotaSnapshot
from ..errors import FetchError
from ..http_transport import HttpResponse
from .base import BasePlatformAdapter, auth_failure_message
from .parsing import parse_datetime, to_float, to_optional_str

DEFAULT_PLAN_NAME = "Codex Monthly"

PLAN_NAMES = {
    "basic": "Basic",
    "pro": "Pro",
    "premium": "Premium",
    "enterprise": "Enterprise",
}

_USD_FIELDS = (
    "balance_usd",
    "total_spent_usd",
    "daily_budget_usd",
    "daily_spent_usd",
    "weekly_budget_usd",
    "weekly_spent_usd",
    "monthly_budget_usd",
    "monthly_spent_usd",
)


class PackyCodeUserInfo(BaseModel):
    """Response of GET /api/backend/users/info."""
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    plan_type: Optional[str] = None
    plan_expires_at: Optional[datetime] = None

    balance_usd: float = 0.0
    total_spent_usd: float = 0.0
    daily_budget_usd: float = 0.0
    daily_spent_usd: float = 0.0
    weekly_budget_usd: float = 0.0
    weekly_spent_usd: float = 0.0
    monthly_budget_usd: float = 0.0
    monthly_spent_usd: float = 0.0

    weekly_window_start: Optional[datetime] = None
    weekly_window_end: Optional[datetime] = None

    total_quota: Optional[float] = None
    used_quota: Optional[float] = None
    remaining_quota: Optional[float] = None

    @field_validator(*_USD_FIELDS, mode="before")
    @classmethod
    def _usd(cls, value):
        return to_float(value)

    @field_validator("user_id", "username", "email", "plan_type", mode="before")
    @classmethod
    def _text(cls, value):
        return to_optional_str(value)

    @field_validator("plan_expires_at", "weekly_window_start", "weekly_window_end", mode="before")
    @classmethod
    def _datetime(cls, value):
        return parse_datetime(value)

    @field_validator("total_quota", "used_quota", "remaining_quota", mode="before")
    @classmethod
    def _optional_number(cls, value):
        return None if value is None else to_float(value)


def plan_display_name(plan_type: Optional[str]) -> str:
    if not plan_type:
        return DEFAULT_PLAN_NAME
    return PLAN_NAMES.get(plan_type.lower(), plan_type)


class PackyCodeMonthlyAdapter(BasePlatformAdapter):
    """Fetches daily/weekly/monthly budgets from PackyCode."""

    platform_type = PlatformType.PACKYCODE
    api_path = "/api/backend/users/info"

    def build_headers(self, credentials: Credentials) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, credentials: Credentials) -> HttpResponse:
        try:
            return await super()._request(credentials)
        except FetchError as e:
            message = auth_failure_message(e)
            if message:
                raise FetchError(message, status=e.status) from e
            raise

    def _parse_response(self, data: dict[str, Any]) -> QuotaSnapshot:
        info = PackyCodeUserInfo.model_validate(data)

        daily = BudgetPeriod.from_spent(info.daily_budget_usd, info.daily_spent_usd)
        extended = PackyCodeExtendedData(
            username=info.username,
            email=info.email,
            plan_type=info.plan_type,
            plan_expires_at=info.plan_expires_at,
            balance_usd=info.balance_usd,
            total_spent_usd=info.total_spent_usd,
            daily=daily,
            weekly=BudgetPeriod.from_spent(info.weekly_budget_usd, info.weekly_spent_usd),
            monthly=BudgetPeriod.from_spent(info.monthly_budget_usd, info.monthly_spent_usd),
            weekly_window_start=info.weekly_window_start,
            weekly_window_end=info.weekly_window_end,
            total_quota=info.total_quota,
            used_quota=info.used_quota,
            remaining_quota=info.remaining_quota,
        )

        return QuotaSnapshot.build(
            plan_display_name(info.plan_type),
            used=daily.spent,
            total=daily.budget,
            extended=extended,
        )
