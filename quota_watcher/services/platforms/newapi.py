"""NewAPI quota adapter."""

from typing import Any, Optional

from pydantic import BaseModel, field_validator

from ...models.platforms import Credentials, PlatformType
from ...models.quota import QuotaSnapshot
from ..errors import FetchError
from .base import BasePlatformAdapter
from .parsing import to_float

# NewAPI reports quota in units of 1/500000 USD
QUOTA_UNITS_PER_USD = 500_000
DEFAULT_PLAN_NAME = "Default plan"


class NewApiUserData(BaseModel):
    """`data` object of /api/user/self."""
    group: Optional[str] = None
    quota: float = 0.0
    used_quota: float = 0.0

    @field_validator("quota", "used_quota", mode="before")
    @classmethod
    def _number(cls, value):
        return to_float(value)

    @field_validator("group", mode="before")
    @classmethod
    def _group(cls, value):
        return str(value) if value not in (None, "") else None


class NewApiResponse(BaseModel):
    """Response of GET /api/user/self."""
    success: Optional[bool] = None
    message: Optional[str] = None
    data: Optional[NewApiUserData] = None


class NewApiAdapter(BasePlatformAdapter):
    """Fetches account quota from NewAPI-compatible dashboards."""

    platform_type = PlatformType.NEWAPI
    api_path = "/api/user/self"
    user_header = "New-Api-User"

    def build_headers(self, credentials: Credentials) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.access_token}",
            self.user_header: credentials.user_id,
            "Content-Type": "application/json",
        }

    def _parse_response(self, data: dict[str, Any]) -> QuotaSnapshot:
        response = NewApiResponse.model_validate(data)
        if response.success is False or response.data is None:
            raise FetchError(response.message or "Query failed")

        user = response.data
        return QuotaSnapshot.build(
            user.group or DEFAULT_PLAN_NAME,
            remaining=user.quota / QUOTA_UNITS_PER_USD,
            used=user.used_quota / QUOTA_UNITS_PER_USD,
        )
