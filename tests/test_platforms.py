"""Tests for the platform adapters and the adapter registry."""

from datetime import datetime, timezone

import pytest
from conftest import BASE_URL, cubence_body, json_response, newapi_body

from quota_watcher.models import CubenceExtendedData, PackyCodeExtendedData, PlatformType
from quota_watcher.models.platforms import Credentials
from quota_watcher.services.errors import UnknownPlatformError
from quota_watcher.services.http_transport import HttpResponse
from quota_watcher.services.platforms import (
    AdapterRegistry,
    CubenceAdapter,
    NewApiAdapter,
    PackyAPIAdapter,
    PackyCodeMonthlyAdapter,
)


class TestNewApiAdapter:
    @pytest.mark.asyncio
    async def test_converts_quota_units(self, transport, newapi_credentials):
        transport.queue(json_response({"data": {"quota": 250000, "used_quota": 750000}}))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)

        assert result.success
        snapshot = result.snapshot
        assert snapshot.remaining == pytest.approx(0.5)
        assert snapshot.used == pytest.approx(1.5)
        assert snapshot.total == pytest.approx(2.0)
        assert snapshot.percentage == pytest.approx(75.0)
        assert snapshot.plan_name == "Default plan"
        assert snapshot.extended is None

    @pytest.mark.asyncio
    async def test_request_url_and_headers(self, transport, newapi_credentials):
        transport.queue(json_response(newapi_body()))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)

        assert result.snapshot.plan_name == "vip"
        call = transport.get_calls[0]
        assert call["url"] == f"{BASE_URL}/api/user/self"
        assert call["headers"]["Authorization"] == "Bearer sk-test"
        assert call["headers"]["New-Api-User"] == "42"

    @pytest.mark.asyncio
    async def test_unsuccessful_body(self, transport, newapi_credentials):
        transport.queue(json_response({"success": False, "message": "invalid token"}))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)
        assert not result.success
        assert result.error == "invalid token"

    @pytest.mark.asyncio
    async def test_missing_data(self, transport, newapi_credentials):
        transport.queue(json_response({"success": True}))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)
        assert result.error == "Query failed"

    @pytest.mark.asyncio
    async def test_http_error_status(self, transport, newapi_credentials):
        transport.queue(HttpResponse(status=502, body="Bad Gateway"))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)
        assert result.error == "HTTP 502: Bad Gateway"

    @pytest.mark.asyncio
    async def test_long_error_body_is_truncated(self, transport, newapi_credentials):
        transport.queue(HttpResponse(status=500, body="x" * 1000))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)
        assert len(result.error) < 250

    @pytest.mark.asyncio
    async def test_malformed_json(self, transport, newapi_credentials):
        transport.queue(HttpResponse(status=200, body="<html>"))
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)
        assert result.error.startswith("Failed to parse response")

    @pytest.mark.asyncio
    async def test_transport_error(self, transport, newapi_credentials, timeout_error):
        transport.queue(timeout_error)
        result = await NewApiAdapter(transport).fetch_quota(newapi_credentials)
        assert result.error == "Request timed out after 15s"

    def test_validate_credentials(self, transport):
        validation = NewApiAdapter(transport).validate_credentials(Credentials(base_url=BASE_URL))
        assert not validation.valid
        assert validation.missing == ["accessToken", "userId"]

    @pytest.mark.asyncio
    async def test_connection_reports_missing_fields(self, transport):
        result = await NewApiAdapter(transport).test_connection(Credentials(base_url=BASE_URL, access_token="t"))
        assert not result.success
        assert result.message == "Missing required fields: userId"
        assert transport.get_calls == []

    @pytest.mark.asyncio
    async def test_connection_success(self, transport, newapi_credentials):
        transport.queue(json_response(newapi_body()))
        result = await NewApiAdapter(transport).test_connection(newapi_credentials)
        assert result.success
        assert result.message == "Connection successful"


@pytest.mark.asyncio
async def test_packyapi_uses_newapi_protocol(transport, newapi_credentials):
    transport.queue(json_response(newapi_body(quota=500000, used_quota=0)))
    adapter = PackyAPIAdapter(transport)
    result = await adapter.fetch_quota(newapi_credentials)

    assert adapter.name == "PackyAPI"
    assert result.snapshot.total == pytest.approx(1.0)
    assert transport.get_calls[0]["headers"]["New-Api-User"] == "42"


class TestPackyCodeMonthlyAdapter:
    BODY = {
        "username": "alice",
        "email": "alice@example.com",
        "plan_type": "pro",
        "plan_expires_at": "2030-01-01T00:00:00Z",
        "balance_usd": "12.50",
        "total_spent_usd": "40",
        "daily_budget_usd": "20.00",
        "daily_spent_usd": "5.00",
        "weekly_budget_usd": "100",
        "weekly_spent_usd": "not-a-number",
        "monthly_budget_usd": 300,
        "monthly_spent_usd": None,
    }

    @pytest.mark.asyncio
    async def test_daily_period_is_primary(self, transport):
        transport.queue(json_response(self.BODY))
        credentials = Credentials(base_url="https://codex.example.com", access_token="tok")
        result = await PackyCodeMonthlyAdapter(transport).fetch_quota(credentials)

        snapshot = result.snapshot
        assert snapshot.plan_name == "Pro"
        assert snapshot.used == pytest.approx(5.0)
        assert snapshot.total == pytest.approx(20.0)
        assert snapshot.remaining == pytest.approx(15.0)
        assert snapshot.percentage == pytest.approx(25.0)

        extended = snapshot.extended
        assert isinstance(extended, PackyCodeExtendedData)
        assert extended.username == "alice"
        assert extended.balance_usd == pytest.approx(12.5)
        assert extended.weekly.spent == 0.0
        assert extended.monthly.budget == pytest.approx(300.0)
        assert extended.plan_expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_bearer_auth(self, transport):
        transport.queue(json_response(self.BODY))
        await PackyCodeMonthlyAdapter(transport).fetch_quota(
            Credentials(base_url="https://codex.example.com/", access_token="tok")
        )
        call = transport.get_calls[0]
        assert call["url"] == "https://codex.example.com/api/backend/users/info"
        assert call["headers"]["Authorization"] == "Bearer tok"
        assert "New-Api-User" not in call["headers"]

    def test_base_url_is_required(self, transport):
        validation = PackyCodeMonthlyAdapter(transport).validate_credentials(Credentials(access_token="tok"))
        assert not validation.valid
        assert validation.missing == ["baseUrl"]

    @pytest.mark.asyncio
    async def test_auth_failure_message(self, transport):
        transport.queue(HttpResponse(status=401, body="unauthorized"))
        result = await PackyCodeMonthlyAdapter(transport).fetch_quota(
            Credentials(base_url="https://codex.example.com", access_token="tok")
        )
        assert "access token" in result.error

    @pytest.mark.asyncio
    async def test_unknown_plan_type_is_kept(self, transport):
        transport.queue(json_response({"plan_type": "team", "daily_budget_usd": "1"}))
        result = await PackyCodeMonthlyAdapter(transport).fetch_quota(
            Credentials(base_url="https://codex.example.com", access_token="tok")
        )
        assert result.snapshot.plan_name == "team"


class TestCubenceAdapter:
    @pytest.mark.asyncio
    async def test_five_hour_window_is_primary(self, transport):
        transport.queue(json_response(cubence_body()))
        result = await CubenceAdapter(transport).fetch_quota(
            Credentials(base_url="https://cubence.example.com", access_token="raw-token")
        )

        snapshot = result.snapshot
        assert snapshot.total == pytest.approx(5.0)
        assert snapshot.remaining == pytest.approx(2.0)
        assert snapshot.used == pytest.approx(3.0)
        assert snapshot.percentage == pytest.approx(60.0)

        extended = snapshot.extended
        assert isinstance(extended, CubenceExtendedData)
        assert extended.balance_usd == pytest.approx(12.5)
        assert extended.five_hour.reset_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
        # used is derived from limit - remaining, the body's used field is ignored
        assert extended.weekly.spent == pytest.approx(5.0)
        assert extended.weekly.remaining == pytest.approx(15.0)
        assert extended.api_key_quota.remaining == pytest.approx(6.0)
        assert extended.api_key_quota.percentage == pytest.approx(40.0)

    @pytest.mark.asyncio
    async def test_raw_authorization_header(self, transport):
        transport.queue(json_response(cubence_body()))
        await CubenceAdapter(transport).fetch_quota(
            Credentials(base_url="https://cubence.example.com", access_token="raw-token")
        )
        call = transport.get_calls[0]
        assert call["url"] == "https://cubence.example.com/api/v1/user/subscription-info"
        assert call["headers"] == {"Authorization": "raw-token"}

    @pytest.mark.asyncio
    async def test_missing_sections_default_to_zero(self, transport):
        transport.queue(json_response({"subscription_window": None}))
        result = await CubenceAdapter(transport).fetch_quota(
            Credentials(base_url="https://cubence.example.com", access_token="raw-token")
        )
        assert result.success
        assert result.snapshot.total == 0.0
        assert result.snapshot.percentage == 0.0

    def test_user_id_not_required(self, transport):
        validation = CubenceAdapter(transport).validate_credentials(
            Credentials(base_url="https://cubence.example.com", access_token="raw-token")
        )
        assert validation.valid


class TestAdapterRegistry:
    @pytest.mark.parametrize(
        "platform_type,adapter_class",
        [
            ("newapi", NewApiAdapter),
            ("packyapi", PackyAPIAdapter),
            ("packycode", PackyCodeMonthlyAdapter),
            ("cubence", CubenceAdapter),
        ],
    )
    def test_resolves_known_platforms(self, registry, platform_type, adapter_class):
        assert type(registry.get_adapter(platform_type)) is adapter_class

    def test_unknown_platform_falls_back_to_newapi(self, registry):
        adapter = registry.get_adapter("xyz")
        assert adapter.platform_type is PlatformType.NEWAPI

    def test_strict_mode_rejects_unknown_platform(self, transport):
        with pytest.raises(UnknownPlatformError) as exc_info:
            AdapterRegistry(transport, strict=True).get_adapter("xyz")
        assert exc_info.value.platform_type == "xyz"

    def test_returns_same_instance(self, registry):
        assert registry.get_adapter("cubence") is registry.get_adapter(PlatformType.CUBENCE)

    def test_supported_platforms(self, registry):
        assert set(registry.supported_platforms()) == set(PlatformType)
