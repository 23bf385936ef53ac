"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from pathlib import Path
from typing import Any, Optional, Union

import pytest

from quota_watcher.models.config import PlatformConfig, WatcherConfig
from quota_watcher.models.platforms import Credentials
from quota_watcher.services.errors import TransportError
from quota_watcher.services.http_transport import HttpResponse
from quota_watcher.services.platforms.registry import AdapterRegistry
from quota_watcher.services.speed_test_service import LatencyProber
from quota_watcher.utils.settings import SettingsManager

BASE_URL = "https://api.example.com"


def json_response(data: Any, status: int = 200) -> HttpResponse:
    return HttpResponse(status=status, body=json.dumps(data))


def newapi_body(quota: float = 250000, used_quota: float = 750000, group: str = "vip") -> dict:
    return {"success": True, "message": "", "data": {"quota": quota, "used_quota": used_quota, "group": group}}


def cubence_body(limit: float = 5_000_000, remaining: float = 2_000_000) -> dict:
    return {
        "api_key_quota": {"quota_limit_dollar": 10, "quota_used_dollar": 4, "remaining_dollar": 6},
        "normal_balance": {"amount_dollar": 12.5},
        "subscription_window": {
            "five_hour": {"limit": limit, "remaining": remaining, "used": 0, "reset_at": 1_700_000_000},
            "weekly": {"limit": 20_000_000, "remaining": 15_000_000, "used": 1},
        },
        "timestamp": 1_700_000_000,
    }


class FakeTransport:
    """
    Stands in for HttpTransport.

    GET answers are taken from a queue (an HttpResponse or an exception to
    raise). HEAD answers are configured per URL with a delay, a status or an
    error. Every call is recorded.
    """

    def __init__(self):
        self.get_calls: list[dict] = []
        self.head_calls: list[str] = []
        self._responses: deque[Union[HttpResponse, Exception]] = deque()
        self.get_gate: Optional[asyncio.Event] = None
        self.head_delays: dict[str, float] = {}
        self.head_statuses: dict[str, int] = {}
        self.head_errors: dict[str, Exception] = {}
        self.closed = False

    def queue(self, *responses: Union[HttpResponse, Exception]):
        self._responses.extend(responses)

    async def get(self, url: str, headers: Optional[dict] = None, timeout: float = 15.0) -> HttpResponse:
        self.get_calls.append({"url": url, "headers": dict(headers or {}), "timeout": timeout})
        if self.get_gate is not None:
            await self.get_gate.wait()
        if not self._responses:
            return HttpResponse(status=500, body="no response queued")
        response = self._responses.popleft()
        if isinstance(response, Exception):
            raise response
        return response

    async def head(self, url: str, headers: Optional[dict] = None, timeout: float = 10.0) -> HttpResponse:
        self.head_calls.append(url)
        delay = self.head_delays.get(url, 0)
        if delay:
            await asyncio.sleep(delay)
        if url in self.head_errors:
            raise self.head_errors[url]
        return HttpResponse(status=self.head_statuses.get(url, 200))

    async def close(self):
        self.closed = True


class FakeSleep:
    """
    Injected poller sleep.

    Short waits (retry delays) return at once; long waits (the polling
    interval) block until release is set, so a test can inspect the poller
    between ticks.
    """

    def __init__(self, block_from: float = 10.0):
        self.calls: list[float] = []
        self.block_from = block_from
        self.release = asyncio.Event()

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        if seconds >= self.block_from:
            await self.release.wait()
            self.release.clear()

    @property
    def retry_waits(self) -> list[float]:
        return [s for s in self.calls if s < self.block_from]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry(transport: FakeTransport) -> AdapterRegistry:
    return AdapterRegistry(transport)


@pytest.fixture
def prober(transport: FakeTransport) -> LatencyProber:
    return LatencyProber(transport, timeout=0.5)


@pytest.fixture
def newapi_credentials() -> Credentials:
    return Credentials(base_url=BASE_URL + "/", access_token="sk-test", user_id="42")


@pytest.fixture
def newapi_config() -> WatcherConfig:
    """NewAPI config with latency probes off."""
    return WatcherConfig(
        platform_type="newapi",
        speed_test_enabled=False,
        platforms={
            "newapi": PlatformConfig(base_url=BASE_URL, access_token="sk-test", user_id="42"),
        },
    )


@pytest.fixture
def tmp_settings_dir(tmp_path: Path) -> Path:
    settings_dir = tmp_path / "quota-watcher-test"
    settings_dir.mkdir()
    return settings_dir


@pytest.fixture
def settings(tmp_settings_dir: Path) -> SettingsManager:
    return SettingsManager(config_dir=tmp_settings_dir)


@pytest.fixture
def timeout_error() -> TransportError:
    return TransportError("Request timed out after 15s", timed_out=True)
