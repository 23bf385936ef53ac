"""Tests for the latency prober."""

import time

import pytest

from quota_watcher.models import SpeedTestStatus
from quota_watcher.services.errors import ProbeError, TransportError
from quota_watcher.services.http_transport import HttpTransport
from quota_watcher.services.speed_test_service import (
    LatencyProber,
    normalize_probe_url,
    sort_results,
    summarize,
)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://api.example.com/v1/models?x=1", "https://api.example.com/"),
        ("http://relay.example.com:8080/path", "http://relay.example.com:8080/"),
        ("HTTPS://Api.Example.com", "https://api.example.com/"),
        ("api.example.com/dashboard", "https://api.example.com/"),
        ("http://[::1]:3000/health", "http://[::1]:3000/"),
    ],
)
def test_normalize_probe_url(url, expected):
    assert normalize_probe_url(url) == expected


@pytest.mark.parametrize("url", ["", "   ", "http://", "http://host:notaport/"])
def test_normalize_rejects_invalid_urls(url):
    with pytest.raises(ProbeError):
        normalize_probe_url(url)


class TestLatencyProber:
    @pytest.mark.asyncio
    async def test_empty_list(self, prober, transport):
        assert await prober.run_speed_test([]) == []
        assert transport.head_calls == []

    @pytest.mark.asyncio
    async def test_probes_are_independent(self, transport):
        transport.head_delays = {
            "https://a.example.com/": 0.01,
            "https://b.example.com/": 0.02,
            "https://slow.example.com/": 5.0,
        }
        prober = LatencyProber(transport, timeout=0.2)
        urls = ["https://a.example.com/x", "https://slow.example.com/y", "https://b.example.com/z"]

        started = time.perf_counter()
        results = await prober.run_speed_test(urls)
        elapsed = time.perf_counter() - started

        assert [r.url for r in results] == urls
        statuses = {r.url: r.status for r in results}
        assert statuses["https://slow.example.com/y"] == SpeedTestStatus.FAILED
        assert statuses["https://a.example.com/x"] == SpeedTestStatus.SUCCESS
        assert statuses["https://b.example.com/z"] == SpeedTestStatus.SUCCESS
        assert all(r.latency_ms is not None for r in results if r.is_success)
        # bounded by the slowest probe's timeout, not the sum of delays
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_any_http_status_is_success(self, prober, transport):
        transport.head_statuses = {"https://api.example.com/": 404}
        [result] = await prober.run_speed_test(["https://api.example.com/v1"])
        assert result.status == SpeedTestStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_transport_error_is_failure(self, prober, transport):
        transport.head_errors = {"https://down.example.com/": TransportError("Connection error: refused")}
        [result] = await prober.run_speed_test(["https://down.example.com"])
        assert result.status == SpeedTestStatus.FAILED
        assert result.error == "Connection error: refused"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_failure(self, prober, transport):
        transport.head_errors = {"https://odd.example.com/": RuntimeError("resolver exploded")}
        results = await prober.run_speed_test(["https://odd.example.com", "https://a.example.com"])

        assert [r.status for r in results] == [SpeedTestStatus.FAILED, SpeedTestStatus.SUCCESS]
        assert results[0].error == "resolver exploded"

    @pytest.mark.asyncio
    async def test_invalid_url_is_failure(self, prober, transport):
        [result] = await prober.run_speed_test(["  "])
        assert result.status == SpeedTestStatus.FAILED
        assert result.error == "Empty URL"
        assert transport.head_calls == []

    @pytest.mark.asyncio
    async def test_callbacks_and_clear(self, prober):
        received = []
        prober.register_results_callback(received.append)
        await prober.run_speed_test(["https://a.example.com"])

        assert len(received) == 1
        assert received[0][0].url == "https://a.example.com"
        assert len(prober.results) == 1

        prober.unregister_results_callback(received.append)
        prober.clear_results()
        await prober.run_speed_test(["https://b.example.com"])
        assert len(received) == 1
        assert [r.url for r in prober.results] == ["https://b.example.com"]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_round(self, prober):
        def broken(results):
            raise RuntimeError("boom")

        prober.register_results_callback(broken)
        results = await prober.run_speed_test(["https://a.example.com"])
        assert results[0].is_success


@pytest.mark.asyncio
async def test_sort_and_summarize(prober, transport):
    transport.head_errors = {"https://c.example.com/": TransportError("refused")}
    results = await prober.run_speed_test(["https://c.example.com", "https://a.example.com"])

    ordered = sort_results(results)
    assert [r.url for r in ordered] == ["https://a.example.com", "https://c.example.com"]

    count, average = summarize(results)
    assert count == 1
    assert average is not None
    assert summarize([]) == (0, None)


@pytest.mark.asyncio
async def test_malformed_host_is_transport_error():
    transport = HttpTransport()
    try:
        with pytest.raises(TransportError):
            await transport.head("https://a..b.com/", timeout=1.0)
    finally:
        await transport.close()


@pytest.mark.asyncio
async def test_malformed_host_probe_is_failure():
    transport = HttpTransport()
    try:
        [result] = await LatencyProber(transport, timeout=1.0).run_speed_test(["https://a..b.com"])
    finally:
        await transport.close()
    assert result.status == SpeedTestStatus.FAILED
