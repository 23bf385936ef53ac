"""
Latency prober.

WORKFLOW:
1. Each configured URL is normalized to its authority root
   (scheme://host[:port]/); probes measure host reachability, not the
   configured endpoint path
2. One HEAD request per URL is started concurrently, each with its own timeout
3. Any HTTP response, whatever the status, counts as SUCCESS with the
   measured wall-clock latency; a timeout or transport error counts as FAILED
4. Results are stored per configured URL and registered callbacks are
   notified once the round completes
"""

import asyncio
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlsplit

from ..models.speed_test import SpeedTestResult, SpeedTestStatus
from .errors import ProbeError, TransportError
from .http_transport import HttpTransport

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10.0


def normalize_probe_url(url: str) -> str:
    """
    Reduce a configured URL to the root of its host.

    Raises ProbeError for blank or unparsable URLs.
    """
    text = (url or "").strip()
    if not text:
        raise ProbeError("Empty URL")
    if "://" not in text:
        text = f"https://{text}"

    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError as e:
        raise ProbeError(f"Invalid URL: {url}") from e

    if not parts.hostname:
        raise ProbeError(f"Invalid URL: {url}")

    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    authority = f"{host}:{port}" if port is not None else host
    return f"{parts.scheme.lower()}://{authority}/"


class LatencyProber:
    """Runs concurrent HEAD probes against a set of URLs."""

    def __init__(self, transport: HttpTransport, timeout: float = PROBE_TIMEOUT):
        self.transport = transport
        self.timeout = timeout
        self._results: dict[str, SpeedTestResult] = {}
        self._results_callbacks: list[Callable[[list[SpeedTestResult]], None]] = []

    def register_results_callback(self, callback: Callable[[list[SpeedTestResult]], None]):
        if callback not in self._results_callbacks:
            self._results_callbacks.append(callback)

    def unregister_results_callback(self, callback: Callable[[list[SpeedTestResult]], None]):
        if callback in self._results_callbacks:
            self._results_callbacks.remove(callback)

    @property
    def results(self) -> list[SpeedTestResult]:
        """Latest result for every URL probed since the last clear."""
        return list(self._results.values())

    def clear_results(self):
        self._results.clear()

    async def run_speed_test(self, urls: list[str]) -> list[SpeedTestResult]:
        """Probe every URL concurrently and return one result per URL."""
        if not urls:
            return []

        for url in urls:
            self._results[url] = SpeedTestResult.pending(url)

        logger.debug("Probing %d URL(s)", len(urls))
        results = list(await asyncio.gather(*(self._probe(url) for url in urls)))

        for result in results:
            self._results[result.url] = result

        succeeded = sum(1 for r in results if r.is_success)
        logger.info("Speed test completed: %d/%d reachable", succeeded, len(results))

        for callback in list(self._results_callbacks):
            try:
                callback(self.results)
            except Exception:
                logger.exception("Speed test results callback failed")
        return results

    async def _probe(self, url: str) -> SpeedTestResult:
        try:
            probe_url = normalize_probe_url(url)
        except ProbeError as e:
            return SpeedTestResult.failed(url, e.message)

        started = time.perf_counter()
        try:
            await asyncio.wait_for(self.transport.head(probe_url, timeout=self.timeout), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug("Speed test timed out for %s", url)
            return SpeedTestResult.failed(url, f"Timed out after {self.timeout:g}s")
        except TransportError as e:
            logger.debug("Speed test failed for %s: %s", url, e.message)
            return SpeedTestResult.failed(url, e.message)
        except Exception as e:
            logger.warning("Unexpected speed test error for %s: %s", url, e)
            return SpeedTestResult.failed(url, str(e) or type(e).__name__)

        latency_ms = int(round((time.perf_counter() - started) * 1000))
        return SpeedTestResult(url=url, latency_ms=latency_ms, status=SpeedTestStatus.SUCCESS)


def sort_results(results: list[SpeedTestResult]) -> list[SpeedTestResult]:
    """Order results by URL so rounds compare independently of completion order."""
    return sorted(results, key=lambda r: r.url)


def summarize(results: list[SpeedTestResult]) -> tuple[int, Optional[float]]:
    """Number of successful probes and their average latency."""
    latencies = [r.latency_ms for r in results if r.is_success and r.latency_ms is not None]
    if not latencies:
        return 0, None
    return len(latencies), sum(latencies) / len(latencies)
