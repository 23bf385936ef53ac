"""
Quota poller (controller) for the status widget.

WORKFLOW OVERVIEW:
==================
This is the central state holder between the platform adapters and the
presentation layer. It coordinates:
- Polling the active platform adapter on a fixed interval
- Retrying failed fetches with a fixed delay, a bounded number of times
- Suppressing notifications when the data did not change meaningfully
- Running latency probes after successful fetches
- Notifying registered listeners (status widget, console reporter)

STATE MACHINE:
    Idle -> Fetching -> Success -> Idle
                     -> Failure -> Retrying -> Fetching   (retry_count < 3)
                     -> Failure -> Idle (polling stopped, stale data kept)

POLLING:
start_polling() runs one cycle immediately and then starts a single asyncio
task that sleeps for the interval and runs the next cycle. The task awaits
the full fetch-and-retry cycle before sleeping again, so two ticks of the
loop can never overlap. A manual refresh() arriving while a cycle is in
flight is dropped (is_loading guard).

FAILURES:
- ConfigError (missing credentials): reported immediately, polling stops,
  no retry
- Fetch failure: retried up to MAX_RETRY_COUNT times, RETRY_DELAY apart,
  inside the same cycle. When retries are exhausted polling stops, the last
  good snapshot is kept and a HardFetchError is reported. A manual refresh
  or a restart of polling resumes.

LISTENERS:
Presentation code registers callbacks with on_quota_update(), on_error(),
on_status() and on_speed_test_update(). Callbacks run on the event loop
thread; a failing callback is logged and never breaks the loop. After
dispose() no callback fires.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..models.config import WatcherConfig
from ..models.quota import QuotaSnapshot
from ..models.speed_test import SpeedTestResult
from ..services.errors import ConfigError, HardFetchError, QuotaWatcherError
from ..services.platforms.base import BasePlatformAdapter
from ..services.platforms.registry import AdapterRegistry
from ..services.speed_test_service import LatencyProber, sort_results
from .change_detection import is_significant_change, speed_results_changed

logger = logging.getLogger(__name__)


class PollStatus(str, Enum):
    """Progress states reported to listeners."""
    FETCHING = "fetching"
    RETRYING = "retrying"


@dataclass
class PollerState:
    """
    Mutable poller state.

    Fields:
        is_loading: A fetch cycle is in flight (at most one at a time)
        last_error: Message of the last failure, cleared on success
        retry_count: Retries used by the current cycle
        last_snapshot: Last rendered snapshot, kept across failures
        last_speed_results: Last rendered probe round, sorted by URL
        next_poll_at: When the polling loop runs its next cycle
    """
    is_loading: bool = False
    last_error: Optional[str] = None
    retry_count: int = 0
    last_snapshot: Optional[QuotaSnapshot] = None
    last_speed_results: list[SpeedTestResult] = field(default_factory=list)
    next_poll_at: Optional[datetime] = None


def format_time_left(seconds: Optional[float]) -> str:
    """Countdown text such as '1h 2m 3s', '2m 3s' or '3s'."""
    if seconds is None or seconds <= 0:
        return "Refreshing soon"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class QuotaPoller:
    """Drives periodic quota fetches for the active platform."""

    MAX_RETRY_COUNT = 3
    RETRY_DELAY = 5.0  # seconds

    def __init__(
        self,
        registry: AdapterRegistry,
        prober: LatencyProber,
        config: WatcherConfig,
        *,
        max_retries: int = MAX_RETRY_COUNT,
        retry_delay: float = RETRY_DELAY,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.registry = registry
        self.prober = prober
        self.config = config
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.state = PollerState()

        self._sleep = sleep or asyncio.sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.adapter: Optional[BasePlatformAdapter] = None
        self._adapter_error: Optional[ConfigError] = None
        self._resolve_adapter()

        self._poll_task: Optional[asyncio.Task] = None
        self._sleeping_task: Optional[asyncio.Task] = None
        self._retry_waiter: Optional[asyncio.Future] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._generation = 0
        self._force_update = False
        self._speed_test_running = False
        self._halted = False
        self._disposed = False

        self._quota_update_callbacks: list[Callable[[QuotaSnapshot], None]] = []
        self._error_callbacks: list[Callable[[QuotaWatcherError], None]] = []
        self._status_callbacks: list[Callable[[PollStatus, Optional[int]], None]] = []
        self._speed_test_callbacks: list[Callable[[list[SpeedTestResult]], None]] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_quota_update(self, callback: Callable[[QuotaSnapshot], None]):
        if callback not in self._quota_update_callbacks:
            self._quota_update_callbacks.append(callback)

    def on_error(self, callback: Callable[[QuotaWatcherError], None]):
        if callback not in self._error_callbacks:
            self._error_callbacks.append(callback)

    def on_status(self, callback: Callable[[PollStatus, Optional[int]], None]):
        if callback not in self._status_callbacks:
            self._status_callbacks.append(callback)

    def on_speed_test_update(self, callback: Callable[[list[SpeedTestResult]], None]):
        if callback not in self._speed_test_callbacks:
            self._speed_test_callbacks.append(callback)

    def _notify(self, callbacks: list[Callable], *args):
        if self._disposed:
            return
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener %s failed", getattr(callback, "__name__", callback))

    # ------------------------------------------------------------------
    # Polling control
    # ------------------------------------------------------------------

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def start_polling(self, interval_ms: Optional[int] = None):
        """
        Run one cycle now, then keep polling every `interval_ms`.

        Any existing polling loop is cancelled first. If the first cycle
        ends in a hard failure the loop is not started.
        """
        self.stop_polling()
        if self._disposed:
            return
        self._halted = False

        interval = (interval_ms or self.config.polling_interval) / 1000.0
        generation = self._generation
        logger.info("Starting polling every %.0fs (%s)", interval, self.config.platform_display_name)

        if self.state.is_loading:
            # a restart always gets a fresh cycle with the current config
            await self._idle.wait()
            if generation != self._generation or self._disposed:
                return

        if not await self._run_cycle():
            return
        if generation != self._generation or self._disposed:
            # stopped or restarted while the first cycle was running
            return

        self._poll_task = asyncio.create_task(self._poll_loop(interval, generation), name="quota-poller")

    async def _poll_loop(self, interval: float, generation: int):
        task = asyncio.current_task()
        try:
            while generation == self._generation:
                self.state.next_poll_at = self._clock() + timedelta(seconds=interval)
                self._sleeping_task = task
                try:
                    await self._sleep(interval)
                finally:
                    if self._sleeping_task is task:
                        self._sleeping_task = None
                if generation != self._generation:
                    break
                if not await self._run_cycle():
                    break
        finally:
            if self._poll_task is task:
                self._poll_task = None

    def stop_polling(self):
        """
        Cancel the polling loop and any pending retry delay.

        A fetch already in flight is left to complete; the loop running it
        exits afterwards.
        """
        self._generation += 1
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done() and self._sleeping_task is task:
            task.cancel()
        if self._retry_waiter is not None and not self._retry_waiter.done():
            self._retry_waiter.cancel()
        self.state.next_poll_at = None

    @property
    def halted(self) -> bool:
        """Polling was stopped by a failure and waits for a manual refresh."""
        return self._halted

    async def refresh(self):
        """
        Run one fetch cycle now, unless one is already in flight.

        After a hard failure this also resumes polling.
        """
        if self._disposed:
            return
        if self._halted and self.config.enabled:
            logger.info("Manual refresh after failure, resuming polling")
            await self.start_polling(self.config.polling_interval)
            return
        await self._run_cycle()

    async def update_config(self, config: WatcherConfig):
        """
        Apply a new configuration.

        A platform switch re-resolves the adapter, drops the probe results of
        the previous platform and restarts polling right away.
        """
        previous = self.config
        self.config = config
        strict_changed = self.registry.strict != config.strict_platform
        self.registry.strict = config.strict_platform

        if previous.platform_type != config.platform_type:
            logger.info("Platform switched: %s -> %s", previous.platform_type, config.platform_type)
            self._resolve_adapter()
            self.prober.clear_results()
            self.state.last_snapshot = None
            self.state.last_error = None
            self.state.last_speed_results = []
            self._force_update = True
            self._notify(self._speed_test_callbacks, [])
        elif strict_changed:
            self._resolve_adapter()

        if not config.enabled:
            logger.info("Quota watcher disabled, polling stopped")
            self.stop_polling()
            return

        await self.start_polling(config.polling_interval)

    async def dispose(self):
        """Stop polling; results of in-flight fetches are discarded."""
        self.stop_polling()
        self._disposed = True

    def time_until_next_poll(self) -> Optional[float]:
        if self.state.next_poll_at is None:
            return None
        return max(0.0, (self.state.next_poll_at - self._clock()).total_seconds())

    # ------------------------------------------------------------------
    # Fetch cycle
    # ------------------------------------------------------------------

    def _resolve_adapter(self):
        try:
            self.adapter = self.registry.get_adapter(self.config.platform_type)
            self._adapter_error = None
        except ConfigError as e:
            self.adapter = None
            self._adapter_error = e

    async def _run_cycle(self) -> bool:
        """
        Run one fetch cycle.

        Returns:
            False when polling must stop (config error, hard failure, stop or
            dispose during the cycle), True otherwise
        """
        if self.state.is_loading:
            logger.debug("Fetch already in flight, skipping")
            return True

        self.state.is_loading = True
        self.state.retry_count = 0
        self._idle.clear()
        try:
            return await self._fetch_with_retry()
        finally:
            self.state.is_loading = False
            self._idle.set()

    async def _fetch_with_retry(self) -> bool:
        adapter = self.adapter
        if adapter is None:
            self._fail(self._adapter_error or ConfigError("No platform adapter available"))
            return False

        credentials = self.config.credentials
        validation = adapter.validate_credentials(credentials)
        if not validation.valid:
            self._fail(ConfigError(validation.message, validation.missing))
            return False

        self._notify(self._status_callbacks, PollStatus.FETCHING, None)
        generation = self._generation
        platform_type = self.config.platform_type

        while True:
            result = await adapter.fetch_quota(credentials)
            if self._disposed:
                logger.debug("Poller disposed, discarding fetch result")
                return False
            if platform_type != self.config.platform_type:
                logger.debug("Platform changed during fetch, discarding result")
                return True

            if result.success:
                await self._apply_snapshot(result.snapshot)
                return True

            logger.error("Quota fetch failed: %s", result.error)
            if self.state.retry_count >= self.max_retries:
                self._fail(HardFetchError(result.error, attempts=self.state.retry_count + 1))
                return False

            self.state.retry_count += 1
            logger.info("Retry %d/%d in %.0fs", self.state.retry_count, self.max_retries, self.retry_delay)
            self._notify(self._status_callbacks, PollStatus.RETRYING, self.state.retry_count)

            if not await self._wait_before_retry() or generation != self._generation:
                logger.debug("Retry cancelled")
                return False

    async def _wait_before_retry(self) -> bool:
        waiter = asyncio.ensure_future(self._sleep(self.retry_delay))
        self._retry_waiter = waiter
        try:
            await asyncio.wait({waiter})
        finally:
            if not waiter.done():
                waiter.cancel()
            if self._retry_waiter is waiter:
                self._retry_waiter = None
        return not waiter.cancelled() and not self._disposed

    def _fail(self, error: QuotaWatcherError):
        self.state.last_error = error.message
        self.stop_polling()
        self._halted = True
        if isinstance(error, ConfigError):
            logger.warning("Configuration incomplete: %s", error.message)
        else:
            logger.error("Giving up after %d attempt(s): %s", getattr(error, "attempts", 1), error.message)
        self._notify(self._error_callbacks, error)

    async def _apply_snapshot(self, snapshot: QuotaSnapshot):
        # recovering from retries or an error always repaints
        force = self._force_update or self.state.last_error is not None or self.state.retry_count > 0
        self.state.retry_count = 0
        self.state.last_error = None
        self._force_update = False

        if force or is_significant_change(self.state.last_snapshot, snapshot):
            self.state.last_snapshot = snapshot
            self._notify(self._quota_update_callbacks, snapshot)
        else:
            logger.debug("Quota unchanged within tolerance, skipping update")

        if self.config.speed_test_enabled:
            await self.run_speed_test()

    async def run_speed_test(self) -> list[SpeedTestResult]:
        """
        Probe the active platform's speed test URLs.

        Falls back to the base URL when no probe URL is configured. Listeners
        are only notified when the outcome changed.
        """
        urls = self.config.platform.probe_urls
        if not urls or self._speed_test_running:
            return list(self.state.last_speed_results)

        self._speed_test_running = True
        platform_type = self.config.platform_type
        try:
            results = sort_results(await self.prober.run_speed_test(urls))
        finally:
            self._speed_test_running = False

        if self._disposed or platform_type != self.config.platform_type:
            return results

        if speed_results_changed(self.state.last_speed_results, results):
            self.state.last_speed_results = results
            self._notify(self._speed_test_callbacks, results)
        return results
