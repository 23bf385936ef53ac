"""
Asyncio loop running beside the Qt event loop.

PyQt6 owns the main thread. The poller and the latency prober are coroutines,
so they run on an asyncio loop in a daemon thread; UI code schedules work with
run_async_coro() and receives results back through Qt signals.
"""

import asyncio
import logging
import os
import threading
from concurrent.futures import Future
from typing import Coroutine, Optional

logger = logging.getLogger(__name__)

# Module-level loop shared by the whole application
_async_loop: Optional[asyncio.AbstractEventLoop] = None
_loop_thread: Optional[threading.Thread] = None
_loop_started = threading.Event()


def setup_async_loop(exception_handler=None) -> asyncio.AbstractEventLoop:
    """
    Start the background event loop (idempotent).

    Args:
        exception_handler: Optional handler for exceptions nobody awaited

    Returns:
        The running event loop
    """
    global _async_loop, _loop_thread

    if _async_loop is not None and _async_loop.is_running():
        return _async_loop

    _async_loop = asyncio.new_event_loop()
    if os.getenv("ASYNCIO_DEBUG") == "1" or os.getenv("PYTHONASYNCIODEBUG") == "1":
        _async_loop.set_debug(True)
    if exception_handler:
        _async_loop.set_exception_handler(exception_handler)

    loop = _async_loop
    _loop_started.clear()

    def run_loop():
        asyncio.set_event_loop(loop)
        loop.call_soon(_loop_started.set)
        logger.debug("Starting asyncio event loop in thread")
        try:
            loop.run_forever()
        finally:
            logger.debug("Event loop stopped")

    # Daemon thread, dies with the main thread
    _loop_thread = threading.Thread(target=run_loop, name="quota-watcher-loop", daemon=True)
    _loop_thread.start()
    _loop_started.wait(timeout=5)
    return loop


def run_async_coro(coro: Coroutine) -> Optional[Future]:
    """Schedule a coroutine on the background loop from any thread."""
    loop = _async_loop
    if loop is None or not loop.is_running():
        loop = setup_async_loop()
    try:
        return asyncio.run_coroutine_threadsafe(coro, loop)
    except RuntimeError as e:
        logger.error("Could not schedule %s: %s", getattr(coro, "__name__", coro), e)
        coro.close()
        return None


def shutdown_async_loop(timeout: float = 2.0):
    """Stop the background loop after cancelling whatever is still pending."""
    global _async_loop, _loop_thread

    loop = _async_loop
    if loop is None:
        return

    if loop.is_running():
        async def _cancel_pending():
            current = asyncio.current_task()
            tasks = [t for t in asyncio.all_tasks() if t is not current]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        future = asyncio.run_coroutine_threadsafe(_cancel_pending(), loop)
        try:
            future.result(timeout=timeout)
        except Exception as e:
            logger.warning("Pending tasks did not finish cleanly: %s", e)
        loop.call_soon_threadsafe(loop.stop)

    if _loop_thread is not None:
        _loop_thread.join(timeout=timeout)
    if not loop.is_running():
        loop.close()

    _async_loop = None
    _loop_thread = None
