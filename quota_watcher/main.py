"""
Main entry point for Quota Watcher.

WORKFLOW OVERVIEW:
==================
1. Application Initialization:
   - Parses the command line (--debug/-d, --console, --test-connection,
     --speed-test)
   - Sets up file logging, and debug logging when --debug, -d or
     QUOTA_WATCHER_DEBUG is given
   - Loads settings from disk and validates them into a WatcherConfig

2. Wiring:
   - One HttpTransport (shared aiohttp session) for every request
   - AdapterRegistry resolving the configured platform to its adapter
   - LatencyProber for the speed test URLs
   - QuotaPoller driving fetch, retry and change detection

3. Runtime, depending on the mode:
   - default: system-tray StatusWidget (PyQt6), asyncio loop in a thread
   - --console: headless, every notification is logged
   - --test-connection / --speed-test: one-shot commands, then exit
   - Edits to settings.json are applied at runtime: the tray watches the
     file, the console re-reads it on SIGHUP

4. Shutdown:
   - SIGINT/SIGTERM quit the Qt application or cancel the console loop
   - The poller is disposed and the HTTP session closed
"""

import argparse
import asyncio
import logging
import os
import platform
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .models.config import WatcherConfig
from .services.errors import ConfigError
from .services.http_transport import HttpTransport
from .services.platforms.registry import AdapterRegistry
from .services.speed_test_service import LatencyProber, summarize
from .utils.settings import SettingsManager, default_config_dir, load_config
from .viewmodels.quota_viewmodel import QuotaPoller

logger = logging.getLogger("quota_watcher")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_shutdown_requested = False


def _get_log_file_path() -> Path:
    """Per-session log file in the config directory (same location as settings)."""
    config_dir = default_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    log_filename = f"quota_watcher_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    return config_dir / log_filename


def setup_logging(debug: bool = False, log_file: bool = True) -> Optional[Path]:
    """
    Configure logging for the session.

    Records go to stderr and, unless disabled, to a per-session log file.
    Debug mode lowers the quota_watcher and aiohttp loggers to DEBUG and
    enables asyncio debug mode.

    Returns:
        Path to the log file, or None if no file is written
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_path = None
    if log_file:
        try:
            log_path = _get_log_file_path()
            handlers.append(logging.FileHandler(log_path, encoding="utf-8", mode="a"))
        except OSError as e:
            print(f"Warning: Could not set up file logging: {e}", file=sys.stderr)
            log_path = None

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    if debug:
        os.environ["ASYNCIO_DEBUG"] = "1"
        logging.getLogger("quota_watcher").setLevel(logging.DEBUG)
        logging.getLogger("aiohttp").setLevel(logging.DEBUG)
        # Transport-level asyncio logs are too noisy at DEBUG
        logging.getLogger("asyncio").setLevel(logging.INFO)
    else:
        logging.getLogger("aiohttp").setLevel(logging.WARNING)

    if log_path:
        logger.info("Logging to file: %s", log_path)
    return log_path


def asyncio_exception_handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log exceptions nobody awaited."""
    exception = context.get("exception")
    message = context.get("message", "Asyncio error")
    if exception:
        logger.error("%s", message, exc_info=exception)
    else:
        logger.error("%s: %s", message, context)


def is_debug_mode(args: argparse.Namespace) -> bool:
    return args.debug or os.getenv("QUOTA_WATCHER_DEBUG", "").lower() in ("1", "true", "yes")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quota-watcher",
        description="Watch the credit balance of an API relay platform.",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="verbose logging")
    parser.add_argument("--config-dir", type=Path, help="settings directory (default: per-OS config dir)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--console", action="store_true", help="run headless and log every update")
    mode.add_argument("--test-connection", action="store_true", help="check the configured credentials and exit")
    mode.add_argument("--speed-test", action="store_true", help="probe the speed test URLs once and exit")
    return parser


class Services:
    """The object graph shared by every run mode."""

    def __init__(self, config: WatcherConfig):
        self.config = config
        self.transport = HttpTransport(proxy_url=config.proxy_url)
        self.registry = AdapterRegistry(self.transport, strict=config.strict_platform)
        self.prober = LatencyProber(self.transport)
        self.poller = QuotaPoller(self.registry, self.prober, config)

    async def apply_config(self, config: WatcherConfig):
        self.config = config
        self.transport.update_proxy_configuration(config.proxy_url)
        await self.poller.update_config(config)

    async def reload(self, settings: SettingsManager) -> bool:
        """
        Re-read the settings file and apply it if anything changed.

        Returns:
            True if a new configuration was applied
        """
        settings.reload()
        config = load_config(settings)
        if config == self.config:
            logger.debug("Settings unchanged")
            return False
        logger.info("Settings changed, applying (%s)", config.platform_display_name)
        await self.apply_config(config)
        return True

    async def close(self):
        await self.poller.dispose()
        await self.transport.close()


async def run_test_connection(config: WatcherConfig) -> int:
    services = Services(config)
    try:
        adapter = services.registry.get_adapter(config.platform_type)
        result = await adapter.test_connection(config.credentials)
    except ConfigError as e:
        print(e.message)
        return 1
    finally:
        await services.close()
    print(f"{adapter.name}: {result.message}")
    return 0 if result.success else 1


async def run_speed_test(config: WatcherConfig) -> int:
    urls = config.platform.probe_urls
    if not urls:
        print("No speed test URL or base URL configured")
        return 1

    services = Services(config)
    try:
        results = await services.prober.run_speed_test(urls)
    finally:
        await services.close()

    for result in results:
        if result.is_success:
            print(f"{result.url}: {result.latency_ms}ms")
        else:
            print(f"{result.url}: failed ({result.error})")
    count, average = summarize(results)
    if average is not None:
        print(f"{count}/{len(results)} reachable, average {average:.0f}ms")
    return 0 if count else 1


async def run_console(config: WatcherConfig, settings: Optional[SettingsManager] = None) -> int:
    """
    Headless mode: poll until interrupted, logging every notification.

    SIGHUP re-reads the settings file and applies any change.
    """
    from .ui.formatting import format_status_text, format_tooltip

    services = Services(config)
    poller = services.poller
    stop = asyncio.Event()

    def on_update(snapshot):
        logger.info("Quota: %s", format_status_text(snapshot, poller.state.last_speed_results, poller.config.widgets))
        logger.debug("\n%s", format_tooltip(snapshot, poller.state.last_speed_results, poller.config.platform_display_name))

    def on_speed(results):
        for result in results:
            logger.info("Latency %s: %s", result.url, f"{result.latency_ms}ms" if result.is_success else "failed")

    def on_error(error):
        logger.error("Quota watcher error: %s", error.message)

    def on_status(status, retry_count):
        if retry_count:
            logger.info("%s (%d/%d)", status.value, retry_count, poller.max_retries)

    poller.on_quota_update(on_update)
    poller.on_speed_test_update(on_speed)
    poller.on_error(on_error)
    poller.on_status(on_status)

    reloads: set[asyncio.Task] = set()

    def on_hangup():
        task = asyncio.create_task(services.reload(settings))
        reloads.add(task)
        task.add_done_callback(reloads.discard)

    loop = asyncio.get_running_loop()
    handlers = [(signal.SIGINT, stop.set), (signal.SIGTERM, stop.set)]
    if settings is not None and hasattr(signal, "SIGHUP"):
        handlers.append((signal.SIGHUP, on_hangup))
    for sig, handler in handlers:
        try:
            loop.add_signal_handler(sig, handler)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers
            pass

    try:
        if not config.enabled:
            logger.info("Quota watcher disabled in settings")
            return 0
        await poller.start_polling()
        await stop.wait()
    finally:
        await services.close()
    return 0


def _shutdown_handler(signum: int, frame: Any) -> None:
    """Signal handler for graceful shutdown of the tray application."""
    global _shutdown_requested
    if _shutdown_requested:
        return
    _shutdown_requested = True
    logger.info("Received signal %s, shutting down gracefully...", signum)

    try:
        from PyQt6.QtCore import QTimer
        from PyQt6.QtWidgets import QApplication
    except ImportError:
        raise KeyboardInterrupt

    app = QApplication.instance()
    if app is None:
        raise KeyboardInterrupt
    # quit() on the Qt thread triggers aboutToQuit and the widget cleanup
    QTimer.singleShot(0, app.quit)


def run_tray(config: WatcherConfig, settings: SettingsManager) -> int:
    from .ui.status_widget import StatusWidget

    try:
        signal.signal(signal.SIGINT, _shutdown_handler)
        signal.signal(signal.SIGTERM, _shutdown_handler)
    except (AttributeError, ValueError):
        # Windows doesn't support SIGTERM, or not on the main thread
        pass

    services = Services(config)
    widget = StatusWidget(services, settings, exception_handler=asyncio_exception_handler)
    return widget.run()


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the application.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    debug_mode = is_debug_mode(args)
    one_shot = args.test_connection or args.speed_test
    setup_logging(debug=debug_mode, log_file=not one_shot)

    logger.info("Quota Watcher - Running on %s", platform.system())
    if debug_mode:
        logger.debug("Python version: %s", sys.version)
        logger.debug("Working directory: %s", os.getcwd())

    settings = SettingsManager(config_dir=args.config_dir)
    config = load_config(settings)
    logger.info("Platform: %s, polling every %ds", config.platform_display_name, config.polling_interval // 1000)

    try:
        if args.test_connection:
            return asyncio.run(run_test_connection(config))
        if args.speed_test:
            return asyncio.run(run_speed_test(config))
        if args.console:
            return asyncio.run(run_console(config, settings), debug=debug_mode)
        return run_tray(config, settings)
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received, shutting down")
        return 0


if __name__ == "__main__":
    # Entry point when running as a script: python -m quota_watcher.main
    sys.exit(main())
