"""
System-tray status widget.

WORKFLOW:
1. StatusWidget.__init__() creates the Qt application, the tray icon and its
   menu, and connects the poller listeners to Qt signals
2. run() starts the background asyncio loop, schedules start_polling() and
   enters the Qt event loop
3. Poller callbacks fire on the asyncio thread; they only emit signals, and
   Qt delivers the signals to the slots below on the main thread
4. A QFileSystemWatcher on settings.json reloads the settings after an
   edit; changes reach the poller through update_config()
5. On quit the poller is disposed, the HTTP session closed and the asyncio
   loop shut down
"""

import logging
import sys
from typing import Optional

from PyQt6.QtCore import QFileSystemWatcher, QObject, QTimer, pyqtSignal
from PyQt6.QtGui import QAction, QColor, QIcon, QPainter, QPixmap
from PyQt6.QtWidgets import QApplication, QMenu, QSystemTrayIcon

from ..models.quota import QuotaSnapshot
from ..services.errors import ConfigError, QuotaWatcherError
from ..utils.settings import SettingsManager
from ..viewmodels.quota_viewmodel import PollStatus, QuotaPoller, format_time_left
from . import formatting
from .async_bridge import run_async_coro, setup_async_loop, shutdown_async_loop

logger = logging.getLogger(__name__)

ICON_COLORS = {
    formatting.ICON_OK: "#2ecc71",
    formatting.ICON_LOW: "#f1c40f",
    formatting.ICON_CRITICAL: "#e74c3c",
}
IDLE_COLOR = "#95a5a6"
RELOAD_DELAY_MS = 500


class _PollerSignals(QObject):
    """Carries poller notifications from the asyncio thread to the Qt thread."""
    quota_updated = pyqtSignal(object)
    speed_test_updated = pyqtSignal(object)
    error_occurred = pyqtSignal(object)
    status_changed = pyqtSignal(object, object)


def _dot_icon(color: str) -> QIcon:
    pixmap = QPixmap(32, 32)
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setBrush(QColor(color))
    painter.setPen(QColor(color))
    painter.drawEllipse(4, 4, 24, 24)
    painter.end()
    return QIcon(pixmap)


class StatusWidget:
    """Tray icon showing the quota of the active platform."""

    def __init__(self, services, settings: Optional[SettingsManager] = None, exception_handler=None):
        self.services = services
        self.poller: QuotaPoller = services.poller
        self.settings = settings
        self._exception_handler = exception_handler

        self._snapshot: Optional[QuotaSnapshot] = None
        self._speed_results = []
        self._error: Optional[str] = None
        self._status_line: Optional[str] = None

        self.app = QApplication.instance() or QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.app.aboutToQuit.connect(self._cleanup)

        self.signals = _PollerSignals()
        self.signals.quota_updated.connect(self._on_quota_updated)
        self.signals.speed_test_updated.connect(self._on_speed_test_updated)
        self.signals.error_occurred.connect(self._on_error)
        self.signals.status_changed.connect(self._on_status)

        self.poller.on_quota_update(self.signals.quota_updated.emit)
        self.poller.on_speed_test_update(self.signals.speed_test_updated.emit)
        self.poller.on_error(self.signals.error_occurred.emit)
        self.poller.on_status(self.signals.status_changed.emit)

        self._setup_tray()

        # Countdown in the tooltip
        self.countdown_timer = QTimer()
        self.countdown_timer.timeout.connect(self._render)
        self.countdown_timer.start(1000)

        self._watch_settings()

    def _setup_tray(self):
        self.tray = QSystemTrayIcon(_dot_icon(IDLE_COLOR))
        menu = QMenu()

        refresh_action = QAction("Refresh", menu)
        refresh_action.triggered.connect(self._on_refresh)
        menu.addAction(refresh_action)

        speed_action = QAction("Speed test", menu)
        speed_action.triggered.connect(self._on_speed_test)
        menu.addAction(speed_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.app.quit)
        menu.addAction(quit_action)

        self.menu = menu
        self.tray.setContextMenu(menu)
        self.tray.activated.connect(self._on_activated)
        self._render()

    def _watch_settings(self):
        """Reload settings.json when it is edited outside the app."""
        self.settings_watcher = QFileSystemWatcher()
        self._reload_timer = QTimer()
        self._reload_timer.setSingleShot(True)
        self._reload_timer.setInterval(RELOAD_DELAY_MS)
        self._reload_timer.timeout.connect(self._reload_settings)
        if self.settings is None:
            return

        # Editors often replace the file, which drops it from the watch list;
        # the directory watch sees it come back
        self.settings_watcher.addPath(str(self.settings.config_dir))
        self._watch_settings_file()
        self.settings_watcher.fileChanged.connect(self._on_settings_changed)
        self.settings_watcher.directoryChanged.connect(self._on_settings_changed)

    def _watch_settings_file(self):
        path = str(self.settings.settings_file)
        if self.settings.settings_file.exists() and path not in self.settings_watcher.files():
            self.settings_watcher.addPath(path)

    def _on_settings_changed(self, path: str):
        # Saves arrive in bursts, reload once they settle
        self._reload_timer.start()

    def _reload_settings(self):
        self._watch_settings_file()
        logger.debug("Settings file changed, reloading")
        run_async_coro(self.services.reload(self.settings))

    # ------------------------------------------------------------------
    # Slots (Qt thread)
    # ------------------------------------------------------------------

    def _on_quota_updated(self, snapshot: QuotaSnapshot):
        self._snapshot = snapshot
        self._error = None
        self._status_line = None
        self._render()

    def _on_speed_test_updated(self, results):
        self._speed_results = list(results)
        if not results and self.poller.state.last_snapshot is None:
            # platform switched, the previous platform's data is gone
            self._snapshot = None
            self._status_line = formatting.loading_text()
        self._render()

    def _on_error(self, error: QuotaWatcherError):
        self._error = error.message
        if isinstance(error, ConfigError) and error.missing:
            self._status_line = formatting.config_missing_text(error.missing)
        else:
            self._status_line = None
        self._render()

    def _on_status(self, status: PollStatus, retry_count: Optional[int]):
        if status == PollStatus.RETRYING:
            self._status_line = formatting.retrying_text(retry_count or 0, self.poller.max_retries)
        elif self._snapshot is None:
            self._status_line = formatting.loading_text()
        self._render()

    def _on_activated(self, reason):
        if reason == QSystemTrayIcon.ActivationReason.Trigger:
            self._on_refresh()

    def _on_refresh(self):
        run_async_coro(self.poller.refresh())

    def _on_speed_test(self):
        run_async_coro(self.poller.run_speed_test())

    def _render(self):
        widgets = self.poller.config.widgets
        if self._error and not self._status_line:
            title = formatting.stale_status_text(self._snapshot, self._speed_results, widgets)
        elif self._status_line and self._snapshot is None:
            title = self._status_line
        else:
            title = formatting.format_status_text(self._snapshot, self._speed_results, widgets)

        tooltip = formatting.format_tooltip(
            self._snapshot,
            self._speed_results,
            platform_name=self.poller.config.platform_display_name,
            error=self._error,
        )
        if self._status_line:
            tooltip = f"{self._status_line}\n{tooltip}"
        elif self.poller.is_polling:
            tooltip += f"\nNext refresh: {format_time_left(self.poller.time_until_next_poll())}"

        self.tray.setToolTip(f"{title}\n{tooltip}")
        if self._snapshot is None:
            color = IDLE_COLOR
        else:
            color = ICON_COLORS[formatting.status_icon(self._snapshot.remaining_percentage)]
        self.tray.setIcon(_dot_icon(color))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _cleanup(self):
        """Dispose the poller and close the HTTP session before exit."""
        logger.info("Cleaning up resources...")
        self.countdown_timer.stop()
        self._reload_timer.stop()

        future = run_async_coro(self.services.close())
        if future is not None:
            try:
                future.result(timeout=2)
            except Exception as e:
                logger.warning("Cleanup did not finish: %s", e)
        shutdown_async_loop()

    def run(self) -> int:
        """Start polling and enter the Qt event loop."""
        setup_async_loop(exception_handler=self._exception_handler)
        self.tray.show()
        if self.poller.config.enabled:
            run_async_coro(self.poller.start_polling())
        else:
            logger.info("Quota watcher disabled in settings")
        return self.app.exec()
