"""ViewModels for Quota Watcher."""

from .quota_viewmodel import QuotaPoller, PollerState, PollStatus, format_time_left
from .change_detection import is_significant_change, speed_results_changed

__all__ = [
    "QuotaPoller",
    "PollerState",
    "PollStatus",
    "format_time_left",
    "is_significant_change",
    "speed_results_changed",
]
