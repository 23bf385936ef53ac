"""Significant-change predicates used to debounce UI updates."""

from typing import Optional

from ..models.quota import QuotaSnapshot
from ..models.speed_test import SpeedTestResult

AMOUNT_TOLERANCE = 0.001  # USD
PERCENTAGE_TOLERANCE = 0.1  # percentage points


def is_significant_change(old: Optional[QuotaSnapshot], new: Optional[QuotaSnapshot]) -> bool:
    """True when `new` differs from `old` enough to repaint."""
    if old is None or new is None:
        return (old is None) != (new is None)

    for attr in ("used", "total", "remaining"):
        if abs(getattr(new, attr) - getattr(old, attr)) > AMOUNT_TOLERANCE:
            return True
    return abs(new.percentage - old.percentage) > PERCENTAGE_TOLERANCE


def speed_results_changed(old: list[SpeedTestResult], new: list[SpeedTestResult]) -> bool:
    """
    True when the probe outcome changed.

    A different number of URLs, a different URL set or any status flip is
    significant. Latency jitter with an unchanged status is not.
    """
    if len(old) != len(new):
        return True

    old_status = {r.url: r.status for r in old}
    for result in new:
        if result.url not in old_status:
            return True
        if old_status[result.url] != result.status:
            return True
    return False
