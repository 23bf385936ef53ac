"""Tests for significant-change detection."""

from quota_watcher.models import QuotaSnapshot, SpeedTestResult, SpeedTestStatus
from quota_watcher.viewmodels.change_detection import is_significant_change, speed_results_changed


def _snapshot(used: float, total: float = 10.0) -> QuotaSnapshot:
    return QuotaSnapshot.build("plan", used=used, total=total)


def _ok(url: str, latency: int = 100) -> SpeedTestResult:
    return SpeedTestResult(url, latency, SpeedTestStatus.SUCCESS)


def test_presence_flip_is_significant():
    assert is_significant_change(None, _snapshot(1.0))
    assert is_significant_change(_snapshot(1.0), None)
    assert not is_significant_change(None, None)


def test_identical_snapshots_are_not_significant():
    assert not is_significant_change(_snapshot(1.0), _snapshot(1.0))


def test_change_within_tolerance():
    assert not is_significant_change(_snapshot(1.0), _snapshot(1.0005))


def test_amount_change_beyond_tolerance():
    assert is_significant_change(_snapshot(1.0), _snapshot(1.01))


def test_total_change_is_significant():
    assert is_significant_change(_snapshot(1.0, total=10.0), _snapshot(1.0, total=20.0))


def test_speed_latency_jitter_is_not_significant():
    assert not speed_results_changed([_ok("https://a", 100)], [_ok("https://a", 180)])


def test_speed_status_flip_is_significant():
    old = [_ok("https://a")]
    new = [SpeedTestResult.failed("https://a", "timeout")]
    assert speed_results_changed(old, new)


def test_speed_url_set_change_is_significant():
    assert speed_results_changed([_ok("https://a")], [_ok("https://b")])
    assert speed_results_changed([_ok("https://a")], [_ok("https://a"), _ok("https://b")])
    assert speed_results_changed([_ok("https://a")], [])
