"""Status text and tooltip rendering (no Qt dependency)."""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

from ..models.config import WidgetConfig
from ..models.quota import BudgetPeriod, PackyCodeExtendedData, QuotaSnapshot
from ..models.speed_test import SpeedTestResult, min_latency

ICON_OK = "🟢"
ICON_LOW = "🟡"
ICON_CRITICAL = "🔴"
ERROR_MARKER = "⚠"
PLACEHOLDER = "--"


def status_icon(remaining_percentage: float) -> str:
    """Traffic light for the share of credit still available."""
    if remaining_percentage > 60:
        return ICON_OK
    if remaining_percentage > 20:
        return ICON_LOW
    return ICON_CRITICAL


def format_usd(amount: float) -> str:
    return f"${amount:.2f}"


def format_status_text(
    snapshot: Optional[QuotaSnapshot],
    speed_results: Optional[list[SpeedTestResult]] = None,
    widgets: Optional[WidgetConfig] = None,
) -> str:
    """
    Compact one-line status, e.g. "🟢 25.0% $0.50 $2.00 120ms".

    Each part can be switched off through the widget settings; with nothing
    to show the placeholder is returned.
    """
    if snapshot is None:
        return PLACEHOLDER
    widgets = widgets or WidgetConfig()

    parts = []
    if widgets.status_icon:
        parts.append(status_icon(snapshot.remaining_percentage))
    if widgets.percentage:
        parts.append(f"{snapshot.percentage:.1f}%")
    if widgets.used:
        parts.append(format_usd(snapshot.used))
    if widgets.total:
        parts.append(format_usd(snapshot.total))
    if widgets.latency:
        latency = min_latency(speed_results or [])
        if latency is not None:
            parts.append(f"{latency}ms")
    return " ".join(parts) if parts else PLACEHOLDER


def loading_text() -> str:
    return "Querying..."


def retrying_text(retry_count: int, max_retries: int) -> str:
    return f"Retrying ({retry_count}/{max_retries})"


def config_missing_text(missing: list[str]) -> str:
    if not missing:
        return "Not configured"
    return f"Not configured: {', '.join(missing)}"


def error_text(message: str) -> str:
    return f"Query failed: {message}"


def stale_status_text(
    snapshot: Optional[QuotaSnapshot],
    speed_results: Optional[list[SpeedTestResult]] = None,
    widgets: Optional[WidgetConfig] = None,
) -> str:
    """Status text after a failure: last known numbers plus an error marker."""
    if snapshot is None:
        return f"{ERROR_MARKER} Query failed"
    return f"{format_status_text(snapshot, speed_results, widgets)} {ERROR_MARKER}"


def shorten_url(url: str) -> str:
    host = urlsplit(url).hostname
    if host:
        return host
    return url if len(url) <= 20 else url[:17] + "..."


def _days_until(moment: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    seconds = (moment - now).total_seconds()
    days, rest = divmod(seconds, 86400)
    return int(days) + (1 if rest > 0 else 0)


def _period_line(title: str, period: BudgetPeriod) -> str:
    return (
        f"{title}: {format_usd(period.spent)} / {format_usd(period.budget)} "
        f"({period.percentage:.1f}% used, {format_usd(period.remaining)} left)"
    )


def format_tooltip(
    snapshot: Optional[QuotaSnapshot],
    speed_results: Optional[list[SpeedTestResult]] = None,
    platform_name: str = "",
    error: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Plain-text multi-line tooltip for the current snapshot."""
    lines = []
    if platform_name:
        lines.append(platform_name)

    if snapshot is None:
        lines.append(error_text(error) if error else "No data yet")
        return "\n".join(lines)

    extended = snapshot.extended
    if isinstance(extended, PackyCodeExtendedData):
        if extended.username:
            lines.append(f"User: {extended.username}")
        lines.append(f"Plan: {snapshot.plan_name}")
        if extended.plan_expires_at is not None:
            lines.append(f"Expires in {_days_until(extended.plan_expires_at, now)} day(s)")
    else:
        lines.append(f"Plan: {snapshot.plan_name}")
    if extended is not None and extended.balance_usd is not None:
        lines.append(f"Balance: {format_usd(extended.balance_usd)}")

    periods = snapshot.periods()
    if periods:
        for kind, period in periods:
            lines.append(_period_line(kind.display_name, period))
    else:
        lines.append(f"Remaining: {format_usd(snapshot.remaining)} ({snapshot.remaining_percentage:.1f}%)")
        lines.append(f"Used: {format_usd(snapshot.used)} ({snapshot.percentage:.1f}%)")
        lines.append(f"Total: {format_usd(snapshot.total)}")

    if speed_results:
        lines.append("")
        lines.append("Latency")
        for result in speed_results:
            latency = f"{result.latency_ms}ms" if result.is_success else "-"
            lines.append(f"  {shorten_url(result.url)}: {latency}")

    if error:
        lines.append("")
        lines.append(f"{ERROR_MARKER} {error_text(error)}")
    return "\n".join(lines)
