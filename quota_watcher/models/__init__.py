"""Data models for Quota Watcher."""

from .platforms import PlatformType, Credentials, CredentialValidation, ConnectionTestResult
from .quota import (
    BudgetPeriod,
    PeriodKind,
    ExtendedQuotaData,
    PackyCodeExtendedData,
    CubenceExtendedData,
    QuotaSnapshot,
    QuotaResult,
)
from .speed_test import SpeedTestResult, SpeedTestStatus, min_latency
from .config import WatcherConfig, PlatformConfig, WidgetConfig

__all__ = [
    "PlatformType",
    "Credentials",
    "CredentialValidation",
    "ConnectionTestResult",
    "BudgetPeriod",
    "PeriodKind",
    "ExtendedQuotaData",
    "PackyCodeExtendedData",
    "CubenceExtendedData",
    "QuotaSnapshot",
    "QuotaResult",
    "SpeedTestResult",
    "SpeedTestStatus",
    "min_latency",
    "WatcherConfig",
    "PlatformConfig",
    "WidgetConfig",
]
