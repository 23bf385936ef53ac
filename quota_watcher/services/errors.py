"""Error taxonomy.

- ConfigError: missing credentials or unknown platform; never retried
- FetchError: transient fetch failure (HTTP status, timeout, bad body)
- HardFetchError: retries exhausted; polling stops until a manual refresh
- TransportError: raised by the HTTP transport for timeouts and network errors
- ProbeError: a single latency probe failed; recorded, never escalated
"""

from typing import Optional


class QuotaWatcherError(Exception):
    """Base class for all watcher errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(QuotaWatcherError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class UnknownPlatformError(ConfigError):
    """Platform identifier not recognized (strict mode only)."""

    def __init__(self, platform_type: str):
        super().__init__(f"Unknown platform: {platform_type}")
        self.platform_type = platform_type


class FetchError(QuotaWatcherError):
    """A quota fetch failed; eligible for retry."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class HardFetchError(FetchError):
    """All retries of a fetch cycle failed."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class TransportError(QuotaWatcherError):
    """Network-level failure: connection error or timeout."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class ProbeError(QuotaWatcherError):
    """A latency probe could not reach its host."""
