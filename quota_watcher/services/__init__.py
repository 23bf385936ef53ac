"""Services layer for Quota Watcher."""

from .errors import (
    QuotaWatcherError,
    ConfigError,
    UnknownPlatformError,
    FetchError,
    HardFetchError,
    TransportError,
    ProbeError,
)
from .http_transport import HttpTransport, HttpResponse
from .speed_test_service import LatencyProber, normalize_probe_url
from .platforms import AdapterRegistry, BasePlatformAdapter

__all__ = [
    "QuotaWatcherError",
    "ConfigError",
    "UnknownPlatformError",
    "FetchError",
    "HardFetchError",
    "TransportError",
    "ProbeError",
    "HttpTransport",
    "HttpResponse",
    "LatencyProber",
    "normalize_probe_url",
    "AdapterRegistry",
    "BasePlatformAdapter",
]
