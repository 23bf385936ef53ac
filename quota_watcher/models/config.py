"""Watcher configuration models.

Persisted keys are camelCase (see utils/settings.py); the models accept both
the persisted aliases and the Python field names.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .platforms import Credentials, PlatformType

MIN_POLLING_INTERVAL_MS = 10_000
DEFAULT_POLLING_INTERVAL_MS = 60_000


class _SettingsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PlatformConfig(_SettingsModel):
    """Per-platform connection settings."""
    base_url: str = Field("", alias="baseUrl")
    access_token: str = Field("", alias="accessToken")
    user_id: str = Field("", alias="userId")
    speed_test_urls: list[str] = Field(default_factory=list, alias="speedTestUrls")

    @field_validator("base_url", "access_token", "user_id", mode="before")
    @classmethod
    def _strip(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("speed_test_urls", mode="before")
    @classmethod
    def _clean_urls(cls, value):
        if not value:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(url).strip() for url in value if str(url).strip()]

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            base_url=self.base_url,
            access_token=self.access_token,
            user_id=self.user_id,
        )

    @property
    def probe_urls(self) -> list[str]:
        """Configured speed test URLs, falling back to the base URL."""
        if self.speed_test_urls:
            return list(self.speed_test_urls)
        if self.base_url:
            return [self.base_url]
        return []


class WidgetConfig(_SettingsModel):
    """Which parts of the status text are shown."""
    status_icon: bool = Field(True, alias="statusIcon")
    percentage: bool = True
    used: bool = True
    total: bool = True
    latency: bool = True


class WatcherConfig(_SettingsModel):
    """Complete watcher configuration."""
    enabled: bool = True
    speed_test_enabled: bool = Field(True, alias="speedTestEnabled")
    platform_type: str = Field(PlatformType.NEWAPI.value, alias="platformType")
    polling_interval: int = Field(DEFAULT_POLLING_INTERVAL_MS, alias="pollingInterval")
    strict_platform: bool = Field(False, alias="strictPlatform")
    proxy_url: Optional[str] = Field(None, alias="proxyUrl")
    widgets: WidgetConfig = Field(default_factory=WidgetConfig)
    platforms: dict[str, PlatformConfig] = Field(default_factory=dict)

    @field_validator("polling_interval")
    @classmethod
    def _clamp_interval(cls, value: int) -> int:
        return max(MIN_POLLING_INTERVAL_MS, value)

    @field_validator("proxy_url", mode="before")
    @classmethod
    def _blank_proxy(cls, value):
        if value is None:
            return None
        return str(value).strip() or None

    @field_validator("platform_type", mode="before")
    @classmethod
    def _normalize_platform(cls, value):
        return str(value or PlatformType.NEWAPI.value).strip().lower()

    @property
    def platform(self) -> PlatformConfig:
        """Settings of the active platform."""
        return self.platform_config(self.platform_type)

    def platform_config(self, platform_type: str) -> PlatformConfig:
        return self.platforms.get(platform_type) or PlatformConfig()

    @property
    def credentials(self) -> Credentials:
        return self.platform.credentials

    @property
    def platform_display_name(self) -> str:
        platform = PlatformType.parse(self.platform_type)
        return platform.display_name if platform else self.platform_type

    def with_platform(self, platform_type: str, platform: Optional[PlatformConfig] = None) -> "WatcherConfig":
        """Copy of this config with another active platform."""
        platforms = dict(self.platforms)
        if platform is not None:
            platforms[platform_type] = platform
        return self.model_copy(update={"platform_type": platform_type, "platforms": platforms})
