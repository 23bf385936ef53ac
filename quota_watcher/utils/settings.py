"""Settings persistence manager.

All config keys used across the app. Each key is persisted on set() and loaded
from settings.json at startup (when SettingsManager is first created).
Per-platform settings live under the platform identifier, e.g.

    {"platformType": "cubence",
     "cubence": {"baseUrl": "...", "accessToken": "...", "speedTestUrls": []}}
"""
import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..models.config import PlatformConfig, WatcherConfig
from ..models.platforms import PlatformType

logger = logging.getLogger(__name__)

APP_NAME = "QuotaWatcher"

# Registry of all persisted config keys (for documentation and validation)
CONFIG_KEYS = {
    # Polling
    "enabled",
    "platformType",
    "pollingInterval",
    "strictPlatform",
    # HTTP proxy for quota requests and latency probes
    "proxyUrl",
    # Latency probes
    "speedTestEnabled",
    # Status text
    "widgets",
    # Per-platform credentials and probe URLs
    *(p.value for p in PlatformType),
}


def default_config_dir(app_name: str = APP_NAME) -> Path:
    """Per-OS configuration directory."""
    system = platform.system()
    if system == "Darwin":  # macOS
        return Path.home() / "Library" / "Preferences" / app_name
    if system == "Windows":
        return Path.home() / "AppData" / "Local" / app_name
    return Path.home() / ".config" / app_name


class SettingsManager:
    """Manages application settings persistence."""

    def __init__(self, app_name: str = APP_NAME, config_dir: Optional[Path] = None):
        """Initialize settings manager."""
        config_dir = Path(config_dir) if config_dir else default_config_dir(app_name)
        config_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir = config_dir
        self.settings_file = config_dir / "settings.json"
        self._settings: dict[str, Any] = {}
        self._load()

    def _load(self):
        """Load settings from file."""
        if not self.settings_file.exists():
            self._settings = {}
            return
        try:
            with open(self.settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, using defaults: %s", self.settings_file, e)
            data = {}
        self._settings = data if isinstance(data, dict) else {}

        unknown = set(self._settings) - CONFIG_KEYS
        if unknown:
            logger.debug("Ignoring unknown settings keys: %s", ", ".join(sorted(unknown)))

    def _save(self):
        """Save settings to file."""
        try:
            # Set restrictive permissions, the file holds access tokens
            old_umask = os.umask(0o077)
            try:
                with open(self.settings_file, "w", encoding="utf-8") as f:
                    json.dump(self._settings, f, indent=2)
                os.chmod(self.settings_file, 0o600)
            finally:
                os.umask(old_umask)
        except OSError as e:
            logger.error("Could not save settings to %s: %s", self.settings_file, e)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value."""
        return self._settings.get(key, default)

    def set(self, key: str, value: Any):
        """Set a setting value."""
        self._settings[key] = value
        self._save()

    def delete(self, key: str):
        """Delete a setting."""
        if key in self._settings:
            del self._settings[key]
            self._save()

    def reload(self):
        """Re-read settings.json, picking up edits made outside the app."""
        self._load()

    def as_dict(self) -> dict[str, Any]:
        return dict(self._settings)

    def set_platform_value(self, platform_type: str, key: str, value: Any):
        """Set one field of a platform's settings, e.g. its accessToken."""
        section = dict(self._settings.get(platform_type) or {})
        section[key] = value
        self.set(platform_type, section)


def load_config(settings: SettingsManager) -> WatcherConfig:
    """
    Build the watcher configuration from persisted settings.

    Invalid values are dropped with a warning and replaced by defaults, so a
    hand-edited settings file never prevents start-up.
    """
    raw = settings.as_dict()
    platform_keys = {p.value for p in PlatformType}

    platforms = {}
    for key in platform_keys:
        section = raw.get(key)
        if not isinstance(section, dict):
            continue
        try:
            platforms[key] = PlatformConfig.model_validate(section)
        except ValidationError as e:
            logger.warning("Invalid %s settings ignored: %s", key, e)

    values = {key: raw[key] for key in CONFIG_KEYS - platform_keys if key in raw}
    try:
        return WatcherConfig.model_validate({**values, "platforms": platforms})
    except ValidationError as e:
        logger.warning("Invalid settings, falling back to defaults where needed: %s", e)

    # Keep every value that validates on its own
    accepted = {}
    for key, value in values.items():
        try:
            WatcherConfig.model_validate({key: value})
        except ValidationError:
            logger.warning("Ignoring invalid value for %s: %r", key, value)
            continue
        accepted[key] = value
    return WatcherConfig.model_validate({**accepted, "platforms": platforms})
