"""Utility functions for Quota Watcher."""

from .settings import SettingsManager, load_config

__all__ = [
    "SettingsManager",
    "load_config",
]
