"""Quota Watcher - API credit monitor for relay platforms."""

__version__ = "0.1.0"
