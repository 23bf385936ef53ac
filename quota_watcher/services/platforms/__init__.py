"""Platform adapters for the supported credit balance services."""

from .base import BasePlatformAdapter
from .newapi import NewApiAdapter
from .packyapi import PackyAPIAdapter
from .packycode import PackyCodeMonthlyAdapter
from .cubence import CubenceAdapter
from .registry import AdapterRegistry

__all__ = [
    "BasePlatformAdapter",
    "NewApiAdapter",
    "PackyAPIAdapter",
    "PackyCodeMonthlyAdapter",
    "CubenceAdapter",
    "AdapterRegistry",
]
