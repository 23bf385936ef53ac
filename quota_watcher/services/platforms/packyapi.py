"""PackyAPI quota adapter.

PackyAPI runs a NewAPI deployment: same endpoint, same headers and the same
1/500000 USD quota units.
"""

from ...models.platforms import PlatformType
from .newapi import NewApiAdapter


class PackyAPIAdapter(NewApiAdapter):
    """Fetches account quota from PackyAPI."""

    platform_type = PlatformType.PACKYAPI
