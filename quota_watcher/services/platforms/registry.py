"""Adapter registry: platform identifier -> adapter instance."""

import logging
from typing import Union

from ...models.platforms import PlatformType
from ..errors import UnknownPlatformError
from ..http_transport import HttpTransport
from .base import BasePlatformAdapter
from .cubence import CubenceAdapter
from .newapi import NewApiAdapter
from .packyapi import PackyAPIAdapter
from .packycode import PackyCodeMonthlyAdapter

logger = logging.getLogger(__name__)

DEFAULT_PLATFORM = PlatformType.NEWAPI


class AdapterRegistry:
    """
    Holds one adapter per platform.

    Created once at start-up and passed to the poller. Unknown identifiers
    resolve to the NewAPI adapter unless `strict` is set, in which case
    UnknownPlatformError is raised.
    """

    def __init__(self, transport: HttpTransport, strict: bool = False):
        self.transport = transport
        self.strict = strict
        self._adapters: dict[PlatformType, BasePlatformAdapter] = {
            PlatformType.NEWAPI: NewApiAdapter(transport),
            PlatformType.PACKYAPI: PackyAPIAdapter(transport),
            PlatformType.PACKYCODE: PackyCodeMonthlyAdapter(transport),
            PlatformType.CUBENCE: CubenceAdapter(transport),
        }

    def get_adapter(self, platform_type: Union[str, PlatformType, None] = DEFAULT_PLATFORM) -> BasePlatformAdapter:
        platform = PlatformType.parse(platform_type)
        if platform is not None:
            return self._adapters[platform]

        if self.strict:
            raise UnknownPlatformError(str(platform_type))

        logger.warning("Unknown platform %r, falling back to %s", platform_type, DEFAULT_PLATFORM.display_name)
        return self._adapters[DEFAULT_PLATFORM]

    def supported_platforms(self) -> list[PlatformType]:
        return list(self._adapters)
