"""HTTP transport shared by platform adapters and the latency prober.

The transport only knows how to perform a GET or HEAD with headers and a
timeout. It returns the status and body for any HTTP response and raises
TransportError for timeouts and connection failures. Interpreting status
codes is left to the callers.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class HttpResponse:
    """Status and body of a completed request."""
    status: int
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body as JSON. Raises ValueError on malformed bodies."""
        return json.loads(self.body)


class HttpTransport:
    """
    aiohttp-backed transport.

    A single ClientSession is created lazily on first use (it must be created
    inside the running event loop) and reused until close().
    """

    def __init__(self, proxy_url: Optional[str] = None, user_agent: str = "quota-watcher"):
        self._proxy_url = proxy_url or None
        self._user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def proxy_url(self) -> Optional[str]:
        return self._proxy_url

    def update_proxy_configuration(self, proxy_url: Optional[str] = None):
        """Route subsequent requests through `proxy_url` (None disables)."""
        if (proxy_url or None) != self._proxy_url:
            logger.info("Proxy %s", f"set to {proxy_url}" if proxy_url else "disabled")
        self._proxy_url = proxy_url or None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self._user_agent})
        return self._session

    async def get(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> HttpResponse:
        """Perform a GET and return the full body."""
        return await self._request("GET", url, headers=headers, timeout=timeout, read_body=True)

    async def head(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> HttpResponse:
        """Perform a HEAD; redirects are not followed."""
        return await self._request("HEAD", url, headers=headers, timeout=timeout, read_body=False)

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]],
        timeout: float,
        read_body: bool,
    ) -> HttpResponse:
        session = self._get_session()
        logger.debug("%s %s (timeout=%ss)", method, url, timeout)
        try:
            async with session.request(
                method,
                url,
                headers=headers or {},
                proxy=self._proxy_url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=read_body,
            ) as response:
                body = await response.text() if read_body else ""
                return HttpResponse(
                    status=response.status,
                    body=body,
                    headers={k: v for k, v in response.headers.items()},
                )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout:g}s", timed_out=True) from e
        except aiohttp.InvalidURL as e:
            raise TransportError(f"Invalid URL: {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Connection error: {e}") from e
        except ValueError as e:
            # IDNA failures on malformed hosts surface as UnicodeError
            raise TransportError(f"Invalid URL: {url}") from e

    async def close(self):
        """Close the underlying session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
