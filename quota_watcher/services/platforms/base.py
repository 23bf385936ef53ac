"""
Base platform adapter class.

WORKFLOW OVERVIEW:
==================
Each credit balance platform (NewAPI, PackyAPI, PackyCode, Cubence) has its
own adapter class inheriting from BasePlatformAdapter.

ARCHITECTURE:
The adapter layer uses a strategy pattern:
- BasePlatformAdapter: abstract base defining the interface and the shared
  request/error plumbing
- Platform adapters: implement build_headers() and _parse_response(), and
  override build_url() or _request() where the platform needs it
- AdapterRegistry: maps platform identifiers to adapter instances
- QuotaPoller: calls fetch_quota() on the active adapter on every tick

WORKFLOW:
1. The poller calls fetch_quota(credentials)
2. The adapter builds the platform URL and auth headers
3. One GET is performed through the shared HttpTransport
4. Non-2xx statuses, transport errors and malformed bodies become FetchError
5. The JSON body is parsed into the platform's pydantic response model and
   converted into a normalized QuotaSnapshot
6. fetch_quota() wraps everything into a QuotaResult; it never raises
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import ValidationError

from ...models.platforms import ConnectionTestResult, Credentials, CredentialValidation, PlatformType
from ...models.quota import QuotaResult, QuotaSnapshot
from ..errors import FetchError, TransportError
from ..http_transport import DEFAULT_TIMEOUT, HttpResponse, HttpTransport

logger = logging.getLogger(__name__)


class BasePlatformAdapter(ABC):
    """
    Base class for platform adapters.

    Subclasses must implement:
    - build_headers(credentials): auth headers for the platform GET
    - _parse_response(data): convert a decoded body to a snapshot

    fetch_quota() and test_connection() are implemented here and must not be
    overridden to raise.
    """

    platform_type: PlatformType
    api_path: str = ""

    def __init__(self, transport: HttpTransport, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the adapter.

        Args:
            transport: Shared HTTP transport
            timeout: Per-request timeout in seconds
        """
        self.transport = transport
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.platform_type.display_name

    def validate_credentials(self, credentials: Credentials) -> CredentialValidation:
        """Check that base URL, token and (where needed) user id are set."""
        missing = []
        if not credentials.base_url.strip():
            missing.append("baseUrl")
        if not credentials.access_token.strip():
            missing.append("accessToken")
        if self.platform_type.requires_user_id and not credentials.user_id.strip():
            missing.append("userId")
        return CredentialValidation(valid=not missing, missing=missing)

    def build_url(self, credentials: Credentials) -> str:
        return f"{credentials.normalized_base_url}{self.api_path}"

    @abstractmethod
    def build_headers(self, credentials: Credentials) -> dict[str, str]:
        """Platform-specific auth headers."""

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> QuotaSnapshot:
        """
        Convert a decoded response body to a snapshot.

        Raises FetchError when a required part of the body is missing.
        Optional sub-fields must default instead of failing.
        """

    async def _request(self, credentials: Credentials) -> HttpResponse:
        url = self.build_url(credentials)
        logger.info("%s: fetching quota from %s", self.name, url)
        response = await self.transport.get(url, headers=self.build_headers(credentials), timeout=self.timeout)
        if not response.ok:
            raise FetchError(self._describe_status(response), status=response.status)
        return response

    def _describe_status(self, response: HttpResponse) -> str:
        body = response.body.strip()
        if len(body) > 200:
            body = body[:200] + "..."
        return f"HTTP {response.status}: {body}" if body else f"HTTP {response.status}"

    def _decode(self, response: HttpResponse) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"Failed to parse response: {e}") from e
        if not isinstance(data, dict):
            raise FetchError("Unexpected response format: expected a JSON object")
        return data

    async def fetch_quota(self, credentials: Credentials) -> QuotaResult:
        """
        Fetch and normalize the quota for `credentials`.

        Returns:
            QuotaResult holding either the snapshot or an error message
        """
        try:
            response = await self._request(credentials)
            snapshot = self._parse_response(self._decode(response))
        except FetchError as e:
            logger.warning("%s: fetch failed: %s", self.name, e.message)
            return QuotaResult.failure(e.message)
        except TransportError as e:
            logger.warning("%s: transport error: %s", self.name, e.message)
            return QuotaResult.failure(e.message)
        except ValidationError as e:
            logger.warning("%s: unexpected response shape: %s", self.name, e)
            return QuotaResult.failure(f"Unexpected response format: {e.error_count()} invalid field(s)")
        except Exception as e:
            logger.exception("%s: unexpected error while fetching quota", self.name)
            return QuotaResult.failure(str(e) or type(e).__name__)

        logger.info(
            "%s: quota fetched - used=%.4f, total=%.4f, remaining=%.4f",
            self.name, snapshot.used, snapshot.total, snapshot.remaining,
        )
        return QuotaResult.ok(snapshot)

    async def test_connection(self, credentials: Credentials) -> ConnectionTestResult:
        """Validate credentials, then try a single fetch."""
        validation = self.validate_credentials(credentials)
        if not validation.valid:
            return ConnectionTestResult(success=False, message=validation.message)

        result = await self.fetch_quota(credentials)
        if result.success:
            return ConnectionTestResult(success=True, message="Connection successful")
        return ConnectionTestResult(success=False, message=result.error or "Connection failed")


def auth_failure_message(error: FetchError) -> Optional[str]:
    """Friendly message for 401/403 responses, None otherwise."""
    if error.status in (401, 403):
        return "Authentication failed, please check the access token"
    return None
