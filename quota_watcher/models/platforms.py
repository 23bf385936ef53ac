"""Platform identifiers and credential models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class PlatformType(str, Enum):
    """Supported credit balance platforms."""

    NEWAPI = "newapi"
    PACKYAPI = "packyapi"
    PACKYCODE = "packycode"
    CUBENCE = "cubence"

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        names = {
            self.NEWAPI: "NewAPI",
            self.PACKYAPI: "PackyAPI",
            self.PACKYCODE: "PackyCode",
            self.CUBENCE: "Cubence",
        }
        return names.get(self, self.value)

    @property
    def requires_user_id(self) -> bool:
        """Whether the platform needs the secondary user-id header."""
        return self in (self.NEWAPI, self.PACKYAPI)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["PlatformType"]:
        """Parse a platform identifier, returning None when unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Credentials:
    """
    Credentials for one platform.

    Owned by the configuration layer and read-only to adapters and the poller.
    `user_id` is only required by the NewAPI-style platforms.
    """
    base_url: str = ""
    access_token: str = ""
    user_id: str = ""

    @property
    def normalized_base_url(self) -> str:
        """Base URL without trailing slashes."""
        return self.base_url.strip().rstrip("/")


@dataclass(frozen=True)
class CredentialValidation:
    """Result of a pure credential check."""
    valid: bool
    missing: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.valid:
            return ""
        return f"Missing required fields: {', '.join(self.missing)}"


@dataclass(frozen=True)
class ConnectionTestResult:
    """Outcome of an adapter connection test."""
    success: bool
    message: str
