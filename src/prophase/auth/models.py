"""Authentication data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, ConfigDict, Field

from prophase.exceptions import MissingCodeError

TokenResponse = dict[str, Any]


class SessionState(str, Enum):
    """Lifecycle of a single login attempt."""

    IDLE = "idle"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class PKCEPair(BaseModel):
    """PKCE verifier and its S256 challenge."""

    model_config = ConfigDict(frozen=True)

    verifier: str = Field(repr=False)
    challenge: str


class OAuthConfig(BaseModel):
    """Client registration and endpoints for the authorization server."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    redirect_uri: str
    auth_endpoint: str
    token_endpoint: str


class AuthorizationResponse(BaseModel):
    """Query parameters carried by the redirect back to the app."""

    code: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_url(cls, url: str) -> "AuthorizationResponse":
        """Parse a callback URL such as ``myapp://callback?code=XYZ``.

        Raises:
            MissingCodeError: If the URL cannot be parsed.
        """
        try:
            query = parse_qs(urlparse(url).query)
        except ValueError as e:
            raise MissingCodeError(f"Malformed callback URL: {e}") from e

        def first(key: str) -> str | None:
            values = query.get(key)
            return values[0] if values else None

        return cls(
            code=first("code"),
            error=first("error"),
            error_description=first("error_description"),
        )

    def is_error(self) -> bool:
        return self.error is not None

    def is_success(self) -> bool:
        return self.error is None and bool(self.code)


@dataclass(frozen=True)
class RedirectReceived:
    """A deep link carrying a callback URL."""

    url: str


@dataclass(frozen=True)
class MalformedCallback:
    """A deep link whose payload held no usable URL."""

    error: MissingCodeError


CallbackEvent = RedirectReceived | MalformedCallback


class StoredToken(BaseModel):
    """Token response persisted by the CLI after a successful login."""

    token: TokenResponse
    obtained_at: int
