"""Shared test fixtures for auth tests."""

from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from prophase.auth.bridge import CallbackBridge
from prophase.auth.channel import LocalDeepLinkChannel
from prophase.auth.models import OAuthConfig
from prophase.auth.session import SessionController


class RecordingBrowser:
    """Browser stand-in that remembers the URLs it was asked to open."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    async def open(self, url: str) -> None:
        self.urls.append(url)


@contextmanager
def _mock_token_endpoint(status_code: int = 200, json_body=None, text: str = ""):
    """Patch httpx.AsyncClient so POSTs return a canned response.

    Yields the AsyncMock client instance so tests can inspect ``post`` calls.
    """
    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_client.return_value.__aenter__.return_value = mock_instance
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.is_success = 200 <= status_code < 300
        mock_response.text = text
        mock_response.json.return_value = json_body
        mock_instance.post.return_value = mock_response
        yield mock_instance


@pytest.fixture
def oauth_config() -> OAuthConfig:
    """OAuth configuration pointing at a fake host."""
    return OAuthConfig(
        client_id="desktop_app",
        redirect_uri="myapp://callback",
        auth_endpoint="http://host/auth",
        token_endpoint="http://host/token",
    )


@pytest.fixture
def browser() -> RecordingBrowser:
    return RecordingBrowser()


@pytest.fixture
def channel() -> LocalDeepLinkChannel:
    return LocalDeepLinkChannel()


@pytest.fixture
def bridge(channel: LocalDeepLinkChannel) -> CallbackBridge:
    return CallbackBridge(channel, allowed_schemes=["myapp"])


@pytest.fixture
def controller(
    oauth_config: OAuthConfig, bridge: CallbackBridge, browser: RecordingBrowser
) -> SessionController:
    return SessionController(oauth_config, bridge, browser=browser, timeout=5.0)


@pytest.fixture
def mock_token_endpoint():
    """Factory fixture: ``with mock_token_endpoint(400, text="...") as client: ...``."""
    return _mock_token_endpoint
