"""Tests for CLI commands."""

import socket
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from prophase.auth.channel import LoopbackDeepLinkChannel, forward_deep_link
from prophase.auth.models import StoredToken
from prophase.auth.storage import load_token
from prophase.cli.auth import _login_async
from prophase.cli.main import app
from prophase.exceptions import ConfigurationError, DeepLinkForwardError, OAuthTimeoutError
from prophase.settings import Settings

runner = CliRunner()

CODE_URL = "myapp://callback?code=ABC123"
TOKEN = {"access_token": "tok", "token_type": "Bearer"}


def _settings() -> MagicMock:
    settings = MagicMock()
    settings.client_id = "desktop_app"
    settings.auth_endpoint = "http://x/auth"
    settings.deeplink_host = "127.0.0.1"
    settings.deeplink_port = 47615
    return settings


def _login_settings(port: int = 0) -> Settings:
    return Settings(
        auth_endpoint="http://host/auth",
        token_endpoint="http://host/token",
        deeplink_port=port,
        oauth_timeout=5.0,
    )


class _RecordingChannel(LoopbackDeepLinkChannel):
    """Loopback channel that keeps track of the instances the CLI creates."""

    instances: list["_RecordingChannel"] = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        _RecordingChannel.instances.append(self)


class _RedirectingBrowser:
    """Browser stand-in that answers by forwarding the redirect to the channel."""

    def __init__(self, redirect_url: str) -> None:
        self.redirect_url = redirect_url
        self.urls: list[str] = []

    async def open(self, url: str) -> None:
        self.urls.append(url)
        channel = _RecordingChannel.instances[-1]
        await forward_deep_link(self.redirect_url, channel.host, channel.port)


class TestLoginFlow:
    """Test the login wiring behind prophase auth login."""

    @pytest.fixture(autouse=True)
    def _isolate(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        _RecordingChannel.instances.clear()

    @pytest.mark.asyncio
    async def test_login_persists_token(self, mock_token_endpoint):
        """A forwarded deep link is exchanged and the token is saved."""
        browser = _RedirectingBrowser(CODE_URL)
        with (
            patch("prophase.cli.auth.get_settings", return_value=_login_settings()),
            patch("prophase.cli.auth.LoopbackDeepLinkChannel", _RecordingChannel),
            patch("prophase.cli.auth._ConsoleBrowser", return_value=browser),
            mock_token_endpoint(200, json_body=TOKEN) as client,
        ):
            stored = await _login_async(None)

        assert stored.token == TOKEN
        assert (await load_token()) == stored
        assert client.post.call_args.kwargs["data"]["code"] == "ABC123"
        assert len(browser.urls) == 1
        assert browser.urls[0].startswith("http://host/auth?")

        channel = _RecordingChannel.instances[-1]
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_foreign_scheme_is_not_accepted(self, mock_token_endpoint):
        """Deep links outside the allowed schemes never complete the login."""
        browser = _RedirectingBrowser("https://evil/callback?code=ABC123")
        with (
            patch("prophase.cli.auth.get_settings", return_value=_login_settings()),
            patch("prophase.cli.auth.LoopbackDeepLinkChannel", _RecordingChannel),
            patch("prophase.cli.auth._ConsoleBrowser", return_value=browser),
            mock_token_endpoint(200, json_body=TOKEN) as client,
        ):
            with pytest.raises(OAuthTimeoutError):
                await _login_async(0.2)

        client.post.assert_not_called()
        assert await load_token() is None
        assert _RecordingChannel.instances[-1].subscriber_count == 0

    def test_port_in_use_reported(self):
        """A busy loopback port is reported as an authentication failure."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen()
            port = sock.getsockname()[1]
            with patch("prophase.cli.auth.get_settings", return_value=_login_settings(port)):
                result = runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 1
        assert "Authentication failed" in result.stdout
        assert "Could not listen" in result.stdout


class TestAuthLogin:
    """Test prophase auth login command."""

    def test_login_success(self):
        """Successful login reports success."""
        stored = StoredToken(token={"access_token": "abc"}, obtained_at=int(time.time()))
        with patch("prophase.cli.auth._login_async", new_callable=AsyncMock) as mock_login:
            mock_login.return_value = stored
            result = runner.invoke(app, ["auth", "login", "--timeout", "10"])

        assert result.exit_code == 0
        assert "successfully authenticated" in result.stdout.lower()
        mock_login.assert_awaited_once_with(10.0)

    def test_login_timeout(self):
        """A timed-out login exits with code 1 and the error message."""
        with patch("prophase.cli.auth._login_async", new_callable=AsyncMock) as mock_login:
            mock_login.side_effect = OAuthTimeoutError(10.0)
            result = runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 1
        assert "OAuth timeout" in result.stdout

    def test_login_bad_configuration(self):
        """Configuration errors are reported, not raised."""
        with patch("prophase.cli.auth._login_async", new_callable=AsyncMock) as mock_login:
            mock_login.side_effect = ConfigurationError("auth_endpoint must be an absolute URL")
            result = runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 1
        assert "absolute URL" in result.stdout


class TestAuthStatus:
    """Test prophase auth status command."""

    def test_shows_not_logged_in(self):
        """Status says not logged in when nothing is stored."""
        with (
            patch("prophase.cli.auth.load_token", new_callable=AsyncMock) as mock_load,
            patch("prophase.cli.auth.get_settings", return_value=_settings()),
        ):
            mock_load.return_value = None
            result = runner.invoke(app, ["auth", "status"])

        assert result.exit_code == 0
        assert "Not logged" in result.stdout

    def test_shows_logged_in(self):
        """Status shows the login time when a token is stored."""
        stored = StoredToken(token={"access_token": "abc"}, obtained_at=int(time.time()))
        with (
            patch("prophase.cli.auth.load_token", new_callable=AsyncMock) as mock_load,
            patch("prophase.cli.auth.get_settings", return_value=_settings()),
        ):
            mock_load.return_value = stored
            result = runner.invoke(app, ["auth", "status"])

        assert result.exit_code == 0
        assert "Logged in" in result.stdout


class TestAuthLogout:
    """Test prophase auth logout command."""

    def test_logout_clears_token(self):
        """Logout removes the stored token."""
        with patch("prophase.cli.auth.clear_token", new_callable=AsyncMock) as mock_clear:
            mock_clear.return_value = True
            result = runner.invoke(app, ["auth", "logout"])

        assert result.exit_code == 0
        assert "logged out" in result.stdout.lower()
        mock_clear.assert_awaited_once()

    def test_logout_without_token(self):
        with patch("prophase.cli.auth.clear_token", new_callable=AsyncMock) as mock_clear:
            mock_clear.return_value = False
            result = runner.invoke(app, ["auth", "logout"])

        assert result.exit_code == 0
        assert "no stored token" in result.stdout.lower()


class TestDeeplink:
    """Test prophase deeplink command."""

    def test_forwards_url(self):
        """deeplink forwards the URL to the loopback channel."""
        with (
            patch("prophase.cli.main.forward_deep_link", new_callable=AsyncMock) as mock_forward,
            patch("prophase.cli.main.get_settings", return_value=_settings()),
        ):
            result = runner.invoke(app, ["deeplink", "myapp://callback?code=ABC123"])

        assert result.exit_code == 0
        mock_forward.assert_awaited_once_with(
            "myapp://callback?code=ABC123", "127.0.0.1", 47615
        )

    def test_forward_failure_exits_nonzero(self):
        """An unreachable login exits with code 1."""
        with (
            patch("prophase.cli.main.forward_deep_link", new_callable=AsyncMock) as mock_forward,
            patch("prophase.cli.main.get_settings", return_value=_settings()),
        ):
            mock_forward.side_effect = DeepLinkForwardError("No login is waiting for this deep link")
            result = runner.invoke(app, ["deeplink", "myapp://callback?code=ABC123"])

        assert result.exit_code == 1
