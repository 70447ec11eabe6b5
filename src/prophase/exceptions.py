"""Exception hierarchy for prophase."""


class ProphaseError(Exception):
    """Base exception for all prophase errors."""


class ConfigurationError(ProphaseError):
    """OAuth endpoint or client configuration is malformed."""


class AuthError(ProphaseError):
    """Base exception for authentication errors."""


class AlreadyPendingError(AuthError):
    """A login attempt is already in flight."""

    def __init__(self) -> None:
        super().__init__("A login attempt is already in progress")


class BrowserLaunchError(AuthError):
    """The system browser could not be opened."""


class CallbackError(AuthError):
    """The redirect carried an OAuth error parameter."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        message = f"OAuth error: {error}"
        if description:
            message = f"{message} - {description}"
        super().__init__(message)


class MissingCodeError(AuthError):
    """The redirect carried neither a code nor an error."""


class MissingCallbackUrlError(MissingCodeError):
    """The deep-link payload did not contain a callback URL."""

    def __init__(self) -> None:
        super().__init__("OAuth callback URL missing")


class MissingVerifierError(AuthError):
    """The PKCE verifier was gone when the code arrived."""

    def __init__(self) -> None:
        super().__init__("Code verifier not found")


class TokenExchangeError(AuthError):
    """Exchanging the authorization code for a token failed."""


class ExchangeHttpError(TokenExchangeError):
    """The token endpoint answered with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token exchange failed: {body}")


class OAuthTimeoutError(AuthError):
    """No callback arrived before the deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__("OAuth timeout")


class DeepLinkForwardError(AuthError):
    """A deep link could not be handed to the running login."""


class DeepLinkChannelError(AuthError):
    """The loopback deep-link endpoint could not be started."""
