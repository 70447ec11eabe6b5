"""Authorization request construction and code-for-token exchange."""

import logging
from urllib.parse import urlencode, urlparse

import httpx

from prophase.auth.models import TokenResponse
from prophase.exceptions import ConfigurationError, ExchangeHttpError, TokenExchangeError

logger = logging.getLogger(__name__)

CODE_CHALLENGE_METHOD = "S256"


def require_absolute_url(url: str, name: str) -> str:
    """Return ``url`` unchanged if it has a scheme and a host.

    Raises:
        ConfigurationError: If the URL is relative or unparseable.
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {name}: {url!r}") from e
    if not parsed.scheme or not parsed.netloc:
        raise ConfigurationError(f"{name} must be an absolute URL, got {url!r}")
    return url


def build_authorization_url(
    code_challenge: str,
    client_id: str,
    redirect_uri: str,
    auth_endpoint: str,
) -> str:
    """Build the OAuth authorization URL.

    Args:
        code_challenge: PKCE code challenge (S256).
        client_id: Registered public client identifier.
        redirect_uri: Deep-link URI the server redirects back to.
        auth_endpoint: Absolute authorization endpoint URL.

    Returns:
        Full authorization URL to open in browser.

    Raises:
        ConfigurationError: If auth_endpoint is not an absolute URL.
    """
    require_absolute_url(auth_endpoint, "auth_endpoint")

    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
    }
    separator = "&" if urlparse(auth_endpoint).query else "?"
    return f"{auth_endpoint}{separator}{urlencode(params)}"


async def exchange_code_for_token(
    code: str,
    code_verifier: str,
    client_id: str,
    redirect_uri: str,
    token_endpoint: str,
    timeout: float = 30.0,
) -> TokenResponse:
    """Exchange an authorization code for a token.

    Args:
        code: Authorization code from the redirect.
        code_verifier: PKCE verifier matching the challenge sent earlier.
        client_id: Registered public client identifier.
        redirect_uri: Same redirect URI used in the authorization request.
        token_endpoint: Absolute token endpoint URL.
        timeout: HTTP timeout in seconds.

    Returns:
        The JSON object returned by the token endpoint, unmodified.

    Raises:
        ExchangeHttpError: If the endpoint answers with a non-success status.
        TokenExchangeError: On transport failure or a non-object body.
    """
    logger.debug("Exchanging authorization code at %s", token_endpoint)

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                token_endpoint,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "client_id": client_id,
                    "code_verifier": code_verifier,
                },
            )
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"Token exchange failed: {e}") from e

    if not response.is_success:
        logger.warning("Token endpoint returned %d", response.status_code)
        raise ExchangeHttpError(response.status_code, response.text)

    try:
        data = response.json()
    except ValueError as e:
        raise TokenExchangeError(f"Token endpoint returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise TokenExchangeError("Token endpoint did not return a JSON object")

    logger.debug("Token exchange succeeded")
    return data
