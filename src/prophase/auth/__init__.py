"""Browser login with OAuth 2.0 authorization code + PKCE over deep links."""

from prophase.auth.bridge import CallbackBridge, DeepLinkChannel, extract_callback_url
from prophase.auth.browser import Browser, SystemBrowser
from prophase.auth.channel import LocalDeepLinkChannel, LoopbackDeepLinkChannel, forward_deep_link
from prophase.auth.models import OAuthConfig, PKCEPair, SessionState, TokenResponse
from prophase.auth.oauth import build_authorization_url, exchange_code_for_token
from prophase.auth.pkce import generate_challenge, generate_pkce, generate_verifier
from prophase.auth.session import SessionController

__all__ = [
    "Browser",
    "CallbackBridge",
    "DeepLinkChannel",
    "LocalDeepLinkChannel",
    "LoopbackDeepLinkChannel",
    "OAuthConfig",
    "PKCEPair",
    "SessionController",
    "SessionState",
    "SystemBrowser",
    "TokenResponse",
    "build_authorization_url",
    "exchange_code_for_token",
    "extract_callback_url",
    "forward_deep_link",
    "generate_challenge",
    "generate_pkce",
    "generate_verifier",
]
