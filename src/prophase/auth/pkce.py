"""PKCE (Proof Key for Code Exchange) utilities for OAuth 2.0."""

import base64
import hashlib
import secrets
import string

from prophase.auth.models import PKCEPair

# RFC 7636 unreserved characters: ALPHA / DIGIT / "-" / "." / "_" / "~"
UNRESERVED_CHARSET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-._~"

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


def generate_verifier(length: int = MAX_VERIFIER_LENGTH) -> str:
    """Generate a PKCE code verifier.

    Each byte from the CSPRNG is folded into the unreserved charset by modulo.

    Args:
        length: Number of characters, 43-128 per RFC 7636.

    Returns:
        Random verifier string of exactly ``length`` characters.

    Raises:
        ValueError: If length is outside the RFC 7636 range.
    """
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"Verifier length must be {MIN_VERIFIER_LENGTH}-{MAX_VERIFIER_LENGTH}, got {length}"
        )

    random_bytes = secrets.token_bytes(length)
    return "".join(UNRESERVED_CHARSET[b % len(UNRESERVED_CHARSET)] for b in random_bytes)


def generate_challenge(verifier: str) -> str:
    """Derive the S256 code challenge: base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce(length: int = MAX_VERIFIER_LENGTH) -> PKCEPair:
    """Generate a fresh verifier and its matching challenge."""
    verifier = generate_verifier(length)
    return PKCEPair(verifier=verifier, challenge=generate_challenge(verifier))
