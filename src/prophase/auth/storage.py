"""On-disk storage for the token handed back by a completed login."""

import logging
import os
import time
from pathlib import Path

import aiofiles
from pydantic import ValidationError

from prophase.auth.models import StoredToken, TokenResponse

logger = logging.getLogger(__name__)

TOKEN_FILE = "token.json"


def _get_token_path() -> Path:
    """Get the path to the token file.

    Uses XDG_DATA_HOME if set, otherwise ~/.local/share/prophase/token.json
    """
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        base = Path(xdg_data)
    else:
        base = Path.home() / ".local" / "share"
    return base / "prophase" / TOKEN_FILE


async def load_token() -> StoredToken | None:
    """Load the stored token. Returns None if absent or unreadable."""
    token_path = _get_token_path()

    if not token_path.exists():
        return None

    try:
        async with aiofiles.open(token_path) as f:
            content = await f.read()
        return StoredToken.model_validate_json(content)
    except (ValidationError, OSError, ValueError) as e:
        logger.warning("Failed to load token from %s: %s", token_path, e)
        return None


async def save_token(token: TokenResponse) -> StoredToken:
    """Save a token response to disk with owner-only permissions."""
    token_path = _get_token_path()
    token_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

    stored = StoredToken(token=token, obtained_at=int(time.time()))

    # Write to temp file first for atomic operation
    temp_path = token_path.with_suffix(".tmp")
    async with aiofiles.open(temp_path, "w") as f:
        await f.write(stored.model_dump_json(indent=2))

    temp_path.chmod(0o600)
    temp_path.replace(token_path)
    return stored


async def clear_token() -> bool:
    """Delete the stored token. Returns True if one existed."""
    token_path = _get_token_path()
    try:
        token_path.unlink()
    except FileNotFoundError:
        return False
    return True
