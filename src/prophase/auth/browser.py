"""Launching the authorization URL in the user's browser."""

import asyncio
import logging
import webbrowser
from typing import Protocol

from prophase.exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)


class Browser(Protocol):
    """Something that can show a URL to the user."""

    async def open(self, url: str) -> None: ...


class SystemBrowser:
    """Opens URLs in the system's default browser."""

    async def open(self, url: str) -> None:
        """Open ``url`` without blocking the event loop.

        Raises:
            BrowserLaunchError: If no browser could be started.
        """
        try:
            opened = await asyncio.to_thread(webbrowser.open, url)
        except webbrowser.Error as e:
            raise BrowserLaunchError(f"Failed to open browser: {e}") from e
        if not opened:
            raise BrowserLaunchError("Failed to open browser: no usable browser found")
        logger.debug("Opened authorization URL in system browser")
