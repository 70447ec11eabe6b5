"""Relay deep-link notifications from the host platform into the event loop."""

import asyncio
import itertools
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Protocol
from urllib.parse import urlparse

from prophase.auth.models import CallbackEvent, MalformedCallback, RedirectReceived
from prophase.exceptions import MissingCallbackUrlError

logger = logging.getLogger(__name__)

DeepLinkHandler = Callable[[object], None]
CallbackListener = Callable[[CallbackEvent], None]
Unsubscribe = Callable[[], None]

# Keys and attributes that may wrap the URL, in lookup order.
_WRAPPER_FIELDS = ("payload", "url", "detail")
_MAX_UNWRAP_DEPTH = 4


class DeepLinkChannel(Protocol):
    """System-level source of deep-link notifications."""

    def subscribe(self, handler: DeepLinkHandler) -> Unsubscribe:
        """Register ``handler`` and return a callable that removes it.

        ``handler`` may be invoked from any thread.
        """
        ...


def extract_callback_url(payload: object) -> str:
    """Pull the callback URL out of a deep-link payload.

    Accepts a raw URL string, a JSON array of URLs (as emitted by desktop
    deep-link plugins), a list of URLs, or a mapping/object wrapping one of
    those under ``payload``, ``url`` or ``detail``.

    Raises:
        MissingCallbackUrlError: If no string URL can be found.
    """
    url = _unwrap(payload, _MAX_UNWRAP_DEPTH)
    if url is None:
        raise MissingCallbackUrlError()
    return url


def _unwrap(payload: object, depth: int) -> str | None:
    if depth <= 0 or payload is None:
        return None

    if isinstance(payload, str):
        text = payload.strip()
        if text.startswith("["):
            try:
                return _unwrap(json.loads(text), depth - 1)
            except ValueError:
                return None
        return text or None

    if isinstance(payload, Mapping):
        for key in _WRAPPER_FIELDS:
            if key in payload:
                url = _unwrap(payload[key], depth - 1)
                if url is not None:
                    return url
        return None

    if isinstance(payload, (list, tuple)):
        return _unwrap(payload[0], depth - 1) if payload else None

    for attr in _WRAPPER_FIELDS:
        value = getattr(payload, attr, None)
        if value is not None:
            url = _unwrap(value, depth - 1)
            if url is not None:
                return url
    return None


class CallbackBridge:
    """Turns platform deep links into callback events on the owning event loop.

    The bridge holds a channel subscription only while it has listeners, so a
    finished login never leaves a subscription behind.
    """

    def __init__(
        self,
        channel: DeepLinkChannel,
        allowed_schemes: Iterable[str] | None = None,
    ):
        """Initialize the bridge.

        Args:
            channel: Platform deep-link source.
            allowed_schemes: URI schemes relayed to listeners. None relays all.
        """
        self._channel = channel
        self._allowed_schemes = (
            frozenset(s.lower() for s in allowed_schemes) if allowed_schemes is not None else None
        )
        self._listeners: dict[int, CallbackListener] = {}
        self._ids = itertools.count(1)
        self._unsubscribe: Unsubscribe | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def subscribed(self) -> bool:
        """Whether the bridge currently holds a channel subscription."""
        return self._unsubscribe is not None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: CallbackListener) -> int:
        """Register a listener and return its handle.

        Must be called from inside the running event loop that listeners
        should be notified on.
        """
        self._loop = asyncio.get_running_loop()
        handle = next(self._ids)
        self._listeners[handle] = listener
        if self._unsubscribe is None:
            self._unsubscribe = self._channel.subscribe(self._on_deep_link)
            logger.debug("Subscribed to deep-link channel")
        return handle

    def remove_listener(self, handle: int) -> None:
        """Remove a listener. Unknown handles are ignored."""
        self._listeners.pop(handle, None)
        if not self._listeners:
            self._release_subscription()

    def close(self) -> None:
        """Drop every listener and the channel subscription."""
        self._listeners.clear()
        self._release_subscription()

    def _release_subscription(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()
            logger.debug("Unsubscribed from deep-link channel")

    def _on_deep_link(self, payload: object) -> None:
        """Channel handler; safe to call from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Dropping deep link: no active event loop")
            return
        loop.call_soon_threadsafe(self._publish, payload)

    def _publish(self, payload: object) -> None:
        if not self._listeners:
            logger.debug("Dropping deep link: no listeners")
            return

        event: CallbackEvent
        try:
            url = extract_callback_url(payload)
            allowed = self._scheme_allowed(url)
        except MissingCallbackUrlError as e:
            logger.warning("Deep link payload has no callback URL")
            event = MalformedCallback(e)
        except ValueError:
            # urlparse rejects e.g. an unbalanced "[" in the host
            logger.warning("Deep link payload is not a parseable URL")
            event = MalformedCallback(MissingCallbackUrlError())
        else:
            if not allowed:
                logger.debug("Ignoring deep link with unexpected scheme")
                return
            event = RedirectReceived(url)

        for listener in list(self._listeners.values()):
            listener(event)

    def _scheme_allowed(self, url: str) -> bool:
        if self._allowed_schemes is None:
            return True
        return urlparse(url).scheme.lower() in self._allowed_schemes
