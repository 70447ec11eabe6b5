"""Deep-link channels: where redirect URLs enter the running app."""

import itertools
import logging

import aiohttp
from aiohttp import web

from prophase.auth.bridge import DeepLinkHandler, Unsubscribe
from prophase.exceptions import DeepLinkChannelError, DeepLinkForwardError

logger = logging.getLogger(__name__)

DEEPLINK_PATH = "/deeplink"


class _Subscribers:
    """Handler registry shared by the channel implementations."""

    def __init__(self) -> None:
        self._handlers: dict[int, DeepLinkHandler] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._handlers)

    def add(self, handler: DeepLinkHandler) -> Unsubscribe:
        handle = next(self._ids)
        self._handlers[handle] = handler

        def unsubscribe() -> None:
            self._handlers.pop(handle, None)

        return unsubscribe

    def notify(self, payload: object) -> int:
        handlers = list(self._handlers.values())
        for handler in handlers:
            handler(payload)
        return len(handlers)


class LocalDeepLinkChannel:
    """In-process channel for hosts that receive deep links themselves.

    A GUI toolkit's "open URL" hook (or a test) calls ``deliver`` with whatever
    payload shape it has.
    """

    def __init__(self) -> None:
        self._subscribers = _Subscribers()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, handler: DeepLinkHandler) -> Unsubscribe:
        return self._subscribers.add(handler)

    def deliver(self, payload: object) -> int:
        """Hand a payload to every subscriber. Returns how many were notified."""
        return self._subscribers.notify(payload)


class LoopbackDeepLinkChannel:
    """Localhost HTTP endpoint that receives deep links forwarded by a second process.

    When the OS opens ``myapp://callback?...`` it launches ``prophase deeplink
    <url>``, which POSTs the URL here so the instance waiting for the login
    can pick it up.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        """Initialize the channel.

        Args:
            host: Interface to bind to.
            port: Port to bind to. 0 = random available port.
        """
        self.host = host
        self._requested_port = port
        self.port = 0
        self._subscribers = _Subscribers()
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def endpoint_url(self) -> str:
        """URL that deep links are forwarded to."""
        return f"http://{self.host}:{self.port}{DEEPLINK_PATH}"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, handler: DeepLinkHandler) -> Unsubscribe:
        return self._subscribers.add(handler)

    async def start(self) -> None:
        """Start listening for forwarded deep links.

        Raises:
            DeepLinkChannelError: If the address is already in use.
        """
        app = web.Application()
        app.router.add_post(DEEPLINK_PATH, self._handle_deeplink)

        self._runner = web.AppRunner(app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self._requested_port)
        try:
            await self._site.start()
        except OSError as e:
            await self.stop()
            raise DeepLinkChannelError(
                f"Could not listen on {self.host}:{self._requested_port} "
                f"(is another login already running?): {e}"
            ) from e

        # Resolve the real port when 0 was requested
        assert self._site._server is not None
        sockets = self._site._server.sockets
        if sockets:
            self.port = sockets[0].getsockname()[1]

        logger.debug("Deep-link channel listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop the HTTP endpoint."""
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    async def __aenter__(self) -> "LoopbackDeepLinkChannel":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _handle_deeplink(self, request: web.Request) -> web.Response:
        """Handle a forwarded deep link."""
        if request.content_type == "application/json":
            try:
                payload: object = await request.json()
            except ValueError:
                return web.Response(status=400, text="invalid JSON body")
        else:
            payload = await request.text()

        if not self._subscribers.notify(payload):
            logger.info("Deep link received but no login is waiting for it")
            return web.Response(status=409, text="no login in progress")

        return web.Response(status=202, text="accepted")


async def forward_deep_link(
    url: str,
    host: str = "127.0.0.1",
    port: int = 0,
    timeout: float = 5.0,
) -> None:
    """Send a deep link to a ``LoopbackDeepLinkChannel`` in another process.

    Raises:
        DeepLinkForwardError: If the running instance is unreachable or refuses it.
    """
    endpoint = f"http://{host}:{port}{DEEPLINK_PATH}"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.post(endpoint, json={"url": url}) as resp:
                body = await resp.text()
                status = resp.status
    except (aiohttp.ClientError, TimeoutError) as e:
        raise DeepLinkForwardError(f"Could not reach running login at {endpoint}: {e}") from e

    if status == 409:
        raise DeepLinkForwardError("No login is waiting for this deep link")
    if status >= 300:
        raise DeepLinkForwardError(f"Deep link rejected ({status}): {body}")
    logger.debug("Forwarded deep link to %s", endpoint)
