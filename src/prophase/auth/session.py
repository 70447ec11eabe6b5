"""Single-flight controller for one browser login attempt."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial

from prophase.auth.bridge import CallbackBridge
from prophase.auth.browser import Browser, SystemBrowser
from prophase.auth.models import (
    AuthorizationResponse,
    CallbackEvent,
    MalformedCallback,
    OAuthConfig,
    SessionState,
    TokenResponse,
)
from prophase.auth.oauth import build_authorization_url, exchange_code_for_token
from prophase.auth.pkce import MAX_VERIFIER_LENGTH, generate_pkce
from prophase.exceptions import (
    AlreadyPendingError,
    AuthError,
    CallbackError,
    ConfigurationError,
    MissingCodeError,
    MissingVerifierError,
    OAuthTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5 * 60.0


@dataclass
class PendingSession:
    """State owned by one in-flight login attempt."""

    verifier: str | None = field(repr=False)
    future: asyncio.Future[TokenResponse] = field(repr=False)
    created_at: float = field(default_factory=time.monotonic)
    state: SessionState = SessionState.PENDING
    listener_handle: int | None = None
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)
    exchange_task: asyncio.Task[None] | None = field(default=None, repr=False)
    settled: bool = False

    def take_verifier(self) -> str | None:
        """Return the verifier and erase it from the session."""
        verifier, self.verifier = self.verifier, None
        return verifier

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.created_at


class SessionController:
    """Runs the PKCE authorization code flow, one attempt at a time.

    ``start()`` opens the browser and waits until the deep-link callback is
    exchanged for a token, the callback reports an error, or the timeout
    fires. Exactly one of those outcomes settles an attempt; anything that
    arrives afterwards is ignored.
    """

    def __init__(
        self,
        config: OAuthConfig,
        bridge: CallbackBridge,
        browser: Browser | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_timeout: float = 30.0,
        verifier_length: int = MAX_VERIFIER_LENGTH,
    ):
        """Initialize the controller.

        Args:
            config: Client id, redirect URI and endpoints.
            bridge: Source of deep-link callback events.
            browser: Opens the authorization URL. Defaults to the system browser.
            timeout: Seconds to wait for the callback.
            http_timeout: Timeout for the token request.
            verifier_length: PKCE verifier length (43-128).
        """
        self.config = config
        self.timeout = timeout
        self._bridge = bridge
        self._browser = browser or SystemBrowser()
        self._http_timeout = http_timeout
        self._verifier_length = verifier_length
        self._session: PendingSession | None = None
        self._state = SessionState.IDLE
        self._error: str | None = None

    @property
    def session(self) -> PendingSession | None:
        """The pending attempt, if any."""
        return self._session

    @property
    def loading(self) -> bool:
        """True while an attempt is waiting for its outcome."""
        return self._session is not None

    @property
    def state(self) -> SessionState:
        """State reached by the most recent attempt."""
        return self._state

    @property
    def error(self) -> str | None:
        """Message of the most recent failure, cleared when a new attempt starts."""
        return self._error

    async def start(self) -> TokenResponse:
        """Run one login attempt and return the token endpoint's JSON object.

        Raises:
            AlreadyPendingError: If another attempt is still pending. The
                pending attempt is not affected.
            ConfigurationError: If the authorization endpoint is malformed.
            AuthError: Any terminal failure of the attempt.
        """
        if self._session is not None:
            raise AlreadyPendingError()

        loop = asyncio.get_running_loop()
        self._error = None

        pkce = generate_pkce(self._verifier_length)
        try:
            auth_url = build_authorization_url(
                pkce.challenge,
                self.config.client_id,
                self.config.redirect_uri,
                self.config.auth_endpoint,
            )
        except ConfigurationError as e:
            self._state = SessionState.FAILED
            self._error = str(e)
            raise

        session = PendingSession(verifier=pkce.verifier, future=loop.create_future())
        self._session = session
        self._state = SessionState.PENDING
        logger.info("Login started, waiting up to %.0fs for callback", self.timeout)

        try:
            session.listener_handle = self._bridge.add_listener(partial(self._on_callback, session))
            session.timer = loop.call_later(self.timeout, self._on_timeout, session)
            try:
                await self._browser.open(auth_url)
            except AuthError as e:
                if self._claim(session):
                    self._reject(session, SessionState.FAILED, e)
            return await session.future
        finally:
            self._teardown(session)

    def _on_callback(self, session: PendingSession, event: CallbackEvent) -> None:
        if session.settled:
            logger.debug("Ignoring callback for settled login")
            return

        if isinstance(event, MalformedCallback):
            self._claim(session)
            self._reject(session, SessionState.FAILED, event.error)
            return

        try:
            response = AuthorizationResponse.from_url(event.url)
        except MissingCodeError as e:
            self._claim(session)
            self._reject(session, SessionState.FAILED, e)
            return
        if response.is_error():
            self._claim(session)
            self._reject(
                session,
                SessionState.FAILED,
                CallbackError(response.error or "unknown", response.error_description),
            )
            return
        if not response.is_success():
            self._claim(session)
            self._reject(session, SessionState.FAILED, MissingCodeError("Authorization code missing"))
            return

        self._claim(session)
        logger.debug("Received authorization code")
        assert response.code is not None
        session.exchange_task = asyncio.create_task(self._exchange(session, response.code))

    def _on_timeout(self, session: PendingSession) -> None:
        session.timer = None
        if self._claim(session):
            self._reject(session, SessionState.TIMED_OUT, OAuthTimeoutError(self.timeout))

    async def _exchange(self, session: PendingSession, code: str) -> None:
        verifier = session.take_verifier()
        try:
            if verifier is None:
                raise MissingVerifierError()
            token = await exchange_code_for_token(
                code,
                verifier,
                self.config.client_id,
                self.config.redirect_uri,
                self.config.token_endpoint,
                timeout=self._http_timeout,
            )
        except Exception as e:
            # Delivered to the caller awaiting start()
            self._reject(session, SessionState.FAILED, e)
        else:
            self._resolve(session, token)

    def _claim(self, session: PendingSession) -> bool:
        """Mark the session settled. Only the first caller gets True."""
        if session.settled:
            return False
        session.settled = True
        self._release_handles(session)
        return True

    def _resolve(self, session: PendingSession, token: TokenResponse) -> None:
        session.take_verifier()
        session.state = SessionState.COMPLETED
        self._state = SessionState.COMPLETED
        logger.info("Login completed in %.1fs", session.elapsed)
        if not session.future.done():
            session.future.set_result(token)

    def _reject(self, session: PendingSession, state: SessionState, error: BaseException) -> None:
        session.take_verifier()
        session.state = state
        self._state = state
        self._error = str(error)
        logger.warning("Login %s: %s", state.value, error)
        if not session.future.done():
            session.future.set_exception(error)

    def _release_handles(self, session: PendingSession) -> None:
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None
        if session.listener_handle is not None:
            self._bridge.remove_listener(session.listener_handle)
            session.listener_handle = None

    def _teardown(self, session: PendingSession) -> None:
        if not session.settled:
            # The caller stopped waiting before any outcome
            session.settled = True
            session.state = SessionState.FAILED
            self._state = SessionState.FAILED
            self._error = "Login aborted"
        self._release_handles(session)
        session.take_verifier()
        if session.exchange_task is not None and not session.exchange_task.done():
            session.exchange_task.cancel()
        if self._session is session:
            self._session = None
