"""The callback handshake state machine.

:class:`CallbackHandshake` classifies each inbound request, validates the
OAuth callback, runs the two outbound exchanges, and records exactly one
terminal outcome. It knows nothing about sockets: every request arrives as a
:class:`~deskauth.models.CallbackRequest` together with a *respond*
callable, which lets the state machine be driven directly in tests and by
:class:`~deskauth.listener.server.CallbackListener` in production.

Classification, checked in order for each request:

1. The callback path, while awaiting the callback -- provider error,
   missing ``code``/``state`` and state mismatch fail the attempt; a valid
   callback gets the interim page, then the token and backend exchanges run
   and either the payload or the upstream error is stored.
2. The root path once the exchanges have run -- the interim page has
   already redirected the browser here, so it gets the success page or, if
   an exchange failed, the error page, and the attempt ends.
3. Anything else -- acknowledged and ignored.
"""

from __future__ import annotations

import hmac
import logging
from typing import Callable, Optional, Protocol

from deskauth.exceptions import (
    DeskauthError,
    ProtocolError,
    ProtocolExhaustedError,
)
from deskauth.listener import pages
from deskauth.listener.notifier import LoggingNotifier, WindowNotifier
from deskauth.listener.state import HandshakeState
from deskauth.models import (
    DEFAULT_CALLBACK_PATH,
    CallbackRequest,
    LoginAttempt,
    ProviderTokenResponse,
    SessionPayload,
)

logger = logging.getLogger(__name__)

Responder = Callable[[pages.Page], None]
"""Writes a page to the browser. Must not raise."""

EXHAUSTED_MESSAGE = "Server stopped without receiving callback"


class CodeExchanger(Protocol):
    def exchange(
        self, code: str, code_verifier: str, client_id: str, client_secret: str
    ) -> ProviderTokenResponse: ...


class SessionAuthenticator(Protocol):
    def authenticate(self, access_token: str, backend_url: str) -> SessionPayload: ...


class CallbackHandshake:
    """Drive one login attempt from browser callback to final page.

    Args:
        attempt: The attempt being served; ``attempt.result`` is set once on
            success.
        token_exchanger: Redeems the authorization code.
        backend: Trades the provider token for the application session.
        notifier: Told to focus the host window once the session is stored.
        callback_path: Path the provider redirects the browser to.
    """

    def __init__(
        self,
        attempt: LoginAttempt,
        token_exchanger: CodeExchanger,
        backend: SessionAuthenticator,
        notifier: Optional[WindowNotifier] = None,
        callback_path: str = DEFAULT_CALLBACK_PATH,
    ) -> None:
        self.attempt = attempt
        self.token_exchanger = token_exchanger
        self.backend = backend
        self.notifier = notifier or LoggingNotifier()
        self.callback_path = callback_path
        self.state = HandshakeState.AWAITING_CALLBACK
        self.error: Optional[DeskauthError] = None

    @property
    def finished(self) -> bool:
        return self.state.is_terminal

    def handle(self, request: CallbackRequest, respond: Responder) -> None:
        """Classify *request*, answer it through *respond*, and advance.

        Never raises for protocol or upstream failures; those are stored and
        re-raised by :meth:`outcome`. An upstream failure keeps the handshake
        in ``AWAITING_FINAL_PING`` until the browser fetches its error page.
        """
        logger.debug("Request %s in state %s", request.path, self.state.value)

        if request.path == self.callback_path and self.state is HandshakeState.AWAITING_CALLBACK:
            self._handle_callback(request, respond)
        elif request.is_root and self.state is HandshakeState.AWAITING_FINAL_PING:
            if self.error is not None:
                respond(pages.error_page(str(self.error)))
                self._transition(HandshakeState.FAILED)
            else:
                respond(pages.success_page())
                self._transition(HandshakeState.DONE)
        else:
            respond(pages.acknowledgement_page())

    def outcome(self) -> SessionPayload:
        """Return the stored session payload or raise the terminal error.

        Raises:
            DeskauthError: The error that failed the attempt, whether or not
                the browser has been shown it yet.
            ProtocolExhaustedError: If no result or error was recorded.
        """
        if self.state is HandshakeState.DONE:
            return self.attempt.result
        if self.error is not None:
            raise self.error
        raise ProtocolExhaustedError(EXHAUSTED_MESSAGE)

    # ------------------------------------------------------------------ #
    # Callback handling
    # ------------------------------------------------------------------ #

    def _handle_callback(self, request: CallbackRequest, respond: Responder) -> None:
        params = request.query_params

        error = params.get("error")
        if error is not None:
            self._reject(
                f"OAuth error: {error}",
                respond,
                description=params.get("error_description"),
            )
            return

        code = params.get("code")
        if code is None:
            self._reject("Missing authorization code", respond)
            return

        state = params.get("state")
        if state is None:
            self._reject("Missing state parameter", respond)
            return

        if not hmac.compare_digest(
            state.encode("utf-8"), self.attempt.expected_state.encode("utf-8")
        ):
            self._reject("Invalid state parameter", respond)
            return

        respond(pages.authenticating_page())
        logger.info("Got authorization code, exchanging for token")

        try:
            self._transition(HandshakeState.EXCHANGING_TOKEN)
            token = self.token_exchanger.exchange(
                code,
                self.attempt.code_verifier,
                self.attempt.client_id,
                self.attempt.client_secret,
            )
            self._transition(HandshakeState.AUTHENTICATING_BACKEND)
            payload = self.backend.authenticate(token.access_token, self.attempt.backend_url)
        except DeskauthError as exc:
            logger.info("Login failed: %s", exc)
            self.error = exc
            self._transition(HandshakeState.AWAITING_FINAL_PING)
            return

        self.attempt.result = payload
        self._notify_window()
        self._transition(HandshakeState.AWAITING_FINAL_PING)

    def _reject(
        self,
        message: str,
        respond: Responder,
        description: Optional[str] = None,
    ) -> None:
        respond(pages.error_page(message, description))
        logger.info("Callback rejected: %s", message)
        self._fail(ProtocolError(message))

    def _fail(self, error: DeskauthError) -> None:
        self.error = error
        self._transition(HandshakeState.FAILED)

    def _notify_window(self) -> None:
        try:
            self.notifier.notify()
        except Exception as exc:
            logger.warning("Failed to focus application window: %s", exc)

    def _transition(self, state: HandshakeState) -> None:
        logger.debug("Handshake %s -> %s", self.state.value, state.value)
        self.state = state
