"""Loopback HTTP server that feeds browser requests to the handshake.

:class:`LoopbackServer` owns the listening socket. It is acquired with
:meth:`LoopbackServer.bind` and released by its context manager on every
exit path, so a failed attempt never leaves the fixed port occupied.

:class:`CallbackListener` runs one attempt: bind, serve requests one at a
time until the handshake reaches a terminal state or the listen timeout
elapses, then release the port and return the handshake's outcome.
"""

from __future__ import annotations

import logging
import sys
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional

from deskauth.exceptions import ListenerStartupError
from deskauth.listener.handshake import (
    CallbackHandshake,
    CodeExchanger,
    SessionAuthenticator,
)
from deskauth.listener.notifier import WindowNotifier
from deskauth.listener.pages import Page
from deskauth.models import CallbackRequest, LoginAttempt, LoginSettings, SessionPayload

logger = logging.getLogger(__name__)

READ_TIMEOUT = 5.0
"""Seconds a connection may stay silent before it is dropped."""

FAILURE_PAGE_WAIT = 5.0
"""Seconds to wait for the browser to fetch the failure page after an upstream error."""


class CallbackRequestHandler(BaseHTTPRequestHandler):
    """Translate one HTTP request into a :meth:`CallbackHandshake.handle` call.

    The socket read timeout comes from :attr:`LoopbackServer.read_timeout`, so
    an idle connection (such as a browser preconnect) is dropped by
    :meth:`handle_one_request` instead of stalling the single-threaded loop.
    """

    server: LoopbackServer

    def setup(self) -> None:
        self.timeout = self.server.read_timeout
        super().setup()

    def do_GET(self) -> None:
        request = CallbackRequest.from_target(self.path)
        self.server.handshake.handle(request, self._respond)

    def _respond(self, page: Page) -> None:
        """Write *page* to the browser. Socket errors are logged, not raised."""
        body = page.body.encode("utf-8")
        try:
            self.send_response(page.status)
            self.send_header("Content-Type", page.content_type)
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Cache-Control", "no-store")
            self.end_headers()
            self.wfile.write(body)
            self.wfile.flush()
        except OSError as exc:
            logger.warning("Failed to respond to %s: %s", self.path, exc)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class LoopbackServer(HTTPServer):
    """Single-threaded HTTP server bound to a loopback address.

    Exceptions escaping a request handler are normally printed and dropped
    by :mod:`socketserver`. Socket errors (a browser aborting a stray fetch)
    are logged and dropped here too, but any other exception is kept and
    re-raised by :meth:`raise_pending_error` so that programming errors reach
    the caller.
    """

    def __init__(self, address: tuple[str, int], handshake: CallbackHandshake) -> None:
        self.handshake = handshake
        self.read_timeout: float = READ_TIMEOUT
        self._pending_error: Optional[BaseException] = None
        super().__init__(address, CallbackRequestHandler)

    @classmethod
    def bind(cls, host: str, port: int, handshake: CallbackHandshake) -> LoopbackServer:
        """Bind and listen on ``host:port``.

        Raises:
            ListenerStartupError: If the address is unavailable.
        """
        try:
            return cls((host, port), handshake)
        except OSError as exc:
            raise ListenerStartupError(f"Failed to start server: {exc}") from exc

    @property
    def port(self) -> int:
        return self.server_address[1]

    def handle_error(self, request: Any, client_address: Any) -> None:
        error = sys.exc_info()[1]
        if isinstance(error, OSError):
            logger.warning("Connection from %s failed: %s", client_address, error)
            return
        if self._pending_error is None:
            self._pending_error = error

    def raise_pending_error(self) -> None:
        error, self._pending_error = self._pending_error, None
        if error is not None:
            raise error


class CallbackListener:
    """Serve the browser side of one login attempt.

    Args:
        settings: Listener address, callback path and timing.
        token_exchanger: Passed through to the handshake.
        backend: Passed through to the handshake.
        notifier: Passed through to the handshake.
        sleep: Used for the grace period; replaceable in tests.
        clock: Monotonic clock used for the listen deadline.
    """

    def __init__(
        self,
        settings: LoginSettings,
        token_exchanger: CodeExchanger,
        backend: SessionAuthenticator,
        notifier: Optional[WindowNotifier] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.token_exchanger = token_exchanger
        self.backend = backend
        self.notifier = notifier
        self._sleep = sleep
        self._clock = clock

    def run(
        self,
        attempt: LoginAttempt,
        on_listening: Optional[Callable[[int], None]] = None,
    ) -> SessionPayload:
        """Run *attempt* to completion and return the session payload.

        Args:
            attempt: The in-flight attempt.
            on_listening: Called with the bound port once the server accepts
                connections, e.g. to open the browser.

        Raises:
            ListenerStartupError: If the port cannot be bound.
            DeskauthError: Whatever error failed the handshake, or
                :class:`~deskauth.exceptions.ProtocolExhaustedError` if the
                browser never completed it.
        """
        handshake = CallbackHandshake(
            attempt,
            self.token_exchanger,
            self.backend,
            notifier=self.notifier,
            callback_path=self.settings.callback_path,
        )

        with LoopbackServer.bind(self.settings.host, self.settings.port, handshake) as server:
            logger.info(
                "Listening for OAuth callback on %s:%d", self.settings.host, server.port
            )
            if on_listening is not None:
                on_listening(server.port)
            self._serve(server, handshake)
        logger.info("Callback listener stopped in state %s", handshake.state.value)

        return handshake.outcome()

    def _serve(self, server: LoopbackServer, handshake: CallbackHandshake) -> None:
        deadline = self._clock() + self.settings.listen_timeout
        failure_seen = False
        while not handshake.finished:
            if handshake.error is not None and not failure_seen:
                # Only the redirect to / is still expected.
                failure_seen = True
                deadline = min(deadline, self._clock() + FAILURE_PAGE_WAIT)
            remaining = deadline - self._clock()
            if remaining <= 0:
                if handshake.error is None:
                    logger.warning(
                        "No completed callback within %.0f seconds",
                        self.settings.listen_timeout,
                    )
                else:
                    logger.info("Browser did not fetch the error page")
                return
            server.timeout = remaining
            server.read_timeout = min(READ_TIMEOUT, remaining)
            server.handle_request()
            server.raise_pending_error()

        if handshake.error is None and self.settings.grace_period > 0:
            # Let the browser render the final page before the socket closes.
            self._sleep(self.settings.grace_period)
