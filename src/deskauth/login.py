"""Public entry point: run one desktop OAuth login attempt.

One call to :func:`perform_login` is one attempt. It binds the loopback
listener, waits for the browser to complete the provider redirect, redeems
the code, trades the provider token for an application session, and returns
that session or raises the single error that ended the attempt. Nothing is
retried; a new attempt is a new call.

Example::

    from deskauth import perform_login
    from deskauth.pkce import build_authorization_url, generate_pkce_pair, generate_state

    verifier, challenge = generate_pkce_pair()
    state = generate_state()
    # ... send the browser to build_authorization_url(...) ...
    session = perform_login(verifier, state, "https://api.example.com", cid, secret)
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from typing import Callable, Optional

from deskauth.exchange import BackendAuthenticator, TokenExchanger
from deskauth.listener import CallbackListener, WindowNotifier
from deskauth.listener.handshake import CodeExchanger, SessionAuthenticator
from deskauth.models import LoginAttempt, LoginSettings, SessionPayload
from deskauth.pkce import build_authorization_url, generate_pkce_pair, generate_state

logger = logging.getLogger(__name__)


class LoginOrchestrator:
    """Wire the listener to the two exchanges for a series of attempts.

    Collaborators default to the real :mod:`httpx`-backed exchanges built
    from *settings*; hosts and tests may inject their own.
    """

    def __init__(
        self,
        settings: Optional[LoginSettings] = None,
        notifier: Optional[WindowNotifier] = None,
        token_exchanger: Optional[CodeExchanger] = None,
        backend: Optional[SessionAuthenticator] = None,
    ) -> None:
        self.settings = settings or LoginSettings()
        self.notifier = notifier
        self.token_exchanger = token_exchanger or TokenExchanger(
            self.settings.token_url,
            self.settings.effective_redirect_uri,
            timeout=self.settings.request_timeout,
        )
        self.backend = backend or BackendAuthenticator(timeout=self.settings.request_timeout)

    def perform_login(
        self,
        code_verifier: str,
        expected_state: str,
        backend_url: str,
        client_id: str,
        client_secret: str,
        on_listening: Optional[Callable[[int], None]] = None,
    ) -> SessionPayload:
        """Run one attempt and return the backend's session object unchanged.

        Raises:
            DeskauthError: The one error that ended the attempt.
        """
        attempt = LoginAttempt(
            code_verifier=code_verifier,
            expected_state=expected_state,
            backend_url=backend_url,
            client_id=client_id,
            client_secret=client_secret,
        )
        listener = CallbackListener(
            self.settings,
            self.token_exchanger,
            self.backend,
            notifier=self.notifier,
        )
        return listener.run(attempt, on_listening=on_listening)

    def login_with_browser(
        self,
        backend_url: str,
        client_id: str,
        client_secret: str,
        open_browser: bool = True,
        on_authorization_url: Optional[Callable[[str], None]] = None,
    ) -> SessionPayload:
        """Generate PKCE and state, open the provider page, and log in.

        The browser is opened from a daemon thread only after the listener
        is bound, so the redirect can never race the server start.

        Args:
            backend_url: Application backend base URL.
            client_id: OAuth client id.
            client_secret: OAuth client secret.
            open_browser: If ``False``, only report the URL.
            on_authorization_url: Called with the authorization URL, e.g. to
                print it for the user.
        """
        code_verifier, code_challenge = generate_pkce_pair()
        state = generate_state()
        auth_url = build_authorization_url(self.settings, client_id, code_challenge, state)

        def _on_listening(port: int) -> None:
            if on_authorization_url is not None:
                on_authorization_url(auth_url)
            if open_browser:
                threading.Thread(
                    target=webbrowser.open, args=(auth_url,), daemon=True
                ).start()

        return self.perform_login(
            code_verifier,
            state,
            backend_url,
            client_id,
            client_secret,
            on_listening=_on_listening,
        )


def perform_login(
    code_verifier: str,
    expected_state: str,
    backend_url: str,
    client_id: str,
    client_secret: str,
    *,
    settings: Optional[LoginSettings] = None,
    notifier: Optional[WindowNotifier] = None,
    token_exchanger: Optional[CodeExchanger] = None,
    backend: Optional[SessionAuthenticator] = None,
    on_listening: Optional[Callable[[int], None]] = None,
) -> SessionPayload:
    """Run one login attempt with a fresh :class:`LoginOrchestrator`.

    Args:
        code_verifier: PKCE verifier whose challenge was sent to the provider.
        expected_state: The anti-forgery value sent to the provider.
        backend_url: Application backend base URL.
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        settings: Listener and endpoint settings (defaults apply if omitted).
        notifier: Host window capability notified on success.
        token_exchanger: Override for the provider exchange.
        backend: Override for the backend exchange.
        on_listening: Called with the bound port once the listener is ready.

    Returns:
        The backend's JSON session object.

    Raises:
        ListenerStartupError: The port could not be bound.
        ProtocolError: The callback carried an error, lacked ``code`` or
            ``state``, or the state did not match.
        UpstreamError: A provider or backend exchange failed.
        ProtocolExhaustedError: The browser never completed the handshake.
    """
    orchestrator = LoginOrchestrator(
        settings=settings,
        notifier=notifier,
        token_exchanger=token_exchanger,
        backend=backend,
    )
    return orchestrator.perform_login(
        code_verifier,
        expected_state,
        backend_url,
        client_id,
        client_secret,
        on_listening=on_listening,
    )
