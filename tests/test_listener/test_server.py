"""Tests for the loopback listener over real sockets.

A daemon thread plays the browser: it waits for the listener to bind, then
issues the callback and the follow-up root request with http.client.
"""

from __future__ import annotations

import http.client
import socket
import struct
import threading
import time
from typing import Optional

import pytest

from deskauth.exceptions import (
    ListenerStartupError,
    ProtocolError,
    ProtocolExhaustedError,
    UpstreamStatusError,
)
from deskauth.listener import CallbackListener
from deskauth.listener.server import CallbackRequestHandler
from deskauth.models import LoginAttempt, LoginSettings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeBrowser:
    """Requests a sequence of paths once the listener reports its port."""

    def __init__(self, *paths: str) -> None:
        self.paths = paths
        self.responses: list[tuple[int, dict[str, str], str]] = []
        self.errors: list[tuple[str, Exception]] = []
        self._thread: Optional[threading.Thread] = None

    def on_listening(self, port: int) -> None:
        self._thread = threading.Thread(target=self._run, args=(port,), daemon=True)
        self._thread.start()

    def _run(self, port: int) -> None:
        for path in self.paths:
            conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
            try:
                conn.request("GET", path)
                resp = conn.getresponse()
                body = resp.read().decode("utf-8")
                self.responses.append((resp.status, dict(resp.getheaders()), body))
            except (OSError, http.client.HTTPException) as exc:
                # Later paths are still requested.
                self.errors.append((path, exc))
            finally:
                conn.close()

    def join(self) -> None:
        if self._thread is not None:
            self._thread.join(timeout=5)


def _listener(settings: LoginSettings, token_exchanger, backend, notifier=None, **kw) -> CallbackListener:
    return CallbackListener(settings, token_exchanger, backend, notifier=notifier, **kw)


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        # Closed server connections linger in TIME_WAIT; only a live listener counts.
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True


# ---------------------------------------------------------------------------
# CallbackListener
# ---------------------------------------------------------------------------


class TestCallbackListener:
    def test_successful_login(
        self,
        fast_settings: LoginSettings,
        attempt: LoginAttempt,
        token_exchanger,
        backend,
        notifier,
    ) -> None:
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")
        result = _listener(fast_settings, token_exchanger, backend, notifier).run(
            attempt, on_listening=browser.on_listening
        )
        browser.join()

        assert browser.errors == []
        assert result == {"session": "s1", "user": {"id": 7}}
        assert notifier.calls == 1

        (s1, h1, b1), (s2, _, b2) = browser.responses
        assert s1 == 200
        assert h1["Content-Type"] == "text/html; charset=utf-8"
        assert h1["Cache-Control"] == "no-store"
        assert "Authenticating..." in b1
        assert s2 == 200
        assert "All Done!" in b2

    def test_port_released_after_run(
        self, free_port: int, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        settings = LoginSettings(port=free_port, grace_period=0, listen_timeout=10)
        browser = FakeBrowser("/oauth/callback?code=abc&state=wrong")
        with pytest.raises(ProtocolError, match="Invalid state parameter"):
            _listener(settings, token_exchanger, backend).run(
                attempt, on_listening=browser.on_listening
            )
        browser.join()

        assert browser.responses[0][0] == 400
        assert _port_is_free(free_port)

    def test_stray_requests_then_success(
        self, fast_settings: LoginSettings, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        browser = FakeBrowser(
            "/favicon.ico",
            "/",
            "/oauth/callback?code=abc&state=s1",
            "/favicon.ico",
            "/",
        )
        result = _listener(fast_settings, token_exchanger, backend).run(
            attempt, on_listening=browser.on_listening
        )
        browser.join()

        assert result == backend.payload
        assert len(browser.responses) == 5

    def test_upstream_failure_after_interim_page(
        self, fast_settings: LoginSettings, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        token_exchanger.error = UpstreamStatusError("Token exchange failed: nope", status_code=400)
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")
        with pytest.raises(UpstreamStatusError, match="Token exchange failed: nope"):
            _listener(fast_settings, token_exchanger, backend).run(
                attempt, on_listening=browser.on_listening
            )
        browser.join()

        (s1, _, b1), (s2, _, b2) = browser.responses
        assert s1 == 200
        assert "Authenticating..." in b1
        # The interim page's redirect lands on the error page.
        assert s2 == 400
        assert "Token exchange failed: nope" in b2
        assert "All Done!" not in b2
        assert backend.calls == []

    def test_upstream_failure_without_redirect_ends_early(
        self,
        monkeypatch: pytest.MonkeyPatch,
        attempt: LoginAttempt,
        token_exchanger,
        backend,
    ) -> None:
        monkeypatch.setattr("deskauth.listener.server.FAILURE_PAGE_WAIT", 0.2)
        token_exchanger.error = UpstreamStatusError("Token exchange failed: nope", status_code=400)
        settings = LoginSettings(port=0, grace_period=0, listen_timeout=30)
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1")

        start = time.monotonic()
        with pytest.raises(UpstreamStatusError, match="Token exchange failed: nope"):
            _listener(settings, token_exchanger, backend).run(
                attempt, on_listening=browser.on_listening
            )
        browser.join()

        assert time.monotonic() - start < 5

    def test_port_in_use(
        self, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]
            settings = LoginSettings(port=port, grace_period=0, listen_timeout=1)

            with pytest.raises(ListenerStartupError, match="^Failed to start server: "):
                _listener(settings, token_exchanger, backend).run(attempt)

        assert token_exchanger.calls == []

    def test_times_out_without_callback(
        self, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        settings = LoginSettings(port=0, grace_period=0, listen_timeout=0.2)
        with pytest.raises(ProtocolExhaustedError, match="Server stopped without receiving callback"):
            _listener(settings, token_exchanger, backend).run(attempt)

    def test_times_out_without_final_ping(
        self, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        settings = LoginSettings(port=0, grace_period=0, listen_timeout=1)
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1")
        with pytest.raises(ProtocolExhaustedError):
            _listener(settings, token_exchanger, backend).run(
                attempt, on_listening=browser.on_listening
            )
        browser.join()
        # The session was obtained but never delivered.
        assert attempt.result == backend.payload

    def test_grace_period_only_after_success(
        self, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        sleeps: list[float] = []
        settings = LoginSettings(port=0, grace_period=0.5, listen_timeout=10)

        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")
        _listener(settings, token_exchanger, backend, sleep=sleeps.append).run(
            attempt, on_listening=browser.on_listening
        )
        browser.join()
        assert sleeps == [0.5]

    def test_handler_bug_propagates(
        self, fast_settings: LoginSettings, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        token_exchanger.error = RuntimeError("boom")
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1")
        start = time.monotonic()
        with pytest.raises(RuntimeError, match="boom"):
            _listener(fast_settings, token_exchanger, backend).run(
                attempt, on_listening=browser.on_listening
            )
        browser.join()
        assert time.monotonic() - start < fast_settings.listen_timeout


# ---------------------------------------------------------------------------
# Misbehaving connections
# ---------------------------------------------------------------------------


def _send_reset(port: int, data: bytes) -> None:
    """Send *data* and abort the connection with a TCP reset."""
    sock = socket.create_connection(("127.0.0.1", port), timeout=5)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
    sock.sendall(data)
    sock.close()


def _break_pipe_on_response(monkeypatch: pytest.MonkeyPatch, number: int) -> None:
    """Make the *number*-th response fail as if the browser had gone away."""
    original = CallbackRequestHandler.send_response
    sent: list[int] = []

    def send_response(self, code, message=None):
        sent.append(code)
        if len(sent) == number:
            raise BrokenPipeError(32, "Broken pipe")
        original(self, code, message)

    monkeypatch.setattr(CallbackRequestHandler, "send_response", send_response)


class TestMisbehavingConnections:
    def test_reset_connection_is_dropped(
        self, fast_settings: LoginSettings, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")

        def on_listening(port: int) -> None:
            # An aborted favicon fetch, queued ahead of the real callback.
            _send_reset(port, b"GET /favicon.ico HTTP/1.1\r\nHost: x")
            browser.on_listening(port)

        result = _listener(fast_settings, token_exchanger, backend).run(
            attempt, on_listening=on_listening
        )
        browser.join()

        assert result == backend.payload
        assert browser.errors == []

    def test_idle_connection_does_not_block_timeout(
        self, attempt: LoginAttempt, token_exchanger, backend
    ) -> None:
        settings = LoginSettings(port=0, grace_period=0, listen_timeout=1)
        idle: list[socket.socket] = []

        start = time.monotonic()
        try:
            with pytest.raises(ProtocolExhaustedError):
                _listener(settings, token_exchanger, backend).run(
                    attempt,
                    on_listening=lambda port: idle.append(
                        socket.create_connection(("127.0.0.1", port))
                    ),
                )
        finally:
            for sock in idle:
                sock.close()

        assert time.monotonic() - start < 3

    def test_idle_connection_then_login(
        self,
        monkeypatch: pytest.MonkeyPatch,
        fast_settings: LoginSettings,
        attempt: LoginAttempt,
        token_exchanger,
        backend,
    ) -> None:
        monkeypatch.setattr("deskauth.listener.server.READ_TIMEOUT", 0.2)
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")
        idle: list[socket.socket] = []

        def on_listening(port: int) -> None:
            idle.append(socket.create_connection(("127.0.0.1", port)))
            browser.on_listening(port)

        try:
            result = _listener(fast_settings, token_exchanger, backend).run(
                attempt, on_listening=on_listening
            )
        finally:
            for sock in idle:
                sock.close()
        browser.join()

        assert result == backend.payload

    def test_broken_pipe_on_success_page(
        self,
        monkeypatch: pytest.MonkeyPatch,
        fast_settings: LoginSettings,
        attempt: LoginAttempt,
        token_exchanger,
        backend,
    ) -> None:
        _break_pipe_on_response(monkeypatch, 2)
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")

        result = _listener(fast_settings, token_exchanger, backend).run(
            attempt, on_listening=browser.on_listening
        )
        browser.join()

        assert result == backend.payload
        assert [path for path, _ in browser.errors] == ["/"]

    def test_broken_pipe_on_interim_page(
        self,
        monkeypatch: pytest.MonkeyPatch,
        fast_settings: LoginSettings,
        attempt: LoginAttempt,
        token_exchanger,
        backend,
    ) -> None:
        _break_pipe_on_response(monkeypatch, 1)
        browser = FakeBrowser("/oauth/callback?code=abc&state=s1", "/")

        result = _listener(fast_settings, token_exchanger, backend).run(
            attempt, on_listening=browser.on_listening
        )
        browser.join()

        assert result == backend.payload
        assert len(token_exchanger.calls) == 1

    def test_broken_pipe_on_error_page(
        self,
        monkeypatch: pytest.MonkeyPatch,
        fast_settings: LoginSettings,
        attempt: LoginAttempt,
        token_exchanger,
        backend,
    ) -> None:
        _break_pipe_on_response(monkeypatch, 1)
        browser = FakeBrowser("/oauth/callback?code=abc&state=wrong")

        with pytest.raises(ProtocolError, match="Invalid state parameter"):
            _listener(fast_settings, token_exchanger, backend).run(
                attempt, on_listening=browser.on_listening
            )
        browser.join()

        assert token_exchanger.calls == []
