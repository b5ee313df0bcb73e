"""Shared test fixtures for deskauth.

Provides reusable fixtures for isolated config environments, output state,
login attempts with stubbed exchanges, and running CLI commands. These
fixtures are automatically discovered by pytest and available to all test
modules without explicit imports.
"""

from __future__ import annotations

import socket
from pathlib import Path
from typing import Any, Optional

import pytest

from deskauth.models import LoginAttempt, LoginSettings, ProviderTokenResponse
from deskauth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path so
    that tests never touch real user config, clears all DESKAUTH_*
    environment variables, and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    # Non-XDG platforms fall back to ~/.deskauth
    monkeypatch.setenv("HOME", str(tmp_path / "home"))

    for var in [
        "DESKAUTH_BACKEND_URL",
        "DESKAUTH_PORT",
        "DESKAUTH_CLIENT_ID",
        "DESKAUTH_CLIENT_SECRET",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager for the test."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Login fixtures
# ---------------------------------------------------------------------------


class FakeTokenExchanger:
    """Records exchange calls; returns a fixed token or raises *error*."""

    def __init__(self, access_token: str = "provider-token", error: Optional[Exception] = None):
        self.access_token = access_token
        self.error = error
        self.calls: list[tuple[str, str, str, str]] = []

    def exchange(
        self, code: str, code_verifier: str, client_id: str, client_secret: str
    ) -> ProviderTokenResponse:
        self.calls.append((code, code_verifier, client_id, client_secret))
        if self.error is not None:
            raise self.error
        return ProviderTokenResponse(
            access_token=self.access_token, token_type="Bearer", expires_in=3600
        )


class FakeBackend:
    """Records authenticate calls; returns *payload* or raises *error*."""

    def __init__(self, payload: Any = None, error: Optional[Exception] = None):
        self.payload = {"session": "s1", "user": {"id": 7}} if payload is None else payload
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def authenticate(self, access_token: str, backend_url: str) -> Any:
        self.calls.append((access_token, backend_url))
        if self.error is not None:
            raise self.error
        return self.payload


class RecordingNotifier:
    """Counts notify calls; raises *error* when set."""

    def __init__(self, error: Optional[Exception] = None):
        self.calls = 0
        self.error = error

    def notify(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


@pytest.fixture
def token_exchanger() -> FakeTokenExchanger:
    return FakeTokenExchanger()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def attempt() -> LoginAttempt:
    """An in-flight attempt expecting state ``s1``."""
    return LoginAttempt(
        code_verifier="v" * 43,
        expected_state="s1",
        backend_url="https://api.example.com",
        client_id="client-id",
        client_secret="client-secret",
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def free_port() -> int:
    """A TCP port on localhost that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def fast_settings() -> LoginSettings:
    """Settings bound to an ephemeral port with no grace period."""
    return LoginSettings(port=0, grace_period=0, listen_timeout=10)


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
