"""Exception hierarchy for deskauth.

All exceptions inherit from :class:`DeskauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`deskauth.exit_codes`.
The top-level error handler in :func:`deskauth.app.main` catches
``DeskauthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

The string form of every exception raised by a login attempt is the exact
message surfaced to the calling application (``"Invalid state parameter"``,
``"OAuth error: access_denied"``, ...).

Subclass hierarchy::

    DeskauthError (exit 1)
    +-- ConfigError                 (exit 1)
    +-- InvalidUsageError           (exit 2)
    +-- ListenerStartupError        (exit 4)
    +-- ProtocolError               (exit 3)
    |   +-- ProtocolExhaustedError  (exit 7)
    +-- UpstreamError               (exit 5)
        +-- UpstreamTransportError  (exit 6)
        +-- UpstreamStatusError     (exit 5)
        +-- UpstreamParseError      (exit 5)
"""

from __future__ import annotations

from typing import Optional

from deskauth.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LISTENER_ERROR,
    EXIT_PROTOCOL_ERROR,
    EXIT_TIMEOUT,
    EXIT_UPSTREAM_ERROR,
)


class DeskauthError(Exception):
    """Base exception for all deskauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`deskauth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(DeskauthError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(DeskauthError):
    """Raised for invalid CLI arguments or missing required settings."""

    exit_code = EXIT_INVALID_USAGE


class ListenerStartupError(DeskauthError):
    """Raised when the loopback listener cannot bind its port.

    Usually means a previous attempt did not terminate cleanly or another
    process holds the port. Fatal for the attempt; never retried.
    """

    exit_code = EXIT_LISTENER_ERROR


class ProtocolError(DeskauthError):
    """Raised when the OAuth callback itself is unacceptable.

    Covers a provider-reported ``error`` parameter, a missing ``code`` or
    ``state`` parameter, and an anti-forgery state mismatch.
    """

    exit_code = EXIT_PROTOCOL_ERROR


class ProtocolExhaustedError(ProtocolError):
    """Raised when the request stream ends without a completed handshake."""

    exit_code = EXIT_TIMEOUT


class UpstreamError(DeskauthError):
    """Base class for failures talking to the identity provider or backend."""

    exit_code = EXIT_UPSTREAM_ERROR


class UpstreamTransportError(UpstreamError):
    """Raised on network-level failures (timeout, DNS, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class UpstreamStatusError(UpstreamError):
    """Raised when an upstream endpoint answers with a non-2xx status.

    Args:
        message: The error string surfaced to the caller.
        status_code: The HTTP status returned by the upstream endpoint.
        body: The raw response body, kept for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UpstreamParseError(UpstreamError):
    """Raised when an upstream 2xx response body cannot be decoded."""
