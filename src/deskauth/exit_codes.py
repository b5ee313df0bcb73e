"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~deskauth.exceptions.DeskauthError` subclass.
Wrapper scripts (desktop launchers, shell helpers) can inspect the exit code
to determine why a login attempt ended without parsing stderr.

Example::

    $ deskauth login
    $ echo $?
    3   # EXIT_PROTOCOL_ERROR -- the provider reported an error or state mismatched
"""

EXIT_SUCCESS = 0
"""The login completed and the session payload was printed."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required options."""

EXIT_PROTOCOL_ERROR = 3
"""The OAuth callback was rejected (provider error, missing parameter, bad state)."""

EXIT_LISTENER_ERROR = 4
"""The loopback callback listener could not bind its port."""

EXIT_UPSTREAM_ERROR = 5
"""The identity provider or application backend returned an unusable response."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred talking to the provider or backend."""

EXIT_TIMEOUT = 7
"""The listener stopped before the browser completed the handshake."""
