"""States of the callback handshake."""

from __future__ import annotations

from enum import Enum


class HandshakeState(str, Enum):
    """Where a login attempt stands in the browser round trip.

    ``AWAITING_CALLBACK`` -> ``EXCHANGING_TOKEN`` -> ``AUTHENTICATING_BACKEND``
    -> ``AWAITING_FINAL_PING`` -> ``DONE``, with ``FAILED`` reachable from
    any non-terminal state.

    ``AWAITING_FINAL_PING`` means the exchanges have run (leaving either the
    session payload or an upstream error) but the browser has not yet fetched
    the listener root, so the outcome must not be delivered and the server
    must stay up.
    """

    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING_TOKEN = "exchanging_token"
    AUTHENTICATING_BACKEND = "authenticating_backend"
    AWAITING_FINAL_PING = "awaiting_final_ping"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (HandshakeState.DONE, HandshakeState.FAILED)
