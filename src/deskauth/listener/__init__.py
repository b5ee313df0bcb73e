"""Loopback callback listener and handshake state machine.

Exports:
    :class:`CallbackListener` -- binds the loopback port and serves one
    login attempt.
    :class:`CallbackHandshake` -- the socket-free state machine.
    :class:`HandshakeState` -- states of the handshake.
    :class:`WindowNotifier` -- host UI capability notified on success.
"""

from deskauth.listener.handshake import CallbackHandshake
from deskauth.listener.notifier import LoggingNotifier, WindowNotifier
from deskauth.listener.server import CallbackListener, LoopbackServer
from deskauth.listener.state import HandshakeState

__all__ = [
    "CallbackHandshake",
    "CallbackListener",
    "HandshakeState",
    "LoggingNotifier",
    "LoopbackServer",
    "WindowNotifier",
]
