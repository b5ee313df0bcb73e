"""Outbound exchanges performed once the browser callback is accepted.

Exports:
    :class:`TokenExchanger` -- authorization code to provider access token.
    :class:`BackendAuthenticator` -- provider access token to application
    session.
"""

from deskauth.exchange.backend import BackendAuthenticator
from deskauth.exchange.token import TokenExchanger

__all__ = ["BackendAuthenticator", "TokenExchanger"]
