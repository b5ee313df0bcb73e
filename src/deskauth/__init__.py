"""deskauth -- Desktop OAuth 2.0 login through a loopback callback listener.

This package runs the Authorization Code + PKCE flow for a desktop
application: a short-lived HTTP server on a fixed loopback port receives the
identity provider's redirect, the authorization code is redeemed at the
provider, and the resulting access token is traded for an application
session at the backend's ``/api/auth/oauth`` endpoint.

Typical use from a host application::

    from deskauth import perform_login

    session = perform_login(verifier, state, backend_url, client_id, client_secret)

or from a terminal::

    deskauth login --backend-url https://api.example.com

Modules:
    login: The public :func:`perform_login` entry point.
    listener: Loopback server and handshake state machine.
    exchange: Provider token and backend session exchanges.
    pkce: Verifier, challenge, state and authorization URL helpers.
    models: Pydantic models shared across the package.
    config: XDG-aware settings and credential resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"

from deskauth.login import LoginOrchestrator, perform_login  # noqa: E402

__all__ = ["LoginOrchestrator", "perform_login", "__version__"]
