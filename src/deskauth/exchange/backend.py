"""Exchange a provider access token for an application session."""

from __future__ import annotations

from deskauth.exchange.transport import FailureMessages, post_for_json
from deskauth.models import SessionPayload

BACKEND_PATH = "/api/auth/oauth"

BACKEND_MESSAGES = FailureMessages(
    transport="Backend request failed",
    status="Backend authentication failed",
    parse="Failed to parse backend response",
)


class BackendAuthenticator:
    """POST the provider token to ``<backend_url>/api/auth/oauth``.

    The backend's reply is an opaque JSON session object and is returned
    without inspection.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    def authenticate(self, access_token: str, backend_url: str) -> SessionPayload:
        """Return the backend's session object for *access_token*.

        Raises:
            UpstreamTransportError: ``Backend request failed: <detail>``.
            UpstreamStatusError: ``Backend authentication failed: <body>``.
            UpstreamParseError: ``Failed to parse backend response: <detail>``.
        """
        url = f"{backend_url.rstrip('/')}{BACKEND_PATH}"
        return post_for_json(
            url, BACKEND_MESSAGES, timeout=self.timeout, json={"token": access_token}
        )
