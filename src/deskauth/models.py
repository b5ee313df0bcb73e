"""Canonical Pydantic models shared across all deskauth modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`LoginSettings`.

**Handshake models** -- created and consumed during one login attempt:
    :class:`LoginAttempt`, :class:`CallbackRequest`, and
    :class:`ProviderTokenResponse`.

The backend's session object is deliberately *not* modelled: it is an opaque
JSON value (:data:`SessionPayload`) handed back to the caller verbatim.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import parse_qsl, urlsplit

from pydantic import BaseModel, ConfigDict, Field


SessionPayload = Any
"""Opaque JSON value returned by the application backend."""

DEFAULT_PORT = 1409
"""Loopback port registered with the identity provider."""

DEFAULT_CALLBACK_PATH = "/oauth/callback"


# --- Configuration ---


class LoginSettings(BaseModel):
    """Tunables for a login attempt, persisted at ``~/.config/deskauth/config.json``.

    Loaded and saved by :func:`~deskauth.config.load_settings` and
    :func:`~deskauth.config.save_settings`. Fields here have the lowest
    precedence and can be overridden by environment variables or CLI flags.
    See :func:`~deskauth.config.resolve_settings` for the precedence chain.

    The ``redirect_uri`` sent to the provider must match the one registered
    for the client byte for byte, so it is configured explicitly rather than
    derived from ``host``: the listener binds ``127.0.0.1`` while Google-style
    desktop clients register ``http://localhost:<port>/oauth/callback``.
    """

    host: str = Field(default="127.0.0.1", description="Loopback address to bind")
    port: int = Field(
        default=DEFAULT_PORT,
        ge=0,
        le=65535,
        description="Listener port; 0 binds an ephemeral port",
    )
    callback_path: str = Field(
        default=DEFAULT_CALLBACK_PATH, description="Path the provider redirects to"
    )
    redirect_uri: Optional[str] = Field(
        default=None,
        description="Registered redirect URI (default: http://localhost:<port><callback_path>)",
    )
    authorization_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url: str = "https://oauth2.googleapis.com/token"
    scopes: list[str] = Field(default_factory=lambda: ["openid", "email", "profile"])
    backend_url: Optional[str] = Field(
        default=None, description="Application backend base URL"
    )
    client_id_source: Optional[str] = Field(
        default=None, description="Credential source for the OAuth client id"
    )
    client_secret_source: Optional[str] = Field(
        default=None, description="Credential source for the OAuth client secret"
    )
    grace_period: float = Field(
        default=0.5,
        ge=0,
        description="Seconds to wait after the final page before shutting down",
    )
    listen_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Seconds to wait for the browser before giving up",
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for provider/backend requests"
    )

    @property
    def effective_redirect_uri(self) -> str:
        """The redirect URI sent to the provider in both legs of the flow."""
        if self.redirect_uri:
            return self.redirect_uri
        return f"http://localhost:{self.port}{self.callback_path}"


# --- Handshake ---


class LoginAttempt(BaseModel):
    """Inputs and outcome of one in-flight login.

    Owned by :class:`~deskauth.login.LoginOrchestrator` for the duration of
    a single call. Only the listener writes ``result``, and only once.
    """

    code_verifier: str
    expected_state: str
    backend_url: str
    client_id: str
    client_secret: str
    result: SessionPayload = None


class CallbackRequest(BaseModel):
    """A parsed inbound request to the loopback listener.

    Attributes:
        path: The URL path without the query string.
        query_params: Decoded query parameters. When a key repeats, the
            first occurrence wins.
        raw_query: The undecoded query string, kept so that ``/`` and
            ``/?`` both classify as the root path.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    query_params: dict[str, str] = Field(default_factory=dict)
    raw_query: str = ""

    @classmethod
    def from_target(cls, target: str) -> CallbackRequest:
        """Parse an HTTP request target such as ``/oauth/callback?code=x``."""
        parts = urlsplit(target)
        params: dict[str, str] = {}
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            params.setdefault(key, value)
        return cls(path=parts.path or "/", query_params=params, raw_query=parts.query)

    @property
    def is_root(self) -> bool:
        return self.path == "/" and not self.raw_query


class ProviderTokenResponse(BaseModel):
    """Token endpoint reply from the identity provider.

    Only ``access_token`` is used, but ``token_type`` and ``expires_in`` are
    required as well: a reply missing any of them is treated as malformed.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str
    expires_in: int
