"""PKCE and anti-forgery helpers for the interactive login flow.

:func:`perform_login <deskauth.login.perform_login>` takes the code verifier
and expected state as inputs; these helpers produce them for callers (such
as the ``deskauth login`` command) that do not bring their own.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from urllib.parse import urlencode

from deskauth.models import LoginSettings


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def generate_state() -> str:
    """Return a fresh URL-safe anti-forgery ``state`` value."""
    return secrets.token_urlsafe(32)


def build_authorization_url(
    settings: LoginSettings,
    client_id: str,
    code_challenge: str,
    state: str,
) -> str:
    """Build the provider authorization URL the browser is sent to.

    The ``redirect_uri`` is the same value the token exchange later sends,
    which the provider requires.
    """
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": settings.effective_redirect_uri,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if settings.scopes:
        params["scope"] = " ".join(settings.scopes)

    separator = "&" if "?" in settings.authorization_url else "?"
    return f"{settings.authorization_url}{separator}{urlencode(params)}"
