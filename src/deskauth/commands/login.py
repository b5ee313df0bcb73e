"""The ``deskauth login`` command.

Runs one interactive login: generates a PKCE pair and state, binds the
loopback listener, opens the provider's consent page in the system browser,
and prints the backend's session object to stdout once the browser has
completed the round trip.

Example::

    export DESKAUTH_CLIENT_ID=... DESKAUTH_CLIENT_SECRET=...
    deskauth login --backend-url https://api.example.com > session.json
"""

from __future__ import annotations

from typing import Optional

import typer

from deskauth.exceptions import DeskauthError, InvalidUsageError
from deskauth.output import error, format_response, info, success, suggest


def login_command(
    backend_url: Optional[str] = typer.Option(
        None, "--backend-url", "-b", help="Application backend base URL."
    ),
    client_id_source: Optional[str] = typer.Option(
        None,
        "--client-id-source",
        help="Where to read the OAuth client id (env:VAR, file:/path, prompt).",
    ),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Where to read the OAuth client secret (env:VAR, file:/path, prompt).",
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback port (must match the registered redirect URI)."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening it."
    ),
) -> None:
    """Sign in through the system browser and print the session JSON.

    Exits with the error's exit code if the attempt fails (see
    :mod:`deskauth.exit_codes`).
    """
    from deskauth.config import resolve_credential, resolve_settings
    from deskauth.login import LoginOrchestrator

    try:
        settings = resolve_settings(
            cli_backend_url=backend_url,
            cli_port=port,
            cli_client_id_source=client_id_source,
            cli_client_secret_source=client_secret_source,
        )
    except DeskauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    missing = [
        flag
        for flag, value in (
            ("--backend-url", settings.backend_url),
            ("--client-id-source", settings.client_id_source),
            ("--client-secret-source", settings.client_secret_source),
        )
        if not value
    ]
    if missing:
        usage = InvalidUsageError(f"Missing required setting(s): {', '.join(missing)}")
        error(str(usage))
        suggest("Pass them as flags or save them with 'deskauth config set'.")
        raise typer.Exit(code=usage.exit_code)

    assert settings.backend_url and settings.client_id_source and settings.client_secret_source

    def _show_url(url: str) -> None:
        if no_browser:
            info("Open this URL in your browser to continue:")
            info(url)
        else:
            info("Opening browser for authentication...")

    try:
        client_id = resolve_credential(settings.client_id_source)
        client_secret = resolve_credential(settings.client_secret_source)
        session = LoginOrchestrator(settings).login_with_browser(
            settings.backend_url,
            client_id,
            client_secret,
            open_browser=not no_browser,
            on_authorization_url=_show_url,
        )
    except DeskauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success("Signed in.")
    format_response(session)
