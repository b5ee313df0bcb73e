"""Config commands -- view and modify saved login settings.

Provides the ``deskauth config`` sub-command group for reading, updating,
and resetting the settings file (:class:`~deskauth.models.LoginSettings`).
Saved values are the lowest-precedence layer: environment variables and
``login`` flags override them.
"""

from __future__ import annotations

import typer

from deskauth.exceptions import ConfigError
from deskauth.exit_codes import EXIT_INVALID_USAGE
from deskauth.output import error, info, print_table, success


config_app = typer.Typer(no_args_is_help=True)


def _display(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value)


@config_app.command("show")
def config_show() -> None:
    """Show the effective settings.

    Includes environment overrides, so the table reflects what ``login``
    would use without flags.

    Example::

        deskauth config show
        deskauth --json config show
    """
    from deskauth.config import resolve_settings, settings_path

    try:
        settings = resolve_settings()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config file: {settings_path()}")
    rows = [[key, _display(value)] for key, value in settings.model_dump().items()]
    rows.append(["effective_redirect_uri", settings.effective_redirect_uri])
    print_table(["setting", "value"], rows, title="deskauth settings")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'backend_url' or 'port'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a saved setting.

    The value is validated against :class:`~deskauth.models.LoginSettings`
    before it is written.

    Example::

        deskauth config set backend_url https://api.example.com
        deskauth config set client_secret_source file:~/.deskauth-secret
        deskauth config set scopes "openid email"
    """
    from deskauth.config import update_setting

    try:
        update_setting(key, value)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete the settings file so every setting falls back to its default."""
    from deskauth.config import reset_settings

    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    if reset_settings():
        success("Settings reset to defaults.")
    else:
        info("No saved settings to reset.")
