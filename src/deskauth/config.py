"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for deskauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.deskauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- A single :class:`~deskauth.models.LoginSettings` JSON
  file storing the provider endpoints, listener port, backend URL and
  credential sources.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables and the settings file into the effective settings.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or interactive prompts.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent a half-written config on crash.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from deskauth.exceptions import ConfigError
from deskauth.models import LoginSettings

_APP_NAME = "deskauth"
_CONFIG_FILENAME = "config.json"

ENV_BACKEND_URL = "DESKAUTH_BACKEND_URL"
ENV_PORT = "DESKAUTH_PORT"
ENV_CLIENT_ID = "DESKAUTH_CLIENT_ID"
ENV_CLIENT_SECRET = "DESKAUTH_CLIENT_SECRET"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/deskauth/`` (default ``~/.config/deskauth/``).
    On macOS/Windows: ``~/.deskauth/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/deskauth/`` (default ``~/.local/share/deskauth/``).
    On macOS/Windows: ``~/.deskauth/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings file ---


def settings_path() -> Path:
    """Path to the settings file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_settings() -> LoginSettings:
    """Load settings from the XDG config directory.

    Returns:
        The deserialised :class:`~deskauth.models.LoginSettings`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = settings_path()
    if not path.is_file():
        return LoginSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return LoginSettings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_settings(settings: LoginSettings) -> None:
    """Persist settings atomically to disk.

    Only fields that differ from the defaults are written, so that upgrading
    deskauth picks up new defaults for untouched settings.
    """
    data = settings.model_dump(mode="json", exclude_defaults=True)
    _atomic_write(settings_path(), json.dumps(data, indent=2) + "\n")


def reset_settings() -> bool:
    """Delete the settings file. Returns ``True`` if a file was removed."""
    path = settings_path()
    if not path.is_file():
        return False
    path.unlink()
    return True


def update_setting(key: str, value: str) -> LoginSettings:
    """Set one field from its string form and persist the result.

    List fields (``scopes``) accept a space- or comma-separated value.

    Raises:
        ConfigError: If *key* is not a known setting or *value* fails
            validation.
    """
    if key not in LoginSettings.model_fields:
        known = ", ".join(sorted(LoginSettings.model_fields))
        raise ConfigError(f"Unknown setting '{key}'. Known settings: {known}")

    current = load_settings().model_dump()
    parsed: Any = value
    if key == "scopes":
        parsed = [s for s in value.replace(",", " ").split() if s]
    current[key] = parsed
    try:
        updated = LoginSettings.model_validate(current)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{key}': {exc}") from exc
    save_settings(updated)
    return updated


# --- Precedence resolution ---


def resolve_settings(
    cli_backend_url: Optional[str] = None,
    cli_port: Optional[int] = None,
    cli_client_id_source: Optional[str] = None,
    cli_client_secret_source: Optional[str] = None,
) -> LoginSettings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``DESKAUTH_BACKEND_URL``, ``DESKAUTH_PORT``,
           ``DESKAUTH_CLIENT_ID``, ``DESKAUTH_CLIENT_SECRET``)
        3. User config (``~/.config/deskauth/config.json``)
        4. Defaults

    A set ``DESKAUTH_CLIENT_ID`` / ``DESKAUTH_CLIENT_SECRET`` becomes an
    ``env:`` credential source, so the secret itself never lands in the
    settings object.

    Raises:
        ConfigError: If the config file is invalid or ``DESKAUTH_PORT`` is
            not an integer.
    """
    settings = load_settings()
    overrides: dict[str, Any] = {}

    env_backend = os.environ.get(ENV_BACKEND_URL)
    if env_backend:
        overrides["backend_url"] = env_backend
    env_port = os.environ.get(ENV_PORT)
    if env_port:
        try:
            overrides["port"] = int(env_port)
        except ValueError as exc:
            raise ConfigError(f"{ENV_PORT} must be an integer, got '{env_port}'") from exc
    if os.environ.get(ENV_CLIENT_ID):
        overrides["client_id_source"] = f"env:{ENV_CLIENT_ID}"
    if os.environ.get(ENV_CLIENT_SECRET):
        overrides["client_secret_source"] = f"env:{ENV_CLIENT_SECRET}"

    if cli_backend_url is not None:
        overrides["backend_url"] = cli_backend_url
    if cli_port is not None:
        overrides["port"] = cli_port
    if cli_client_id_source is not None:
        overrides["client_id_source"] = cli_client_id_source
    if cli_client_secret_source is not None:
        overrides["client_secret_source"] = cli_client_secret_source

    if not overrides:
        return settings
    try:
        return LoginSettings.model_validate({**settings.model_dump(), **overrides})
    except ValidationError as exc:
        raise ConfigError(f"Invalid setting override: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Args:
        source: The source descriptor string.

    Returns:
        The resolved credential string.

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter credential: ")

    raise ConfigError(f"Unknown credential source format: {source}")
