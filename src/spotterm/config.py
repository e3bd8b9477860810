"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module owns everything the login flow is *configured* with:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.spotterm/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **User config** -- a single :class:`~spotterm.models.GlobalConfig` JSON
  file, written atomically (:func:`_atomic_write`).
* **Dotenv** -- a ``.env`` file in the working directory is loaded with
  ``python-dotenv`` without overriding variables already in the
  environment.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, the user config file and defaults into the
  :class:`~spotterm.models.AuthSettings` handed to the login flow.

Missing or malformed values surface as :class:`~spotterm.exceptions.ConfigError`
here, before the flow binds any socket.
"""

from __future__ import annotations

import json
import math
import os
import platform
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from spotterm.exceptions import ConfigError
from spotterm.models import MAX_AUTH_TIMEOUT, AuthSettings, GlobalConfig

_APP_NAME = "spotterm"
_CONFIG_FILENAME = "config.json"

ENV_CLIENT_ID = "SPOTIFY_CLIENT_ID"
ENV_REDIRECT_URI = "SPOTIFY_REDIRECT_URI"
ENV_SCOPES = "SPOTIFY_SCOPES"
ENV_TIMEOUT = "SPOTTERM_AUTH_TIMEOUT"
ENV_NO_DOTENV = "SPOTTERM_NO_DOTENV"

SETTABLE_KEYS = ("client_id", "redirect_uri", "scopes", "timeout", "output.format")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/spotterm/`` (default ``~/.config/spotterm/``).
    On macOS/Windows: ``~/.spotterm/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/spotterm/`` (default ``~/.local/share/spotterm/``).
    On macOS/Windows: ``~/.spotterm/logs/``.
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

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX. On any failure the temp
    file is removed and the original file is left untouched.
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
        fd = None
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


# --- User config ---


def global_config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the user configuration.

    Returns:
        The deserialised :class:`~spotterm.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but holds invalid JSON or fails
            validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the user configuration atomically."""
    data = config.model_dump(mode="json", exclude_none=True)
    _atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


def set_config_value(key: str, value: str) -> GlobalConfig:
    """Set one key in the user config file and return the saved config.

    Args:
        key: One of :data:`SETTABLE_KEYS`.
        value: Raw string from the command line. ``scopes`` accepts a
            space- or comma-separated list; ``timeout`` must be a positive
            number.

    Raises:
        ConfigError: On an unknown key or an invalid value.
    """
    if key not in SETTABLE_KEYS:
        raise ConfigError(
            f"Unknown config key '{key}'. Valid keys: {', '.join(SETTABLE_KEYS)}"
        )

    config = load_global_config()
    if key == "scopes":
        config.scopes = parse_scopes(value)
    elif key == "timeout":
        config.timeout = _parse_timeout(value, key)
    elif key == "output.format":
        if value not in ("auto", "json", "plain", "rich"):
            raise ConfigError(
                f"Invalid output format '{value}': must be auto, json, plain or rich"
            )
        config.output.format = value
    else:
        setattr(config, key, value)

    save_global_config(config)
    return config


# --- Dotenv ---


def load_dotenv_file(directory: Optional[Path] = None) -> bool:
    """Load ``.env`` from *directory* (default: the working directory).

    Variables already present in the environment win. Setting
    ``SPOTTERM_NO_DOTENV`` disables loading altogether.

    Returns:
        ``True`` if a file was found and loaded.
    """
    if os.environ.get(ENV_NO_DOTENV):
        return False
    path = (directory or Path.cwd()) / ".env"
    if not path.is_file():
        return False
    return load_dotenv(dotenv_path=path, override=False)


# --- Precedence resolution ---


def parse_scopes(raw: str) -> list[str]:
    """Split a space- or comma-separated scope string, keeping order."""
    return [s for s in re.split(r"[\s,]+", raw.strip()) if s]


def _parse_timeout(raw: str, source: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid timeout '{raw}' (source: {source})") from exc
    if not math.isfinite(value) or not 0 < value <= MAX_AUTH_TIMEOUT:
        raise ConfigError(
            f"Timeout must be between 0 and {MAX_AUTH_TIMEOUT:g} seconds, got {raw} "
            f"(source: {source})"
        )
    return value


def resolve_settings(
    cli_client_id: Optional[str] = None,
    cli_redirect_uri: Optional[str] = None,
    cli_scopes: Optional[list[str]] = None,
    cli_timeout: Optional[float] = None,
) -> AuthSettings:
    """Resolve login settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``SPOTIFY_CLIENT_ID``,
           ``SPOTIFY_REDIRECT_URI``, ``SPOTIFY_SCOPES``,
           ``SPOTTERM_AUTH_TIMEOUT``)
        3. ``.env`` in the working directory (fills unset env vars only)
        4. User config (``~/.config/spotterm/config.json``)
        5. Defaults

    Returns:
        Validated :class:`~spotterm.models.AuthSettings`.

    Raises:
        ConfigError: If the client id or redirect URI is missing from every
            layer, or any value fails validation.
    """
    load_dotenv_file()
    global_cfg = load_global_config()

    client_id = cli_client_id or os.environ.get(ENV_CLIENT_ID) or global_cfg.client_id
    if not client_id:
        raise ConfigError(
            f"No client id configured. Set {ENV_CLIENT_ID}, pass --client-id, "
            "or run: spotterm config set client_id <id>"
        )

    redirect_uri = (
        cli_redirect_uri or os.environ.get(ENV_REDIRECT_URI) or global_cfg.redirect_uri
    )
    if not redirect_uri:
        raise ConfigError(
            f"No redirect URI configured. Set {ENV_REDIRECT_URI}, pass --redirect-uri, "
            "or run: spotterm config set redirect_uri http://127.0.0.1:8888/callback"
        )

    values: dict[str, Any] = {"client_id": client_id, "redirect_uri": redirect_uri}

    env_scopes = os.environ.get(ENV_SCOPES)
    if cli_scopes:
        values["scopes"] = list(cli_scopes)
    elif env_scopes:
        values["scopes"] = parse_scopes(env_scopes)
    elif global_cfg.scopes:
        values["scopes"] = list(global_cfg.scopes)

    env_timeout = os.environ.get(ENV_TIMEOUT)
    if cli_timeout is not None:
        values["timeout"] = cli_timeout
    elif env_timeout:
        values["timeout"] = _parse_timeout(env_timeout, ENV_TIMEOUT)
    elif global_cfg.timeout is not None:
        values["timeout"] = global_cfg.timeout

    try:
        return AuthSettings(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid login settings: {exc}") from exc


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask all but the last *visible* characters of *value*."""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
