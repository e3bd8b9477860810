"""Config commands -- view and modify the user configuration.

Provides the ``spotterm config`` sub-command group. Values written here
have the lowest precedence: flags, environment variables and ``.env``
entries override them.
"""

from __future__ import annotations

import typer

from spotterm.commands import cli_overrides, fail
from spotterm.config import (
    SETTABLE_KEYS,
    global_config_path,
    load_global_config,
    mask_secret,
    resolve_settings,
    set_config_value,
)
from spotterm.exceptions import ConfigError, SpottermError
from spotterm.output import format_response, info, print_data, success, warning


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective login settings.

    Resolves flags, environment, ``.env`` and the config file the same way
    a login would. The client id is masked. When required values are still
    missing, the raw config file is shown with a warning instead.

    Example::

        spotterm config show
        spotterm --json config show
    """
    try:
        info(f"Config file: {global_config_path()}")
        try:
            settings = resolve_settings(**cli_overrides(ctx))
        except ConfigError as exc:
            warning(str(exc))
            data = load_global_config().model_dump(mode="json", exclude_none=True)
            if data.get("client_id"):
                data["client_id"] = mask_secret(data["client_id"])
            format_response(data)
            return
    except SpottermError as exc:
        fail(exc)

    data = settings.model_dump(mode="json")
    data["client_id"] = mask_secret(settings.client_id)
    data["scopes"] = " ".join(settings.scopes)
    format_response(data)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help=f"Config key: {', '.join(SETTABLE_KEYS)}."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    ``scopes`` takes a space- or comma-separated list; ``timeout`` is in
    seconds.

    Example::

        spotterm config set client_id 0123456789abcdef
        spotterm config set redirect_uri http://127.0.0.1:8888/callback
        spotterm config set scopes "user-read-email user-top-read"
    """
    try:
        set_config_value(key, value)
    except SpottermError as exc:
        fail(exc)
    shown = mask_secret(value) if key == "client_id" else value
    success(f"Set {key} = {shown}")


@config_app.command("path")
def config_path() -> None:
    """Print the config file path."""
    print_data(str(global_config_path()))
