"""Typer application and CLI entry point for spotterm.

This module wires together the top-level Typer application and registers
the built-in commands (``login``, ``me``, ``playlists``, ``top-tracks``,
``top-artists``, ``playlist`` and the ``config`` group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs the SIGINT handler and invokes the Typer
app. :class:`~spotterm.exceptions.SpottermError` becomes a one-line error
and its exit code; any other exception is written to a crash log under the
data directory.

See Also:
    :mod:`spotterm.config`: Settings resolution.
    :mod:`spotterm.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from spotterm import __version__
from spotterm.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED


app = typer.Typer(
    name="spotterm",
    help="Browse your Spotify playlists, top tracks and top artists from the terminal.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"spotterm {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="Spotify app client id (overrides SPOTIFY_CLIENT_ID)."
    ),
    redirect_uri: Optional[str] = typer.Option(
        None,
        "--redirect-uri",
        help="Loopback redirect URI (overrides SPOTIFY_REDIRECT_URI).",
    ),
    scopes: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request; repeat for several."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser login."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~spotterm.output.OutputManager`, hooks the
    ``spotterm`` logger up to it, and stores the login overrides in
    ``ctx.obj`` for :func:`~spotterm.commands.cli_overrides`.
    """
    from spotterm.config import load_global_config
    from spotterm.exceptions import ConfigError
    from spotterm.output import OutputFormat, OutputManager, configure_logging, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        try:
            fmt = OutputFormat(load_global_config().output.format)
        except (ConfigError, ValueError):
            # A broken config file is reported by the command that reads it.
            fmt = OutputFormat.AUTO

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["client_id"] = client_id
    ctx.obj["redirect_uri"] = redirect_uri
    ctx.obj["scopes"] = list(scopes) if scopes else None
    ctx.obj["timeout"] = timeout
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from spotterm.commands.auth import login_command  # noqa: E402
from spotterm.commands.config import config_app  # noqa: E402
from spotterm.commands.library import (  # noqa: E402
    me_command,
    playlist_command,
    playlists_command,
    top_artists_command,
    top_tracks_command,
)

app.command("login")(login_command)
app.command("me")(me_command)
app.command("playlists")(playlists_command)
app.command("top-tracks")(top_tracks_command)
app.command("top-artists")(top_artists_command)
app.command("playlist")(playlist_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from spotterm.config import get_data_dir

    logs_dir = get_data_dir()
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        encoding="utf-8",
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``spotterm`` console script.

    Unhandled :class:`~spotterm.exceptions.SpottermError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from spotterm.commands import suggestion_for
        from spotterm.exceptions import SpottermError
        from spotterm.output import error, suggest

        if isinstance(exc, SpottermError):
            error(str(exc))
            hint = suggestion_for(exc)
            if hint:
                suggest(hint)
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
