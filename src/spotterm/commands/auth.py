"""Login command and the session bootstrap shared by every API command.

Typical workflow::

    spotterm login                         # browser login, prints a summary
    spotterm --redirect-uri http://127.0.0.1:9000/cb login
"""

from __future__ import annotations

import typer

from spotterm.auth import Session, authenticate
from spotterm.commands import cli_overrides, fail
from spotterm.config import resolve_settings
from spotterm.exceptions import SpottermError
from spotterm.models import AuthSettings
from spotterm.output import format_response, success


def login_session(ctx: typer.Context) -> tuple[Session, AuthSettings]:
    """Resolve settings and run the browser login.

    Raises:
        SpottermError: Any configuration or login failure. Callers pass it
            to :func:`~spotterm.commands.fail` before touching the Web API.
    """
    settings = resolve_settings(**cli_overrides(ctx))
    session = authenticate(settings)
    return session, settings


def login_command(ctx: typer.Context) -> None:
    """Log in to Spotify in the browser and show the granted session.

    The access token itself is never printed.

    Example::

        spotterm login
        spotterm --json login
    """
    try:
        session, _ = login_session(ctx)
    except SpottermError as exc:
        fail(exc)

    success("Logged in to Spotify.")
    format_response(
        {
            "token_type": session.token_type,
            "expires_at": session.expires_at.isoformat(timespec="seconds"),
            "expires_in": int(session.expires_in()),
            "scope": session.scope or "",
            "refresh_token": "yes" if session.refresh_token else "no",
        }
    )
