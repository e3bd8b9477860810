"""Built-in spotterm commands and the helpers they share.

Commands catch :class:`~spotterm.exceptions.SpottermError`, print it with a
next-step hint and exit with the error's code via :func:`fail`.
"""

from __future__ import annotations

from typing import Any, NoReturn, Optional

import typer

from spotterm.exceptions import (
    AuthError,
    AuthTimeoutError,
    ConfigError,
    NetworkError,
    NotFoundError,
    SecurityError,
    SpottermError,
)
from spotterm.output import error, suggest

_HINTS: dict[type[SpottermError], str] = {
    ConfigError: "Check your settings: spotterm config show",
    AuthTimeoutError: "Run the command again and finish the login in your browser "
    "(or raise --timeout)",
    SecurityError: "Start a fresh login; do not reuse an old login link",
    NetworkError: "Make sure the redirect port is free and you are online",
    AuthError: "Log in again: spotterm login",
    NotFoundError: "Check the id: spotterm playlists",
}


def suggestion_for(exc: SpottermError) -> Optional[str]:
    """Return the next-step hint for *exc*, if there is one."""
    for cls in type(exc).__mro__:
        hint = _HINTS.get(cls)  # type: ignore[arg-type]
        if hint:
            return hint
    return None


def fail(exc: SpottermError) -> NoReturn:
    """Print *exc* and a hint to stderr, then exit with its code."""
    error(str(exc))
    hint = suggestion_for(exc)
    if hint:
        suggest(hint)
    raise typer.Exit(code=exc.exit_code)


def cli_overrides(ctx: typer.Context) -> dict[str, Any]:
    """Collect the login overrides stored by the root callback."""
    obj = ctx.obj if isinstance(ctx.obj, dict) else {}
    return {
        "cli_client_id": obj.get("client_id"),
        "cli_redirect_uri": obj.get("redirect_uri"),
        "cli_scopes": obj.get("scopes"),
        "cli_timeout": obj.get("timeout"),
    }
