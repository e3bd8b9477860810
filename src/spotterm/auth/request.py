"""Authorization URL construction and redirect URI validation."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import urlencode, urlparse

from spotterm.auth.pkce import CHALLENGE_METHOD
from spotterm.exceptions import ConfigError
from spotterm.models import SPOTIFY_AUTHORIZE_URL


def parse_redirect_uri(uri: str) -> tuple[str, int, str]:
    """Split a loopback redirect URI into ``(host, port, path)``.

    The URI must use ``http`` and name both a host and an explicit port;
    the listener binds exactly that address.

    Raises:
        ConfigError: If the URI is empty, unparsable, not ``http``, or lacks
            a host or port.
    """
    if not uri or not uri.strip():
        raise ConfigError("redirect_uri must not be empty")

    try:
        parsed = urlparse(uri)
        port = parsed.port
    except ValueError as exc:
        raise ConfigError(f"Invalid redirect_uri '{uri}': {exc}") from exc

    if parsed.scheme != "http":
        raise ConfigError(
            f"Invalid redirect_uri '{uri}': scheme must be 'http' for a loopback redirect"
        )
    if not parsed.hostname:
        raise ConfigError(f"Invalid redirect_uri '{uri}': missing host")
    if port is None:
        raise ConfigError(
            f"Invalid redirect_uri '{uri}': an explicit port is required, "
            "e.g. http://127.0.0.1:8888/callback"
        )
    if port == 0:
        raise ConfigError(f"Invalid redirect_uri '{uri}': port must not be 0")

    return parsed.hostname, port, parsed.path or "/"


def build_authorization_url(
    client_id: str,
    scopes: Sequence[str],
    redirect_uri: str,
    challenge: str,
    state: str,
    authorize_url: str = SPOTIFY_AUTHORIZE_URL,
) -> str:
    """Compose the provider-facing authorization URL.

    Args:
        client_id: Registered application id.
        scopes: Permissions in the order they should be requested. Sent
            space-joined; duplicates are rejected.
        redirect_uri: Loopback URI the provider redirects back to.
        challenge: PKCE ``code_challenge`` (never the verifier).
        state: Anti-forgery nonce for this attempt.
        authorize_url: Authorization endpoint.

    Returns:
        The full URL to open in the browser.

    Raises:
        ConfigError: On an empty client id, a duplicate or blank scope, or a
            redirect URI rejected by :func:`parse_redirect_uri`.
    """
    if not client_id or not client_id.strip():
        raise ConfigError("client_id must not be empty")
    parse_redirect_uri(redirect_uri)

    seen: set[str] = set()
    for scope in scopes:
        if not scope or any(ch.isspace() for ch in scope):
            raise ConfigError(f"Invalid scope {scope!r}")
        if scope in seen:
            raise ConfigError(f"Duplicate scope '{scope}'")
        seen.add(scope)

    params: dict[str, str] = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "code_challenge_method": CHALLENGE_METHOD,
        "code_challenge": challenge,
        "state": state,
    }
    if scopes:
        params["scope"] = " ".join(scopes)

    return f"{authorize_url}?{urlencode(params)}"
