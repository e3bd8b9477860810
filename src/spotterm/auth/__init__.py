"""Loopback OAuth2 Authorization Code + PKCE login.

Public API:
    - :func:`~spotterm.auth.flow.authenticate` / :class:`~spotterm.auth.flow.LoopbackFlow`
    - :class:`~spotterm.auth.session.Session`
    - building blocks: :mod:`~spotterm.auth.pkce`, :mod:`~spotterm.auth.request`,
      :mod:`~spotterm.auth.listener`, :mod:`~spotterm.auth.exchange`
"""

from spotterm.auth.exchange import TokenExchanger
from spotterm.auth.flow import LoopbackFlow, authenticate
from spotterm.auth.listener import CallbackListener, CallbackResult, parse_callback_query
from spotterm.auth.pkce import PkceParameters, derive_challenge, generate_pkce, generate_state
from spotterm.auth.request import build_authorization_url, parse_redirect_uri
from spotterm.auth.session import Session

__all__ = [
    "CallbackListener",
    "CallbackResult",
    "LoopbackFlow",
    "PkceParameters",
    "Session",
    "TokenExchanger",
    "authenticate",
    "build_authorization_url",
    "derive_challenge",
    "generate_pkce",
    "generate_state",
    "parse_callback_query",
    "parse_redirect_uri",
]
