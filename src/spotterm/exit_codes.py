"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific failure category and is referenced by the
corresponding :class:`~spotterm.exceptions.SpottermError` subclass.
Shell wrappers can inspect the exit code to tell a rejected login from an
abandoned browser tab without parsing stderr.

Example::

    $ spotterm top-tracks
    $ echo $?
    9   # EXIT_AUTH_TIMEOUT -- nobody completed the browser login
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""Client id, redirect URI or scopes are missing or malformed."""

EXIT_AUTH_FAILURE = 3
"""The provider rejected the authorization code or the bearer token."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_NETWORK_ERROR = 6
"""A network-level error occurred (port in use, DNS failure, connection refused)."""

EXIT_PROTOCOL_ERROR = 7
"""A redirect or response did not follow the OAuth2 protocol."""

EXIT_SECURITY_ERROR = 8
"""The redirect's state value did not match the one sent to the provider."""

EXIT_AUTH_TIMEOUT = 9
"""No valid redirect arrived before the login timeout elapsed."""

EXIT_INTERRUPTED = 130
"""The user pressed Ctrl-C."""
