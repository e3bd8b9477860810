"""Exception hierarchy for spotterm.

All exceptions inherit from :class:`SpottermError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`spotterm.exit_codes`.
The login flow and the Web API client only ever *raise* these; the
top-level handler in :func:`spotterm.app.main` is the single place that
turns them into a message on stderr and a process exit code.

Subclass hierarchy::

    SpottermError        (exit 1)
    +-- ConfigError      (exit 2)
    +-- AuthError        (exit 3)
    +-- NotFoundError    (exit 4)
    +-- ServerError      (exit 5)
    +-- NetworkError     (exit 6)
    +-- ProtocolError    (exit 7)
    +-- SecurityError    (exit 8)
    +-- AuthTimeoutError (exit 9)
"""

from __future__ import annotations

from spotterm.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_AUTH_TIMEOUT,
    EXIT_CONFIG_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_NETWORK_ERROR,
    EXIT_NOT_FOUND,
    EXIT_PROTOCOL_ERROR,
    EXIT_SECURITY_ERROR,
    EXIT_SERVER_ERROR,
)


class SpottermError(Exception):
    """Base exception for all spotterm errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`spotterm.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(SpottermError):
    """Raised for missing or malformed client id, redirect URI, scopes or config files.

    Always detected before any socket is bound or any request is sent.
    """

    exit_code = EXIT_CONFIG_ERROR


class AuthError(SpottermError):
    """Raised when the provider rejects a code/verifier pair or a bearer token.

    Args:
        message: Human-readable error description.
        error_code: The OAuth2 ``error`` value returned by the provider
            (e.g. ``invalid_grant``), when one was returned.
        status_code: HTTP status of the rejecting response, if any.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class NotFoundError(SpottermError):
    """Raised when the Web API returns HTTP 404."""

    exit_code = EXIT_NOT_FOUND


class ServerError(SpottermError):
    """Raised when the Web API returns a 5xx, or a 4xx with no better mapping."""

    exit_code = EXIT_SERVER_ERROR


class NetworkError(SpottermError):
    """Raised on transport failures.

    Covers the loopback listener failing to bind (port already in use) as
    well as DNS, connect and read failures against the token endpoint or
    the Web API.
    """

    exit_code = EXIT_NETWORK_ERROR


class ProtocolError(SpottermError):
    """Raised when a redirect is not a usable OAuth2 authorization response.

    The callback listener catches it and answers with a neutral page; it
    only reaches callers of
    :func:`~spotterm.auth.listener.parse_callback_query`.

    Args:
        message: Human-readable error description.
        error_code: The provider's ``error`` value when the redirect
            reported one (e.g. ``access_denied``).
    """

    exit_code = EXIT_PROTOCOL_ERROR

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


class SecurityError(SpottermError):
    """Raised when the redirect's ``state`` does not match the generated nonce.

    The authorization code that came with it is discarded without being
    exchanged.
    """

    exit_code = EXIT_SECURITY_ERROR


class AuthTimeoutError(SpottermError):
    """Raised when no valid redirect arrives within the configured bound.

    Named to avoid shadowing the built-in ``TimeoutError``.
    """

    exit_code = EXIT_AUTH_TIMEOUT
