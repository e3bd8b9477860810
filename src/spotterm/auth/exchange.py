"""Authorization code to token exchange against the provider's token endpoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from spotterm.auth.session import Session
from spotterm.exceptions import AuthError, NetworkError
from spotterm.models import SPOTIFY_TOKEN_URL

logger = logging.getLogger(__name__)

# Transient failures get exactly one more attempt; 4xx never does.
_MAX_ATTEMPTS = 2


class TokenExchanger:
    """Trade an authorization code and PKCE verifier for a :class:`Session`.

    Args:
        token_url: Token endpoint.
        timeout: Per-request HTTP timeout in seconds.
        client: Optional pre-built :class:`httpx.Client`. The exchanger
            does not close a client it was given.
    """

    def __init__(
        self,
        token_url: str = SPOTIFY_TOKEN_URL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._token_url = token_url
        self._timeout = timeout
        self._client = client

    def exchange(
        self,
        code: str,
        verifier: str,
        redirect_uri: str,
        client_id: str,
    ) -> Session:
        """POST the authorization code grant and build a session.

        Args:
            code: Authorization code from the redirect.
            verifier: The PKCE verifier whose challenge went into the
                authorization URL.
            redirect_uri: Must equal the one used in the authorization URL.
            client_id: Registered application id.

        Returns:
            A :class:`Session` with ``expires_at`` computed at receipt.

        Raises:
            AuthError: On a 4xx response (carrying the provider's ``error``
                code) or a 2xx without ``access_token``.
            NetworkError: If the endpoint is unreachable, times out or
                returns 5xx on both attempts.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "code_verifier": verifier,
        }

        if self._client is not None:
            response = self._post_with_retry(self._client, data)
        else:
            with httpx.Client(timeout=self._timeout) as client:
                response = self._post_with_retry(client, data)

        received_at = datetime.now(timezone.utc)

        if response.status_code >= 400:
            raise self._auth_error(response)

        try:
            token_data: Any = response.json()
        except ValueError as exc:
            raise AuthError("Token endpoint returned a non-JSON response") from exc
        if not isinstance(token_data, dict):
            raise AuthError("Token endpoint returned an unexpected response body")

        session = Session.from_token_response(token_data, received_at=received_at)
        logger.debug("Token exchange succeeded; token expires at %s", session.expires_at.isoformat())
        return session

    def _post_with_retry(self, client: httpx.Client, data: dict[str, str]) -> httpx.Response:
        last_error: Optional[Exception] = None
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                response = client.post(
                    self._token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                    timeout=self._timeout,
                )
            except httpx.TransportError as exc:
                last_error = exc
                logger.debug("Token request failed (attempt %d/%d): %s", attempt, _MAX_ATTEMPTS, exc)
                continue

            if response.status_code >= 500:
                logger.debug(
                    "Token endpoint returned %d (attempt %d/%d)",
                    response.status_code,
                    attempt,
                    _MAX_ATTEMPTS,
                )
                if attempt < _MAX_ATTEMPTS:
                    continue
                raise NetworkError(
                    f"Token endpoint returned HTTP {response.status_code} "
                    f"after {_MAX_ATTEMPTS} attempts"
                )
            return response

        raise NetworkError(
            f"Could not reach the token endpoint after {_MAX_ATTEMPTS} attempts: {last_error}"
        ) from last_error

    @staticmethod
    def _auth_error(response: httpx.Response) -> AuthError:
        error_code: Optional[str] = None
        description = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error_code = body.get("error")
            description = body.get("error_description") or ""

        msg = f"Token exchange rejected (HTTP {response.status_code})"
        if error_code:
            msg += f": {error_code}"
        if description:
            msg += f" - {description}"
        return AuthError(msg, error_code=error_code, status_code=response.status_code)
