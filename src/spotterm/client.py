"""Synchronous Spotify Web API client.

:class:`SpotifyClient` wraps :class:`httpx.Client` and layers on:

- **Bearer auth** -- the :class:`~spotterm.auth.session.Session` header is
  sent with every request; an expired session is refused before any
  traffic.
- **Retry** -- one retry on 5xx and transport errors, with a short delay.
- **Error mapping** -- 401/403 to :class:`~spotterm.exceptions.AuthError`,
  404 to :class:`~spotterm.exceptions.NotFoundError`, everything else to
  :class:`~spotterm.exceptions.ServerError`.
- **Typed results** -- responses are validated into the models in
  :mod:`spotterm.models`.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from spotterm.auth.session import Session
from spotterm.exceptions import AuthError, NetworkError, NotFoundError, ServerError
from spotterm.models import (
    Artist,
    AuthSettings,
    Page,
    Playlist,
    SimplifiedPlaylist,
    Track,
    User,
)
from spotterm.output import get_output

TIME_RANGES = ("short_term", "medium_term", "long_term")

_MAX_RETRIES = 1
_RETRY_DELAY = 1.0


class SpotifyClient:
    """Web API client bound to one authenticated session.

    Must be used as a context manager so that the underlying transport is
    opened and closed.

    Args:
        session: The session produced by the login flow.
        settings: Supplies ``api_base_url`` and ``request_timeout``.
        transport: Optional httpx transport (tests pass a
            :class:`httpx.MockTransport`).

    Example::

        with SpotifyClient(session, settings) as client:
            page = client.top_tracks(limit=10)
    """

    def __init__(
        self,
        session: Session,
        settings: AuthSettings,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> SpotifyClient:
        self._client = httpx.Client(
            base_url=self._settings.api_base_url,
            timeout=self._settings.request_timeout,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Endpoints
    # ------------------------------------------------------------------ #

    def current_user(self) -> User:
        """``GET /me``"""
        return self._parse(User, self.get("/me"))

    def user_playlists(self, limit: int = 20, offset: int = 0) -> Page[SimplifiedPlaylist]:
        """``GET /me/playlists``"""
        data = self.get("/me/playlists", params=_paging(limit, offset))
        return self._parse(Page[SimplifiedPlaylist], data)

    def top_tracks(
        self, limit: int = 20, offset: int = 0, time_range: str = "medium_term"
    ) -> Page[Track]:
        """``GET /me/top/tracks``"""
        params = _paging(limit, offset)
        params["time_range"] = _check_time_range(time_range)
        return self._parse(Page[Track], self.get("/me/top/tracks", params=params))

    def top_artists(
        self, limit: int = 20, offset: int = 0, time_range: str = "medium_term"
    ) -> Page[Artist]:
        """``GET /me/top/artists``"""
        params = _paging(limit, offset)
        params["time_range"] = _check_time_range(time_range)
        return self._parse(Page[Artist], self.get("/me/top/artists", params=params))

    def playlist(self, playlist_id: str) -> Playlist:
        """``GET /playlists/{id}`` including the first page of items."""
        if not playlist_id or "/" in playlist_id:
            raise NotFoundError(f"Invalid playlist id '{playlist_id}'")
        return self._parse(Playlist, self.get(f"/playlists/{playlist_id}"))

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Send an authenticated GET and return the decoded JSON body.

        Raises:
            AuthError: Expired session, or HTTP 401 / 403.
            NotFoundError: HTTP 404.
            ServerError: 5xx after the retry, or any other 4xx.
            NetworkError: Transport failure after the retry.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        if self._session.is_expired():
            raise AuthError("Session has expired; log in again with: spotterm login")

        headers = {
            "Authorization": self._session.authorization_header,
            "Accept": "application/json",
        }
        response = self._execute_with_retry(path, headers, params or {})
        self._map_response_error(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ServerError(f"GET {path} returned a non-JSON body") from exc

    def _execute_with_retry(
        self,
        path: str,
        headers: dict[str, str],
        params: dict[str, Any],
    ) -> httpx.Response:
        assert self._client is not None
        output = get_output()

        for attempt in range(_MAX_RETRIES + 1):
            try:
                response = self._client.get(path, headers=headers, params=params)
            except httpx.TransportError as exc:
                if attempt < _MAX_RETRIES:
                    output.debug(f"Connection error: {exc}, retrying in {_RETRY_DELAY:g}s")
                    time.sleep(_RETRY_DELAY)
                    continue
                raise NetworkError(
                    f"Connection failed after {_MAX_RETRIES + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < _MAX_RETRIES:
                output.debug(
                    f"Server error {response.status_code}, retrying in {_RETRY_DELAY:g}s"
                )
                time.sleep(_RETRY_DELAY)
                continue
            return response

        raise ServerError("Request failed after all retries")  # pragma: no cover

    def _map_response_error(self, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        # Web API errors look like {"error": {"status": 401, "message": "..."}}
        msg = ""
        try:
            detail = response.json()
            if isinstance(detail, dict):
                err = detail.get("error")
                if isinstance(err, dict):
                    msg = err.get("message") or ""
                elif isinstance(err, str):
                    msg = detail.get("error_description") or err
        except ValueError:
            msg = response.text[:200] if response.text else ""

        full_msg = f"HTTP {status}: {msg}" if msg else f"HTTP {status}"

        if status in (401, 403):
            raise AuthError(full_msg, status_code=status)
        if status == 404:
            raise NotFoundError(full_msg)
        raise ServerError(full_msg)

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise ServerError(f"Unexpected response shape: {exc}") from exc


def _paging(limit: int, offset: int) -> dict[str, Any]:
    if not 1 <= limit <= 50:
        raise ValueError(f"limit must be between 1 and 50, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")
    return {"limit": limit, "offset": offset}


def _check_time_range(time_range: str) -> str:
    if time_range not in TIME_RANGES:
        raise ValueError(
            f"time_range must be one of {', '.join(TIME_RANGES)}, got '{time_range}'"
        )
    return time_range
