"""The interactive loopback login flow.

:class:`LoopbackFlow` ties the pieces of :mod:`spotterm.auth` together:

1. Validate the settings and build the authorization URL. Any
   :class:`~spotterm.exceptions.ConfigError` fires here, before a socket
   exists.
2. Start the :class:`~spotterm.auth.listener.CallbackListener`, then open
   the browser.
3. Wait a bounded time for the redirect.
4. Compare the returned ``state`` with the generated nonce. Only on a
   match is the code sent to the
   :class:`~spotterm.auth.exchange.TokenExchanger`.

The listener is stopped on every path out of step 3.
"""

from __future__ import annotations

import logging
import queue
import secrets
import webbrowser
from typing import Callable, Optional

from spotterm.auth.exchange import TokenExchanger
from spotterm.auth.listener import CallbackListener, CallbackResult
from spotterm.auth.pkce import generate_pkce, generate_state
from spotterm.auth.request import build_authorization_url, parse_redirect_uri
from spotterm.auth.session import Session
from spotterm.exceptions import AuthTimeoutError, SecurityError
from spotterm.models import AuthSettings
from spotterm.output import get_output

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], bool]


class LoopbackFlow:
    """One OAuth2 Authorization Code + PKCE login over a loopback redirect.

    Args:
        settings: Resolved client id, redirect URI, scopes and timeout.
        exchanger: Token exchanger; defaults to one built from
            ``settings.token_url``.
        open_browser: Callable that opens a URL and returns whether it
            succeeded. Defaults to :func:`webbrowser.open`.

    Example::

        session = LoopbackFlow(settings).run()
        headers = {"Authorization": session.authorization_header}
    """

    def __init__(
        self,
        settings: AuthSettings,
        exchanger: Optional[TokenExchanger] = None,
        open_browser: Optional[BrowserOpener] = None,
    ) -> None:
        self._settings = settings
        self._exchanger = exchanger or TokenExchanger(
            token_url=settings.token_url, timeout=settings.request_timeout
        )
        self._open_browser = open_browser or webbrowser.open

    def run(self) -> Session:
        """Run the flow to completion.

        Returns:
            The authenticated :class:`Session`.

        Raises:
            ConfigError: Invalid client id, redirect URI or scopes.
            NetworkError: The redirect port could not be bound, or the token
                endpoint was unreachable.
            AuthTimeoutError: No redirect arrived within ``settings.timeout``.
            SecurityError: The redirect's ``state`` did not match.
            AuthError: The token endpoint rejected the code.
        """
        settings = self._settings
        host, port, _ = parse_redirect_uri(settings.redirect_uri)

        pkce = generate_pkce()
        state = generate_state()
        url = build_authorization_url(
            client_id=settings.client_id,
            scopes=settings.scopes,
            redirect_uri=settings.redirect_uri,
            challenge=pkce.code_challenge,
            state=state,
            authorize_url=settings.authorize_url,
        )

        listener, receiver = CallbackListener.start(host, port)
        try:
            self._launch_browser(url)
            result = self._wait_for_redirect(receiver)
        finally:
            listener.stop()

        if not secrets.compare_digest(result.state.encode("utf-8"), state.encode("utf-8")):
            raise SecurityError(
                "Login redirect carried an unexpected state value; "
                "the authorization code was discarded"
            )

        return self._exchanger.exchange(
            code=result.code,
            verifier=pkce.code_verifier,
            redirect_uri=settings.redirect_uri,
            client_id=settings.client_id,
        )

    def _launch_browser(self, url: str) -> None:
        output = get_output()
        output.info("Opening your browser to log in to Spotify...")
        try:
            opened = self._open_browser(url)
        except webbrowser.Error as exc:
            logger.debug("Browser launch failed: %s", exc)
            opened = False
        if not opened:
            output.warning(f"Could not open a browser. Open this URL to log in:\n{url}")
        else:
            output.debug(f"Authorization URL: {url}")
        output.info(f"Waiting up to {self._settings.timeout:g}s for the login to complete...")

    def _wait_for_redirect(self, receiver: queue.Queue[CallbackResult]) -> CallbackResult:
        try:
            return receiver.get(timeout=self._settings.timeout)
        except queue.Empty:
            raise AuthTimeoutError(
                f"No login redirect received within {self._settings.timeout:g} seconds"
            ) from None


def authenticate(settings: AuthSettings) -> Session:
    """Run a :class:`LoopbackFlow` with default collaborators."""
    return LoopbackFlow(settings).run()
