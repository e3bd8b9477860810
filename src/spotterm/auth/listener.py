"""Single-shot loopback HTTP listener for the OAuth2 redirect.

:class:`CallbackListener` binds the redirect URI's host and port, accepts
connections from a daemon thread, handles each on its own thread and hands
the first request carrying both ``code`` and ``state`` to the caller
through a one-shot queue. Everything else (favicon fetches, prefetches, a
provider ``error`` redirect, repeat visits after delivery) gets a neutral
page and is otherwise ignored. Idle connections time out on their own.

Example::

    listener, receiver = CallbackListener.start("127.0.0.1", 8888)
    with listener:
        result = receiver.get(timeout=120)
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from spotterm.exceptions import NetworkError, ProtocolError

logger = logging.getLogger(__name__)

SUCCESS_PAGE = (
    "<!DOCTYPE html><html><head><title>spotterm</title></head><body>"
    "<h1>You may close this page</h1>"
    "<p>Return to your terminal to continue.</p>"
    "<script>window.close()</script>"
    "</body></html>"
)

NEUTRAL_PAGE = (
    "<!DOCTYPE html><html><head><title>spotterm</title></head><body>"
    "<p>Nothing to do here.</p>"
    "</body></html>"
)

_POLL_INTERVAL = 0.1
# Idle connections are dropped after this many seconds.
_CONNECTION_TIMEOUT = 5.0


@dataclass(frozen=True)
class CallbackResult:
    """The ``code`` and ``state`` captured from the provider's redirect."""

    code: str = field(repr=False)
    state: str


def _first(params: dict[str, list[str]], name: str) -> Optional[str]:
    values = params.get(name)
    if not values or not values[0]:
        return None
    return values[0]


def parse_callback_query(query: str) -> CallbackResult:
    """Extract ``code`` and ``state`` from a redirect's query string.

    Raises:
        ProtocolError: If the provider reported an ``error`` (its value is
            kept in ``error_code``), or ``code`` or ``state`` is missing or
            empty.
    """
    params = parse_qs(query)
    if "error" in params:
        error = _first(params, "error") or "unknown"
        description = _first(params, "error_description")
        message = f"Authorization server returned error '{error}'"
        if description:
            message += f": {description}"
        raise ProtocolError(message, error_code=error)

    code = _first(params, "code")
    state = _first(params, "state")
    if code is None or state is None:
        raise ProtocolError("Redirect is missing code or state")
    return CallbackResult(code=code, state=state)


class _CallbackServer(ThreadingHTTPServer):
    """Threaded server owning the one-shot channel and the delivered flag.

    Each connection gets its own daemon thread, so a browser preconnect
    that never sends a request cannot block the real redirect, and
    :meth:`server_close` does not wait for such connections.
    """

    daemon_threads = True
    block_on_close = False

    def __init__(self, address: tuple[str, int], channel: queue.Queue[CallbackResult]) -> None:
        self.channel = channel
        self.delivered = threading.Event()
        self._deliver_lock = threading.Lock()
        super().__init__(address, _CallbackHandler)

    def deliver(self, result: CallbackResult) -> bool:
        """Push *result* onto the channel unless something was already delivered."""
        with self._deliver_lock:
            if self.delivered.is_set():
                return False
            self.channel.put_nowait(result)
            self.delivered.set()
            return True

    def handle_error(self, request: Any, client_address: Any) -> None:
        # A browser closing the tab mid-response must not print a traceback.
        logger.debug("Error handling callback request from %s", client_address, exc_info=True)


class _CallbackServer6(_CallbackServer):
    address_family = socket.AF_INET6


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer
    timeout = _CONNECTION_TIMEOUT

    def do_GET(self) -> None:
        url = urlparse(self.path)
        try:
            result = parse_callback_query(url.query)
        except ProtocolError as exc:
            if exc.error_code:
                logger.warning("%s", exc)
            else:
                logger.debug("Ignoring callback request to %s: %s", url.path, exc)
            self._respond(NEUTRAL_PAGE)
            return

        if self.server.deliver(result):
            logger.debug("Authorization redirect received")
            self._respond(SUCCESS_PAGE)
        else:
            logger.debug("Ignoring callback request after delivery")
            self._respond(NEUTRAL_PAGE)

    def _respond(self, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - " + format, self.address_string(), *args)


class CallbackListener:
    """Handle on a running loopback listener.

    Create one with :meth:`start`. :meth:`stop` shuts the serve loop down
    and releases the port; it is idempotent and also runs on leaving a
    ``with`` block.
    """

    def __init__(self, server: _CallbackServer) -> None:
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": _POLL_INTERVAL},
            name="spotterm-callback-listener",
            daemon=True,
        )
        self._stop_lock = threading.Lock()
        self._stopped = False

    @classmethod
    def start(cls, host: str, port: int) -> tuple[CallbackListener, queue.Queue[CallbackResult]]:
        """Bind ``host:port`` and start serving in a background thread.

        Returns:
            The listener handle and the receiving end of the one-shot
            channel.

        Raises:
            NetworkError: If the address cannot be bound (port in use,
                unknown host).
        """
        channel: queue.Queue[CallbackResult] = queue.Queue(maxsize=1)
        server_cls = _CallbackServer6 if ":" in host else _CallbackServer
        try:
            server = server_cls((host, port), channel)
        except OSError as exc:
            raise NetworkError(
                f"Could not listen for the login redirect on {host}:{port}: "
                f"{exc.strerror or exc}"
            ) from exc

        listener = cls(server)
        listener._thread.start()
        logger.debug("Listening for the login redirect on %s:%d", host, port)
        return listener, channel

    @property
    def address(self) -> tuple[str, int]:
        """The bound ``(host, port)``."""
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    @property
    def delivered(self) -> bool:
        """Whether a redirect has been handed to the channel."""
        return self._server.delivered.is_set()

    @property
    def is_running(self) -> bool:
        return not self._stopped

    def stop(self) -> None:
        """Stop serving and close the socket. Safe to call more than once."""
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
        self._server.shutdown()
        self._server.server_close()
        self._thread.join()
        logger.debug("Callback listener stopped")

    def __enter__(self) -> CallbackListener:
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
