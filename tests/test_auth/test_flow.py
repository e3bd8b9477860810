"""Tests for the loopback login flow.

The simulated browser performs the provider's redirect against the real
listener socket, so these tests cover the listener/coordinator handoff
end to end.
"""

from __future__ import annotations

import socket
import threading
import time
import webbrowser
from datetime import datetime, timedelta, timezone
from http.client import HTTPConnection
from typing import Optional
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from spotterm.auth.exchange import TokenExchanger
from spotterm.auth.flow import LoopbackFlow, authenticate
from spotterm.auth.pkce import derive_challenge
from spotterm.auth.session import Session
from spotterm.exceptions import (
    AuthError,
    AuthTimeoutError,
    ConfigError,
    NetworkError,
    SecurityError,
)
from spotterm.models import AuthSettings
from spotterm.output import OutputManager, set_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _simulate_callback(port: int, path: str) -> None:
    """Send a request to the local callback server."""
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    conn.request("GET", path)
    conn.getresponse().read()
    conn.close()


def _can_bind(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True


class _FakeBrowser:
    """Stands in for webbrowser.open by performing the provider redirect.

    Args:
        state: State to send back; ``None`` echoes the generated nonce.
        paths: Extra requests sent before the redirect.
        redirect: Whether to send the code/state redirect at all.
        result: Value returned to the flow (``False`` means "no browser").
        idle: Open a connection that never sends a request, as a browser
            preconnect does, before anything else.
    """

    def __init__(
        self,
        state: Optional[str] = None,
        paths: tuple[str, ...] = (),
        redirect: bool = True,
        result: bool = True,
        idle: bool = False,
    ) -> None:
        self._state = state
        self._paths = paths
        self._redirect = redirect
        self._result = result
        self._idle = idle
        self.sockets: list[socket.socket] = []
        self.urls: list[str] = []

    def params(self, index: int = -1) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlparse(self.urls[index]).query).items()}

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        params = self.params()
        redirect = urlparse(params["redirect_uri"])
        port = redirect.port
        assert port is not None
        if self._idle:
            self.sockets.append(socket.create_connection(("127.0.0.1", port), timeout=5))
        for path in self._paths:
            _simulate_callback(port, path)
        if self._redirect:
            state = self._state if self._state is not None else params["state"]
            _simulate_callback(port, f"{redirect.path}?code=AUTH123&state={state}")
        return self._result


def _mock_exchanger(session: Session) -> MagicMock:
    exchanger = MagicMock(spec=TokenExchanger)
    exchanger.exchange.return_value = session
    return exchanger


@pytest.fixture(autouse=True)
def _clean_output():
    set_output(OutputManager(no_color=True, quiet=True))


# ---------------------------------------------------------------------------
# Happy path and state validation
# ---------------------------------------------------------------------------


class TestStateValidation:
    def test_matching_state_is_exchanged(self, settings: AuthSettings, session: Session) -> None:
        exchanger = _mock_exchanger(session)
        browser = _FakeBrowser()

        result = LoopbackFlow(settings, exchanger=exchanger, open_browser=browser).run()

        assert result is session
        exchanger.exchange.assert_called_once()
        kwargs = exchanger.exchange.call_args.kwargs
        assert kwargs["code"] == "AUTH123"
        assert kwargs["redirect_uri"] == settings.redirect_uri
        assert kwargs["client_id"] == "abc"
        # The verifier handed to the exchanger is the one behind the URL's challenge.
        assert derive_challenge(kwargs["verifier"]) == browser.params()["code_challenge"]
        assert kwargs["verifier"] not in browser.urls[0]

    def test_mismatched_state_never_exchanges(self, settings: AuthSettings, session: Session) -> None:
        exchanger = _mock_exchanger(session)
        browser = _FakeBrowser(state="forged")

        with pytest.raises(SecurityError):
            LoopbackFlow(settings, exchanger=exchanger, open_browser=browser).run()

        assert exchanger.exchange.call_count == 0

    def test_state_prefix_is_a_mismatch(self, settings: AuthSettings, session: Session) -> None:
        exchanger = _mock_exchanger(session)

        class _TruncatingBrowser(_FakeBrowser):
            def __call__(self, url: str) -> bool:
                self._state = parse_qs(urlparse(url).query)["state"][0][:-1]
                return super().__call__(url)

        with pytest.raises(SecurityError):
            LoopbackFlow(settings, exchanger=exchanger, open_browser=_TruncatingBrowser()).run()
        exchanger.exchange.assert_not_called()

    def test_fresh_state_and_verifier_per_attempt(self, settings: AuthSettings, session: Session) -> None:
        exchanger = _mock_exchanger(session)
        browser = _FakeBrowser()
        flow = LoopbackFlow(settings, exchanger=exchanger, open_browser=browser)

        flow.run()
        flow.run()

        assert browser.params(0)["state"] != browser.params(1)["state"]
        assert browser.params(0)["code_challenge"] != browser.params(1)["code_challenge"]
        verifiers = {c.kwargs["verifier"] for c in exchanger.exchange.call_args_list}
        assert len(verifiers) == 2

    def test_url_uses_settings(self, settings: AuthSettings, session: Session) -> None:
        browser = _FakeBrowser()
        LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=browser).run()

        assert browser.urls[0].startswith("https://accounts.example.com/authorize?")
        params = browser.params()
        assert params["scope"] == "user-read-email"
        assert params["client_id"] == "abc"
        assert params["code_challenge_method"] == "S256"


# ---------------------------------------------------------------------------
# Timeout and teardown
# ---------------------------------------------------------------------------


class TestTimeoutAndTeardown:
    def test_timeout_releases_port(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        settings = settings.model_copy(update={"timeout": 0.3})
        exchanger = _mock_exchanger(session)

        start = time.monotonic()
        with pytest.raises(AuthTimeoutError):
            LoopbackFlow(settings, exchanger=exchanger, open_browser=_FakeBrowser(redirect=False)).run()

        assert time.monotonic() - start < 5
        assert _can_bind(free_port)
        exchanger.exchange.assert_not_called()

    def test_idle_connection_does_not_block_redirect(self, settings: AuthSettings, session: Session) -> None:
        browser = _FakeBrowser(idle=True)
        try:
            result = LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=browser).run()
        finally:
            for sock in browser.sockets:
                sock.close()
        assert result is session

    def test_idle_connection_does_not_stall_timeout(
        self, settings: AuthSettings, session: Session, free_port: int
    ) -> None:
        settings = settings.model_copy(update={"timeout": 0.5})
        browser = _FakeBrowser(idle=True, redirect=False)
        errors: list[Exception] = []

        def run() -> None:
            try:
                LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=browser).run()
            except Exception as exc:
                errors.append(exc)

        worker = threading.Thread(target=run, daemon=True)
        try:
            worker.start()
            worker.join(timeout=3)
            assert not worker.is_alive()
            assert _can_bind(free_port)
        finally:
            for sock in browser.sockets:
                sock.close()
        assert len(errors) == 1
        assert isinstance(errors[0], AuthTimeoutError)

    def test_malformed_requests_do_not_end_the_wait(self, settings: AuthSettings, session: Session) -> None:
        settings = settings.model_copy(update={"timeout": 0.5})
        browser = _FakeBrowser(
            paths=("/favicon.ico", "/cb?code=only", "/cb?state=only", "/cb?error=access_denied"),
            redirect=False,
        )
        with pytest.raises(AuthTimeoutError):
            LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=browser).run()

    def test_malformed_then_valid(self, settings: AuthSettings, session: Session) -> None:
        browser = _FakeBrowser(paths=("/favicon.ico",))
        result = LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=browser).run()
        assert result is session

    def test_port_released_after_success(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=_FakeBrowser()).run()
        assert _can_bind(free_port)

    def test_port_released_after_security_error(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        with pytest.raises(SecurityError):
            LoopbackFlow(
                settings, exchanger=_mock_exchanger(session), open_browser=_FakeBrowser(state="x")
            ).run()
        assert _can_bind(free_port)

    def test_port_released_when_exchange_fails(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        exchanger = _mock_exchanger(session)
        exchanger.exchange.side_effect = AuthError("invalid_grant", error_code="invalid_grant")

        with pytest.raises(AuthError):
            LoopbackFlow(settings, exchanger=exchanger, open_browser=_FakeBrowser()).run()
        assert _can_bind(free_port)

    def test_port_released_when_browser_raises(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        def _explode(url: str) -> bool:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=_explode).run()
        assert _can_bind(free_port)

    def test_port_in_use(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        browser = MagicMock()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", free_port))
            s.listen(1)
            with pytest.raises(NetworkError):
                LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=browser).run()
        browser.assert_not_called()


# ---------------------------------------------------------------------------
# Configuration rejection
# ---------------------------------------------------------------------------


class TestConfigRejection:
    @pytest.mark.parametrize(
        "update",
        [
            {"redirect_uri": "http://127.0.0.1/cb"},
            {"redirect_uri": ""},
            {"client_id": ""},
            {"scopes": ["user-read-email", "user-read-email"]},
        ],
    )
    def test_rejected_before_any_socket(
        self,
        settings: AuthSettings,
        session: Session,
        monkeypatch: pytest.MonkeyPatch,
        update: dict,
    ) -> None:
        start = MagicMock()
        monkeypatch.setattr("spotterm.auth.flow.CallbackListener.start", start)
        browser = MagicMock()
        exchanger = _mock_exchanger(session)

        with pytest.raises(ConfigError):
            LoopbackFlow(
                settings.model_copy(update=update), exchanger=exchanger, open_browser=browser
            ).run()

        start.assert_not_called()
        browser.assert_not_called()
        exchanger.exchange.assert_not_called()


# ---------------------------------------------------------------------------
# Browser launch
# ---------------------------------------------------------------------------


class TestBrowserLaunch:
    def _redirect_later(self, port: int, browser_urls: list[str]) -> threading.Thread:
        def _send() -> None:
            state = parse_qs(urlparse(browser_urls[0]).query)["state"][0]
            _simulate_callback(port, f"/cb?code=AUTH123&state={state}")

        return threading.Thread(target=_send, daemon=True)

    def test_no_browser_prints_url_and_keeps_waiting(
        self,
        settings: AuthSettings,
        session: Session,
        free_port: int,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        urls: list[str] = []

        def _no_browser(url: str) -> bool:
            urls.append(url)
            self._redirect_later(free_port, urls).start()
            return False

        result = LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=_no_browser).run()

        assert result is session
        err = capsys.readouterr().err
        assert "Could not open a browser" in err
        assert urls[0] in err

    def test_browser_error_is_not_fatal(
        self,
        settings: AuthSettings,
        session: Session,
        free_port: int,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        urls: list[str] = []

        def _broken(url: str) -> bool:
            urls.append(url)
            self._redirect_later(free_port, urls).start()
            raise webbrowser.Error("no runnable browser")

        result = LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=_broken).run()

        assert result is session
        assert urls[0] in capsys.readouterr().err

    def test_listener_is_up_before_browser(self, settings: AuthSettings, session: Session, free_port: int) -> None:
        seen: list[bool] = []

        def _check(url: str) -> bool:
            seen.append(_can_bind(free_port))
            _FakeBrowser()(url)
            return True

        LoopbackFlow(settings, exchanger=_mock_exchanger(session), open_browser=_check).run()
        assert seen == [False]


# ---------------------------------------------------------------------------
# End to end against a stubbed token endpoint
# ---------------------------------------------------------------------------


class TestEndToEnd:
    def test_scenario_tok1(self) -> None:
        settings = AuthSettings(
            client_id="abc",
            redirect_uri="http://127.0.0.1:8888/cb",
            scopes=["user-read-email"],
            timeout=5,
        )
        token_requests: list[httpx.Request] = []

        def _token_endpoint(request: httpx.Request) -> httpx.Response:
            token_requests.append(request)
            return httpx.Response(
                200, json={"access_token": "tok1", "token_type": "Bearer", "expires_in": 3600}
            )

        exchanger = TokenExchanger(
            token_url=settings.token_url,
            client=httpx.Client(transport=httpx.MockTransport(_token_endpoint)),
        )

        session = LoopbackFlow(settings, exchanger=exchanger, open_browser=_FakeBrowser()).run()

        assert session.access_token == "tok1"
        expected = datetime.now(timezone.utc) + timedelta(seconds=3600)
        assert abs((session.expires_at - expected).total_seconds()) < 5
        form = parse_qs(token_requests[0].content.decode())
        assert form["code"] == ["AUTH123"]
        assert form["redirect_uri"] == ["http://127.0.0.1:8888/cb"]

    def test_authenticate_uses_system_browser(
        self, settings: AuthSettings, session: Session, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        exchanger = _mock_exchanger(session)
        monkeypatch.setattr("spotterm.auth.flow.webbrowser.open", _FakeBrowser())
        monkeypatch.setattr("spotterm.auth.flow.TokenExchanger", lambda **kwargs: exchanger)

        assert authenticate(settings) is session
