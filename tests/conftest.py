"""Shared test fixtures for spotterm.

Provides fixtures for isolated config environments, output state, free
loopback ports, ready-made settings and sessions, and a CLI runner. These
fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from spotterm.auth.session import Session
from spotterm.models import AuthSettings
from spotterm.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams and the
    test finishes, the cached references go stale. Resetting forces a
    fresh manager on next use. The ``spotterm`` logger's handlers hold
    the same stale streams, so they are dropped too.
    """
    yield
    reset_output()
    logger = logging.getLogger("spotterm")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME into tmp_path, clears every
    variable that feeds settings resolution, and changes the working
    directory to tmp_path so no stray ``.env`` is picked up.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "SPOTIFY_CLIENT_ID",
        "SPOTIFY_REDIRECT_URI",
        "SPOTIFY_SCOPES",
        "SPOTTERM_AUTH_TIMEOUT",
        "SPOTTERM_NO_DOTENV",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Network fixtures
# ---------------------------------------------------------------------------


def find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    return find_free_port()


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(free_port: int) -> AuthSettings:
    """Settings pointing the redirect at a free loopback port."""
    return AuthSettings(
        client_id="abc",
        redirect_uri=f"http://127.0.0.1:{free_port}/cb",
        scopes=["user-read-email"],
        timeout=5,
        authorize_url="https://accounts.example.com/authorize",
        token_url="https://accounts.example.com/api/token",
        api_base_url="https://api.example.com/v1",
    )


@pytest.fixture
def session() -> Session:
    """A session that stays valid for an hour."""
    return Session(
        access_token="tok1",
        token_type="Bearer",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scope="user-read-email",
    )


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
