"""Shared test fixtures for chimelink.

Provides config isolation, output reset, a scriptable fake of the Chime
sign-in and REST services built on :class:`httpx.MockTransport`, and a
connection host that records what the connection tells it.
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

from chimelink.connection import Connection, ConnectionHost
from chimelink.exceptions import ChimeError
from chimelink.models import AccountConfig, ServiceEndpoints
from chimelink.output import OutputFormat, OutputManager, reset_output, set_output


SERVER = "https://signin.example.com/"
EMAIL = "u@x.com"

SIGN_IN_PAGE = """
<html><body>
  <form id="picker_email" method="post" action="/search">
    <input type="hidden" name="csrf" value="c0ffee">
    <input type="email" name="email">
  </form>
</body></html>
"""

AMAZON_PAGE = """
<html><body>
  <form name="signIn" method="post" action="https://signin.example.com/amz/signin">
    <input type="hidden" name="appActionToken" value="a1">
    <input type="email" name="email">
    <input type="password" name="password">
  </form>
</body></html>
"""

TOKEN_PAGE = """
<html><body><script>window.location = "chime://sso_sessions?Token=ABC123";</script></body></html>
"""

REGISTRATION = {
    "Session": {
        "SessionToken": "REGISTERED",
        "SessionId": "session-1",
        "Profile": {
            "profile_channel": "profile!1",
            "presence_channel": "presence!1",
            "id": "profile-1",
            "display_name": "Una User",
        },
        "Device": {"DeviceId": "device-1", "Channel": "device!1"},
        "ServiceConfig": {
            "Presence": {"RestUrl": "https://presence.example.com"},
            "Push": {
                "WebsocketUrl": "wss://push.example.com/ws",
                "ReachabilityUrl": "https://push.example.com/reach",
            },
            "Profile": {"RestUrl": "https://profile.example.com"},
            "Contacts": {"RestUrl": "https://contacts.example.com"},
            "Messaging": {"RestUrl": "https://messaging.example.com"},
            "Conference": {"RestUrl": "https://conference.example.com"},
        },
    }
}

ENDPOINTS = ServiceEndpoints(
    presence="https://presence.example.com",
    profile="https://profile.example.com",
    contacts="https://contacts.example.com",
    messaging="https://messaging.example.com",
    conference="https://conference.example.com",
    reachability="https://push.example.com/reach",
    websocket="wss://push.example.com/ws",
)


Handler = Callable[[httpx.Request], Any]


class FakeChime:
    """Routes requests by method and URL (without query) to canned handlers.

    Every request is recorded in :attr:`requests`.  Unrouted requests get a
    404 so that a test fails loudly instead of hanging.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def route(
        self,
        method: str,
        url: str,
        handler: Optional[Handler] = None,
        *,
        status: int = 200,
        html: Optional[str] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                kwargs: dict[str, Any] = {"headers": headers}
                if html is not None:
                    kwargs["html"] = html
                elif json is not None:
                    kwargs["json"] = json
                return httpx.Response(status, **kwargs)

        self.routes[(method.upper(), url)] = handler

    def __call__(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        key = (request.method, str(request.url.copy_with(query=None)))
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, text=f"no route for {key}")
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def requests_to(self, method: str, url: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and str(r.url.copy_with(query=None)) == url
        ]

    def add_login(self, provider_page: str = AMAZON_PAGE, final_page: str = TOKEN_PAGE) -> None:
        """Route the full amazon login: sign-in page, search, provider, token page."""
        self.route("GET", SERVER, html=SIGN_IN_PAGE)
        self.route(
            "POST",
            "https://signin.example.com/search",
            json={"provider": "amazon", "path": "/amz"},
        )
        self.route("GET", "https://signin.example.com/amz", html=provider_page)
        self.route("POST", "https://signin.example.com/amz/signin", html=final_page)

    def add_registration(self, document: Optional[dict[str, Any]] = None) -> None:
        self.route("POST", "https://signin.example.com/sessions", json=document or REGISTRATION)


class RecordingHost(ConnectionHost):
    """Connection host that records errors and answers with a fixed password."""

    def __init__(self, password: Optional[str] = "hunter2") -> None:
        self.password = password
        self.errors: list[ChimeError] = []
        self.password_requests: list[tuple[str, str]] = []
        self.display_name: Optional[str] = None
        self.connected_count = 0
        self.gate: Optional[asyncio.Event] = None

    def report_error(self, error: ChimeError) -> None:
        self.errors.append(error)

    async def request_password(self, email: str, provider: str) -> Optional[str]:
        self.password_requests.append((email, provider))
        if self.gate is not None:
            await self.gate.wait()
        return self.password

    def set_display_name(self, name: str) -> None:
        self.display_name = name

    def connected(self, connection: Connection) -> None:
        self.connected_count += 1


def registration_document() -> dict[str, Any]:
    return copy.deepcopy(REGISTRATION)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time; after
    a CliRunner test those streams are closed.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG_CONFIG_HOME and XDG_DATA_HOME into tmp_path.

    Also forces XDG path resolution, clears CHIMELINK_* variables and
    changes the working directory to tmp_path.
    """
    monkeypatch.setattr("chimelink.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["CHIMELINK_ACCOUNT", "CHIMELINK_SERVER", "CHIMELINK_EMAIL"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def account() -> AccountConfig:
    return AccountConfig(name="work", email=EMAIL, server=SERVER, device_token="dev-token")


@pytest.fixture
def fake_chime() -> FakeChime:
    return FakeChime()


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


# ---------------------------------------------------------------------------
# Output / CLI fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
