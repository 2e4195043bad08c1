"""Tests for chimelink.auth.login -- the login flow state machine."""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio

from chimelink.auth.login import LoginFlow, LoginState
from chimelink.connection import Connection, ConnectionState
from chimelink.exceptions import (
    AuthCanceledError,
    AuthFailedError,
    BadResponseError,
    ConfigError,
    RequestFailedError,
)
from chimelink.providers.warpdrive import WarpDriveState

from conftest import AMAZON_PAGE, EMAIL, SERVER, SIGN_IN_PAGE, FakeChime, RecordingHost

SEARCH_URL = "https://signin.example.com/search"
AMAZON_URL = "https://signin.example.com/amz"
AMAZON_SIGNIN_URL = "https://signin.example.com/amz/signin"

AMAZON_REJECTED = """
<html><body>
  <div id="auth-error-message-box">
    <ul><li><span class="a-list-item">
      Your password
      is incorrect
    </span></li></ul>
  </div>
  <form name="signIn" method="post" action="https://signin.example.com/amz/signin">
    <input type="email" name="email">
    <input type="password" name="password">
  </form>
</body></html>
"""


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest_asyncio.fixture
async def connection(account, host: RecordingHost, fake_chime: FakeChime):
    conn = Connection(account, host, transport=fake_chime.transport)
    yield conn
    await conn.close()


def _flow(connection: Connection, fake_chime: FakeChime) -> LoginFlow:
    return LoginFlow(connection, connection.registry, transport=fake_chime.transport)


class TestSuccessfulLogin:
    @pytest.mark.asyncio
    async def test_amazon_login_yields_token(
        self, connection: Connection, fake_chime: FakeChime, host: RecordingHost
    ) -> None:
        fake_chime.add_login()
        flow = _flow(connection, fake_chime)

        token = await flow.run()

        assert token == "ABC123"
        assert connection.store.get_token() == "ABC123"
        assert flow.state is LoginState.SUCCEEDED
        assert flow.provider == "amazon"
        assert flow.released is True
        assert flow.client.is_closed
        assert host.password_requests == [(EMAIL, "amazon")]
        assert host.errors == []

    @pytest.mark.asyncio
    async def test_forms_carry_hidden_fields(
        self, connection: Connection, fake_chime: FakeChime
    ) -> None:
        fake_chime.add_login()
        await _flow(connection, fake_chime).run()

        search = fake_chime.requests_to("POST", SEARCH_URL)[0]
        assert _form(search) == {"csrf": "c0ffee", "email": EMAIL}

        sign_in = fake_chime.requests_to("POST", AMAZON_SIGNIN_URL)[0]
        assert _form(sign_in) == {"appActionToken": "a1", "email": EMAIL, "password": "hunter2"}

    @pytest.mark.asyncio
    async def test_cookies_shared_across_flow(
        self, connection: Connection, fake_chime: FakeChime
    ) -> None:
        fake_chime.add_login()
        fake_chime.route(
            "GET", SERVER, html=SIGN_IN_PAGE, headers={"set-cookie": "flow=1; Path=/"}
        )
        await _flow(connection, fake_chime).run()

        sign_in = fake_chime.requests_to("POST", AMAZON_SIGNIN_URL)[0]
        assert "flow=1" in sign_in.headers.get("cookie", "")

    @pytest.mark.asyncio
    async def test_get_search_form_uses_query(
        self, connection: Connection, fake_chime: FakeChime
    ) -> None:
        fake_chime.add_login()
        fake_chime.route(
            "GET", SERVER, html=SIGN_IN_PAGE.replace('method="post"', 'method="get"')
        )
        fake_chime.route("GET", SEARCH_URL, json={"provider": "amazon", "path": "/amz"})

        assert await _flow(connection, fake_chime).run() == "ABC123"
        search = fake_chime.requests_to("GET", SEARCH_URL)[0]
        assert search.url.params["email"] == EMAIL


class TestLoginFailures:
    async def _expect_failure(
        self,
        connection: Connection,
        fake_chime: FakeChime,
        host: RecordingHost,
        error_type: type,
        message: str,
    ) -> LoginFlow:
        flow = _flow(connection, fake_chime)
        with pytest.raises(error_type, match=message) as exc_info:
            await flow.run()

        assert flow.state is LoginState.FAILED
        assert flow.error is exc_info.value
        assert flow.released is True
        assert flow.client.is_closed
        assert host.errors == [exc_info.value]
        assert connection.error is exc_info.value
        assert connection.state is ConnectionState.FAILED
        assert connection.store.get_token() is None
        return flow

    @pytest.mark.asyncio
    async def test_sign_in_page_error_status(self, connection, fake_chime, host) -> None:
        fake_chime.route("GET", SERVER, status=503)
        await self._expect_failure(
            connection, fake_chime, host, RequestFailedError, "A request failed during authentication"
        )

    @pytest.mark.asyncio
    async def test_sign_in_page_unreachable(self, connection, fake_chime, host) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fake_chime.route("GET", SERVER, boom)
        await self._expect_failure(
            connection, fake_chime, host, RequestFailedError, "A request failed during authentication"
        )

    @pytest.mark.asyncio
    async def test_missing_search_form(self, connection, fake_chime, host) -> None:
        fake_chime.route("GET", SERVER, html="<html><body>maintenance</body></html>")
        flow = await self._expect_failure(
            connection, fake_chime, host, BadResponseError, "Could not find provider search form"
        )
        assert fake_chime.requests_to("POST", SEARCH_URL) == []
        assert flow.provider is None

    @pytest.mark.asyncio
    async def test_invalid_email(self, connection, fake_chime, host) -> None:
        fake_chime.add_login()
        fake_chime.route("POST", SEARCH_URL, status=400, json={"error": "bad"})
        await self._expect_failure(
            connection, fake_chime, host, BadResponseError, f"Invalid e-mail address <{EMAIL}>"
        )

    @pytest.mark.asyncio
    async def test_search_server_error(self, connection, fake_chime, host) -> None:
        fake_chime.add_login()
        fake_chime.route("POST", SEARCH_URL, status=500)
        await self._expect_failure(
            connection, fake_chime, host, RequestFailedError, "A request failed during authentication"
        )

    @pytest.mark.asyncio
    async def test_routing_not_json(self, connection, fake_chime, host) -> None:
        fake_chime.add_login()
        fake_chime.route("POST", SEARCH_URL, html="<p>hello</p>")
        await self._expect_failure(
            connection, fake_chime, host, BadResponseError, "Error parsing provider JSON"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("routing", [{"provider": "okta", "path": "/x"}, {"path": "/x"}])
    async def test_unknown_provider(self, connection, fake_chime, host, routing) -> None:
        fake_chime.add_login()
        fake_chime.route("POST", SEARCH_URL, json=routing)
        await self._expect_failure(
            connection, fake_chime, host, BadResponseError, "Unknown login provider"
        )
        assert fake_chime.requests_to("GET", "https://signin.example.com/x") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("routing", [{"provider": "amazon"}, {"provider": "amazon", "path": ""}])
    async def test_missing_path(self, connection, fake_chime, host, routing) -> None:
        fake_chime.add_login()
        fake_chime.route("POST", SEARCH_URL, json=routing)
        await self._expect_failure(
            connection, fake_chime, host, BadResponseError, "Incomplete provider response"
        )

    @pytest.mark.asyncio
    async def test_no_token_in_final_page(self, connection, fake_chime, host) -> None:
        fake_chime.add_login(final_page="<html><body>Welcome!</body></html>")
        await self._expect_failure(
            connection, fake_chime, host, BadResponseError, "Unable to retrieve session token"
        )

    @pytest.mark.asyncio
    async def test_amazon_form_missing(self, connection, fake_chime, host) -> None:
        fake_chime.add_login(provider_page="<html><body>nothing</body></html>")
        await self._expect_failure(
            connection, fake_chime, host, BadResponseError, "Could not find Amazon sign-in form"
        )
        assert host.password_requests == []

    @pytest.mark.asyncio
    async def test_amazon_rejects_password(self, connection, fake_chime, host) -> None:
        fake_chime.add_login(final_page=AMAZON_REJECTED)
        await self._expect_failure(
            connection, fake_chime, host, AuthFailedError, "^Your password is incorrect$"
        )

    @pytest.mark.asyncio
    async def test_password_declined(self, connection, fake_chime, host) -> None:
        host.password = None
        fake_chime.add_login()
        await self._expect_failure(
            connection, fake_chime, host, AuthCanceledError, "Authentication canceled by the user"
        )
        assert fake_chime.requests_to("POST", AMAZON_SIGNIN_URL) == []

    @pytest.mark.asyncio
    async def test_token_observer_error_fails_flow(self, connection, fake_chime, host) -> None:
        def refuse(token: str) -> None:
            raise ConfigError("Failed to save session token: disk full")

        connection.store.subscribe(refuse)
        fake_chime.add_login()
        flow = _flow(connection, fake_chime)

        with pytest.raises(ConfigError, match="disk full") as exc_info:
            await flow.run()

        assert flow.state is LoginState.FAILED
        assert flow.released is True
        assert flow.client.is_closed
        assert host.errors == [exc_info.value]
        assert connection.state is ConnectionState.FAILED

    @pytest.mark.asyncio
    async def test_unexpected_error_still_fails_and_releases(
        self, connection, fake_chime, host
    ) -> None:
        def explode(token: str) -> None:
            raise OSError("disk full")

        connection.store.subscribe(explode)
        fake_chime.add_login()
        flow = _flow(connection, fake_chime)

        with pytest.raises(OSError, match="disk full"):
            await flow.run()

        assert flow.state is LoginState.FAILED
        assert flow.client.is_closed
        assert len(host.errors) == 1
        assert "Login failed unexpectedly: disk full" in host.errors[0].message
        assert connection.state is ConnectionState.FAILED


class TestCancelAndRelease:
    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_password(
        self, connection: Connection, fake_chime: FakeChime, host: RecordingHost
    ) -> None:
        host.gate = asyncio.Event()
        fake_chime.add_login()
        flow = _flow(connection, fake_chime)

        task = asyncio.ensure_future(flow.run())
        for _ in range(1000):
            if host.password_requests:
                break
            await asyncio.sleep(0)
        assert flow.state is LoginState.AWAITING_PROVIDER_HANDLER

        flow.cancel()

        with pytest.raises(AuthCanceledError):
            await task
        assert flow.state is LoginState.FAILED
        assert flow.released is True
        assert flow.client.is_closed
        assert len(host.errors) == 1
        assert isinstance(host.errors[0], AuthCanceledError)
        assert fake_chime.requests_to("POST", AMAZON_SIGNIN_URL) == []

    @pytest.mark.asyncio
    async def test_cancel_after_failure_is_noop(self, connection, fake_chime, host) -> None:
        fake_chime.route("GET", SERVER, status=500)
        flow = _flow(connection, fake_chime)
        with pytest.raises(RequestFailedError):
            await flow.run()

        flow.cancel()

        assert isinstance(flow.error, RequestFailedError)
        assert len(host.errors) == 1

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, connection, fake_chime) -> None:
        flow = _flow(connection, fake_chime)
        await flow.release()
        await flow.release()
        assert flow.released is True
        assert flow.client.is_closed

    @pytest.mark.asyncio
    async def test_released_flow_cannot_run(self, connection, fake_chime) -> None:
        fake_chime.add_login()
        flow = _flow(connection, fake_chime)
        await flow.release()
        with pytest.raises(AuthCanceledError):
            await flow.run()
        assert fake_chime.requests == []

    @pytest.mark.asyncio
    async def test_provider_state_released_once(self, connection, fake_chime, host) -> None:
        fake_chime.add_login()
        fake_chime.route("POST", SEARCH_URL, json={"provider": "wd", "path": "/wd"})
        fake_chime.route("GET", "https://signin.example.com/wd", html="<html><body>down</body></html>")
        flow = _flow(connection, fake_chime)

        with pytest.raises(BadResponseError, match="Could not find WarpDrive login form"):
            await flow.run()

        assert flow.provider == "wd"
        assert flow.provider_state is not None
        assert isinstance(flow.provider_state, WarpDriveState)
        assert flow.provider_state.released is True
        assert flow.provider_state.redirect_chain == []


class TestRequestHelper:
    @pytest.mark.asyncio
    async def test_allowed_status_passes_through(self, connection, fake_chime) -> None:
        fake_chime.route("GET", AMAZON_URL, status=404)
        flow = _flow(connection, fake_chime)
        response = await flow.request("GET", AMAZON_URL, allowed_status=(404,))
        assert response.status_code == 404
        await flow.release()

    @pytest.mark.asyncio
    async def test_redirects_followed(self, connection, fake_chime) -> None:
        fake_chime.route("GET", AMAZON_URL, status=302, headers={"location": "/amz/next"})
        fake_chime.route("GET", "https://signin.example.com/amz/next", html=AMAZON_PAGE)
        flow = _flow(connection, fake_chime)
        response = await flow.request("GET", AMAZON_URL)
        assert str(response.url) == "https://signin.example.com/amz/next"
        await flow.release()

    @pytest.mark.asyncio
    async def test_error_status_carries_code(self, connection, fake_chime) -> None:
        fake_chime.route("GET", AMAZON_URL, status=403)
        flow = _flow(connection, fake_chime)
        with pytest.raises(RequestFailedError) as exc_info:
            await flow.request("GET", AMAZON_URL)
        assert exc_info.value.status_code == 403
        await flow.release()
