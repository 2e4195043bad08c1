"""The login flow: from the sign-in page to a session token.

A :class:`LoginFlow` walks the Chime sign-in service one response at a
time::

    START
      -> AWAITING_SIGN_IN_PAGE       GET the sign-in entry URL
      -> AWAITING_PROVIDER_ROUTING   submit the e-mail search form
      -> AWAITING_PROVIDER_HANDLER   GET the provider path, run its handler
      -> SUCCEEDED                   token found in the final response

Any failure moves the flow to ``FAILED``.  Every failure takes the same
path: a diagnostic is logged, the owning connection is told to fail, and
the flow releases its HTTP session and provider state exactly once.  There
are no retries; a failed login has to be started again from the top.

The flow has its own :class:`httpx.AsyncClient` and therefore its own
cookie jar.  Nothing it collects on the way outlives the flow except the
session token, which is committed to the connection's
:class:`~chimelink.store.SessionTokenStore`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx

from chimelink.auth.base import ProviderState
from chimelink.auth.manager import ProviderRegistry
from chimelink.client.http import create_http_client
from chimelink.document import FormInfo, extract_form, extract_json_object, extract_regex_group
from chimelink.exceptions import (
    AuthCanceledError,
    BadResponseError,
    ChimeError,
    RequestFailedError,
)

if TYPE_CHECKING:
    from chimelink.connection import Connection

logger = logging.getLogger(__name__)

SEARCH_FORM = "//form[@id='picker_email']"
TOKEN_PATTERN = r"""chime://sso_sessions\?Token=([^'"]+)['"]"""


class LoginState(str, enum.Enum):
    START = "start"
    AWAITING_SIGN_IN_PAGE = "awaiting_sign_in_page"
    AWAITING_PROVIDER_ROUTING = "awaiting_provider_routing"
    AWAITING_PROVIDER_HANDLER = "awaiting_provider_handler"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class LoginFlow:
    """One attempt at obtaining a session token for a connection.

    Args:
        connection: The owning connection.  The flow reads its account
            (email, server, request settings, debug flag) and host, commits
            the token to its store, and reports failures through
            :meth:`~chimelink.connection.Connection.fail`.
        registry: Provider handlers available to this flow.
        transport: Optional transport for the flow's HTTP client.

    Example::

        flow = LoginFlow(connection, create_default_registry())
        token = await flow.run()
    """

    def __init__(
        self,
        connection: Connection,
        registry: ProviderRegistry,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        account = connection.account
        self.connection = connection
        self.registry = registry
        self.email: str = account.email
        self.entry_url: str = account.server
        self.state = LoginState.START
        self.provider: Optional[str] = None
        self.provider_state: Optional[ProviderState] = None
        self.error: Optional[ChimeError] = None
        self.client = create_http_client(account.request, debug=account.debug, transport=transport)
        self._released = False
        self._task: Optional[asyncio.Task] = None

    @property
    def released(self) -> bool:
        return self._released

    # ------------------------------------------------------------------ #
    # Driving the flow
    # ------------------------------------------------------------------ #

    async def run(self) -> str:
        """Run the flow to completion.

        Returns:
            The session token, already committed to the connection's store.

        Raises:
            ChimeError: The error that ended the flow.  The connection has
                already been told about it.
        """
        if self._released:
            raise self.error or AuthCanceledError("Authentication canceled by the user")
        self._task = asyncio.current_task()
        try:
            response = await self._fetch_sign_in_page()
            response = await self._search_provider(response)
            response = await self._run_provider(response)
            token = self._extract_token(response)
            self.connection.store.set_token(token)
        except ChimeError as exc:
            self._fail(exc)
            await self.release()
            raise
        except asyncio.CancelledError:
            await self.release()
            if self.error is not None:
                raise self.error from None
            raise
        except Exception as exc:
            logger.exception("Login aborted in state %s", self.state.value)
            self._fail(ChimeError(f"Login failed unexpectedly: {exc}"))
            await self.release()
            raise
        finally:
            self._task = None

        self.state = LoginState.SUCCEEDED
        logger.info("Login succeeded for %s", self.email)
        await self.release()
        return token

    async def _fetch_sign_in_page(self) -> httpx.Response:
        self.state = LoginState.AWAITING_SIGN_IN_PAGE
        logger.debug("Fetching sign-in page %s", self.entry_url)
        return await self.request("GET", self.entry_url)

    async def _search_provider(self, response: httpx.Response) -> httpx.Response:
        form = extract_form(response, SEARCH_FORM)
        if form is None or not form.email_field:
            logger.error("Could not find provider search form on %s", response.url)
            raise BadResponseError("Could not find provider search form")

        self.state = LoginState.AWAITING_PROVIDER_ROUTING
        return await self.submit_form(
            form, {form.email_field: self.email}, allowed_status=(400,)
        )

    async def _run_provider(self, response: httpx.Response) -> httpx.Response:
        if response.status_code == 400:
            logger.error("Provider search rejected e-mail address %s", self.email)
            raise BadResponseError(f"Invalid e-mail address <{self.email}>")

        routing = extract_json_object(response)
        if routing is None:
            raise BadResponseError("Error parsing provider JSON")

        provider = routing.get("provider")
        if provider is None or provider not in self.registry:
            logger.error("Unrecognized provider %s", provider)
            raise BadResponseError("Unknown login provider")
        handler = self.registry.get(provider)

        path = routing.get("path")
        if not path:
            logger.error("Server did not provide a path")
            raise BadResponseError("Incomplete provider response")

        self.provider = provider
        self.provider_state = handler.create_state()
        self.state = LoginState.AWAITING_PROVIDER_HANDLER

        url = response.url.join(path)
        logger.debug("Dispatching to %s provider at %s", provider, url)
        provider_page = await self.request("GET", str(url))
        return await handler.authenticate(self, provider_page)

    def _extract_token(self, response: httpx.Response) -> str:
        token = extract_regex_group(response.text, TOKEN_PATTERN)
        if token is None:
            logger.error("No session token carrier in final response from %s", response.url)
            raise BadResponseError("Unable to retrieve session token")
        return token

    # ------------------------------------------------------------------ #
    # Helpers shared with provider handlers
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        url: str,
        allowed_status: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a flow-scoped request and check its status.

        Args:
            method: HTTP method.
            url: Absolute URL.
            allowed_status: Error statuses the caller handles itself.
            **kwargs: Forwarded to :meth:`httpx.AsyncClient.request`.

        Raises:
            RequestFailedError: On transport errors and on statuses outside
                2xx/3xx that are not in *allowed_status*.
        """
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise RequestFailedError("A request failed during authentication") from exc

        if not 200 <= response.status_code < 400 and response.status_code not in allowed_status:
            logger.error(
                "%s %s returned HTTP %d %s",
                method,
                url,
                response.status_code,
                response.reason_phrase,
            )
            raise RequestFailedError(
                "A request failed during authentication", status_code=response.status_code
            )
        return response

    async def submit_form(
        self,
        form: FormInfo,
        values: dict[str, str],
        allowed_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Submit *form* with its hidden fields plus *values*.

        ``GET`` forms send the fields as query parameters, everything else
        as an ``application/x-www-form-urlencoded`` body.
        """
        fields = {**form.fields, **values}
        if form.method == "GET":
            return await self.request(
                "GET", form.action, allowed_status=allowed_status, params=fields
            )
        return await self.request(
            form.method, form.action, allowed_status=allowed_status, data=fields
        )

    async def request_password(self) -> str:
        """Ask the connection's host for the provider password.

        Raises:
            AuthCanceledError: If the host declines to supply one.
        """
        password = await self.connection.host.request_password(self.email, self.provider or "")
        if password is None:
            raise AuthCanceledError("Authentication canceled by the user")
        return password

    # ------------------------------------------------------------------ #
    # Termination
    # ------------------------------------------------------------------ #

    def cancel(self) -> None:
        """Abort the flow on behalf of the user."""
        if self._released or self.state in (LoginState.SUCCEEDED, LoginState.FAILED):
            return
        self._fail(AuthCanceledError("Authentication canceled by the user"))
        task = self._task
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _fail(self, error: ChimeError) -> None:
        if self.state is LoginState.FAILED:
            return
        logger.error("Login failed in state %s: %s", self.state.value, error.message)
        self.state = LoginState.FAILED
        self.error = error
        self.connection.fail(error)
        self._release_state()

    def _release_state(self) -> None:
        if self._released:
            return
        self._released = True
        if self.provider_state is not None:
            self.provider_state.release()

    async def release(self) -> None:
        """Drop provider state and close the flow's HTTP session.  Idempotent."""
        self._release_state()
        if not self.client.is_closed:
            await self.client.aclose()
