"""Authenticated request channel with transparent session-token renewal.

:class:`RequestChannel` is how a connection talks to the Chime REST
services.  It layers on top of :class:`httpx.AsyncClient`:

- **Session injection** -- every request carries
  ``Cookie: _aws_wt_session=<token>`` once the store holds a token, plus
  ``Accept: */*`` and the client ``User-Agent``.
- **401 parking** -- a request rejected with HTTP 401 is parked as a
  :class:`PendingRequest` and its caller keeps awaiting.
- **Single renewal** -- the first 401 moves the channel from
  :attr:`ChannelState.IDLE` to :attr:`ChannelState.RENEWING` and starts one
  renewal; 401s arriving meanwhile only join the queue.
- **FIFO replay** -- after a successful renewal every parked request is
  resent, in the order it was parked, with the new cookie.  A renewal
  that fails for any reason, storing the new token included, abandons the
  queue and reports a fatal error to the connection.

There is no retry beyond the single replay: a replayed request that gets
401 again is handed to its caller as-is.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from chimelink import __version__
from chimelink.client.response import ChannelResponse, parse_json_body, wrap_response
from chimelink.exceptions import ChimeError, RenewalFailedError, RequestFailedError
from chimelink.store import SessionTokenStore

logger = logging.getLogger(__name__)

SESSION_COOKIE = "_aws_wt_session"
USER_AGENT = f"chimelink/{__version__}"


def session_cookie(token: str) -> str:
    """Return the ``Cookie`` header value that carries *token*."""
    return f"{SESSION_COOKIE}={token}"


class ChannelState(str, enum.Enum):
    """Whether a token renewal is outstanding."""

    IDLE = "idle"
    RENEWING = "renewing"


@dataclass
class PendingRequest:
    """A request parked until the session token has been renewed.

    The :attr:`future` is the continuation of the original caller: it
    resolves to the replayed response, or fails with
    :class:`~chimelink.exceptions.RenewalFailedError`.
    """

    method: str
    url: str
    headers: dict[str, str]
    params: Optional[dict[str, Any]] = None
    json_body: Any = None
    future: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class RequestChannel:
    """Issues authenticated requests and owns the pending-request queue.

    Args:
        client: The connection's HTTP client.  The channel does not close
            it; the owning connection does.
        store: Session token store consulted for every request and
            updated by renewal.
        on_fatal: Called once with the error when renewal fails.
        user_agent: ``User-Agent`` header value.

    Example::

        channel = RequestChannel(client, store, on_fatal=connection.fail)
        result = await channel.send("GET", f"{store.endpoints.contacts}/contacts")
        print(result.status_code, result.json)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: SessionTokenStore,
        on_fatal: Optional[Callable[[ChimeError], None]] = None,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._client = client
        self._store = store
        self._on_fatal = on_fatal
        self._user_agent = user_agent
        self._state = ChannelState.IDLE
        self._queue: deque[PendingRequest] = deque()
        self._renewal: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def pending(self) -> tuple[PendingRequest, ...]:
        """Snapshot of the parked requests, oldest first."""
        return tuple(self._queue)

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def build_headers(self) -> dict[str, str]:
        """Standard headers plus the session cookie when a token exists."""
        headers = {"Accept": "*/*", "User-Agent": self._user_agent}
        token = self._store.get_token()
        if token:
            headers["Cookie"] = session_cookie(token)
        return headers

    async def send(
        self,
        method: str,
        url: str,
        json_body: Any = None,
        params: Optional[dict[str, Any]] = None,
        renewable: bool = True,
    ) -> ChannelResponse:
        """Send an authenticated request and return its (possibly replayed) response.

        Args:
            method: HTTP method.
            url: Absolute request URL.
            json_body: Optional body, serialised as ``application/json``.
            params: Optional query parameters.
            renewable: When ``False`` a 401 is returned to the caller
                instead of triggering renewal.

        Returns:
            A :class:`~chimelink.client.response.ChannelResponse` for any
            status other than a renewable 401.

        Raises:
            RequestFailedError: On transport errors (timeouts, DNS, refused
                connections).
            RenewalFailedError: If the request was parked and the renewal
                that should have revived it failed.
        """
        if self._closed:
            raise RequestFailedError("Connection is closed")

        headers = self.build_headers()
        response = await self._submit(method, url, headers, params, json_body)

        if response.status_code == 401 and renewable:
            pending = PendingRequest(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json_body=json_body,
            )
            self._queue.append(pending)
            logger.debug("%s %s rejected with 401; parked (%d waiting)", method, url, len(self._queue))
            if self._state is ChannelState.IDLE:
                self._start_renewal()
            response = await pending.future

        return wrap_response(response)

    async def _submit(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: Optional[dict[str, Any]],
        json_body: Any,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"headers": headers}
        if params is not None:
            kwargs["params"] = params
        if json_body is not None:
            kwargs["json"] = json_body
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise RequestFailedError(f"Request to {url} failed: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Renewal
    # ------------------------------------------------------------------ #

    def _start_renewal(self) -> None:
        self._state = ChannelState.RENEWING
        self._renewal = asyncio.get_running_loop().create_task(self._renew())

    async def renew(self) -> None:
        """Renew the session token now, replaying anything already parked.

        If a renewal is already running this waits for it instead of
        starting another one.

        Raises:
            RenewalFailedError: If the renewal fails.
        """
        if self._closed:
            raise RequestFailedError("Connection is closed")
        if self._state is ChannelState.IDLE:
            self._start_renewal()
        assert self._renewal is not None
        if not await self._renewal:
            raise RenewalFailedError("Failed to renew session token")

    async def _renew(self) -> bool:
        try:
            new_token = await self._request_new_token()
            self._store.set_token(new_token)
            await self._replay(session_cookie(new_token))
        except RenewalFailedError as exc:
            self._fail_renewal(exc)
            return False
        except Exception as exc:
            logger.error("Session token renewal aborted: %s", exc)
            error = RenewalFailedError("Failed to renew session token")
            error.__cause__ = exc
            self._fail_renewal(error)
            return False
        finally:
            self._state = ChannelState.IDLE
        return True

    async def _replay(self, cookie: str) -> None:
        # The head stays queued while in flight so an abort still fails it.
        while self._queue:
            pending = self._queue[0]
            if not pending.future.done():
                pending.headers["Cookie"] = cookie
                try:
                    response = await self._submit(
                        pending.method, pending.url, pending.headers, pending.params, pending.json_body
                    )
                except RequestFailedError as exc:
                    if not pending.future.done():
                        pending.future.set_exception(exc)
                else:
                    if not pending.future.done():
                        pending.future.set_result(response)
            self._queue.popleft()

    def _fail_renewal(self, exc: RenewalFailedError) -> None:
        self._abandon(exc)
        if self._on_fatal is not None:
            self._on_fatal(exc)

    async def _request_new_token(self) -> str:
        token = self._store.get_token()
        endpoints = self._store.endpoints
        if not token or endpoints is None:
            logger.error("Cannot renew session token: no token or profile endpoint yet")
            raise RenewalFailedError("Failed to renew session token")

        url = f"{endpoints.profile.rstrip('/')}/tokens"
        logger.info("Renewing session token")
        try:
            response = await self._submit(
                "POST", url, self.build_headers(), {"Token": token}, {"Token": token}
            )
        except RequestFailedError as exc:
            raise RenewalFailedError("Failed to renew session token") from exc

        body = parse_json_body(response)
        new_token = body.get("SessionToken") if isinstance(body, dict) else None
        if not response.is_success or not isinstance(new_token, str) or not new_token:
            logger.error(
                "Token renewal rejected: HTTP %d %s", response.status_code, response.reason_phrase
            )
            raise RenewalFailedError("Failed to renew session token")
        return new_token

    def _abandon(self, exc: ChimeError) -> None:
        """Fail every parked request with *exc* and empty the queue."""
        if self._queue:
            logger.warning("Abandoning %d pending request(s): %s", len(self._queue), exc)
        while self._queue:
            pending = self._queue.popleft()
            if not pending.future.done():
                pending.future.set_exception(exc)
        self._state = ChannelState.IDLE

    async def close(self) -> None:
        """Stop renewing and abandon every parked request."""
        self._closed = True
        if self._renewal is not None and not self._renewal.done():
            self._renewal.cancel()
            try:
                await self._renewal
            except asyncio.CancelledError:
                pass
        self._abandon(RequestFailedError("Connection is closed"))
