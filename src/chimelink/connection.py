"""A Chime connection: login, device registration and the request channel.

:class:`Connection` ties the pieces together for one account.  It owns the
:class:`~chimelink.store.SessionTokenStore`, a long-lived
:class:`httpx.AsyncClient` and the
:class:`~chimelink.client.channel.RequestChannel` built on both, and it runs
the :class:`~chimelink.auth.login.LoginFlow` when a new session token is
needed.

Everything the connection needs from its embedding application goes
through a :class:`ConnectionHost`: the provider password, and where to put
errors and the user's display name.  The CLI in :mod:`chimelink.commands`
is one such host.

Typical usage::

    async with Connection(account, host) as connection:
        await connection.login()
        await connection.set_status("busy")
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx

from chimelink.auth.credential_store import CredentialEntry, CredentialStore
from chimelink.auth.login import LoginFlow
from chimelink.auth.manager import ProviderRegistry, create_default_registry
from chimelink.client.channel import RequestChannel
from chimelink.client.http import create_http_client
from chimelink.client.response import ChannelResponse
from chimelink.exceptions import BadResponseError, ChimeError, ConfigError, RequestFailedError
from chimelink.models import AccountConfig, ServiceEndpoints
from chimelink.registration import register_device
from chimelink.store import SessionTokenStore

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    REGISTERING = "registering"
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


class ConnectionHost(ABC):
    """The embedding application's side of a :class:`Connection`."""

    @abstractmethod
    def report_error(self, error: ChimeError) -> None:
        """Show a terminal connection error to the user.  Called at most once."""
        ...

    @abstractmethod
    async def request_password(self, email: str, provider: str) -> Optional[str]:
        """Return the password for *email* at *provider*, or ``None`` to cancel."""
        ...

    def set_display_name(self, name: str) -> None:
        """Receive the user's display name once the device is registered."""

    def connected(self, connection: Connection) -> None:
        """Called when the connection reaches :attr:`ConnectionState.CONNECTED`."""


class Connection:
    """One account's session with the Chime service.

    Args:
        account: The account to connect.
        host: Receives errors and supplies passwords.
        registry: Provider handlers for the login flow; defaults to
            :func:`~chimelink.auth.manager.create_default_registry`.
        credentials: Where the session token is persisted.  Only used when
            ``account.persist_token`` is set.
        transport: Optional transport for every HTTP client the connection
            creates (the channel's and each login flow's).
    """

    def __init__(
        self,
        account: AccountConfig,
        host: ConnectionHost,
        registry: Optional[ProviderRegistry] = None,
        credentials: Optional[CredentialStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.account = account
        self.host = host
        self.registry = registry or create_default_registry()
        self.credentials = credentials if account.persist_token else None
        self.state = ConnectionState.DISCONNECTED
        self.error: Optional[ChimeError] = None
        self.flow: Optional[LoginFlow] = None

        self._transport = transport
        self.store = SessionTokenStore()
        self.client = create_http_client(account.request, debug=account.debug, transport=transport)
        self.channel = RequestChannel(self.client, self.store, on_fatal=self.fail)

        self._unsubscribe: Optional[Callable[[], None]] = None
        if self.credentials is not None:
            self._unsubscribe = self.store.subscribe(self._persist_token)

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------ #
    # Session setup
    # ------------------------------------------------------------------ #

    async def login(self) -> ServiceEndpoints:
        """Obtain a session token and register the device.

        A token persisted by an earlier session is tried first.  If device
        registration rejects it (a 4xx status or an unusable registration
        document), it is thrown away and the login flow runs.  Any other
        failure, such as the service being unreachable, keeps the stored
        token and fails the connection.

        Returns:
            The service endpoints learned at registration.

        Raises:
            ChimeError: Whatever ended the login; the host has already been
                told through :meth:`ConnectionHost.report_error`.
        """
        self._check_open()

        stored = self._stored_token()
        if stored is not None:
            logger.info("Reusing stored session token for account '%s'", self.account.name)
            self.store.set_token(stored)
            self.state = ConnectionState.REGISTERING
            try:
                return await self._register(stored)
            except ChimeError as exc:
                if not _rejects_token(exc):
                    self.fail(exc)
                    raise
                logger.warning("Stored session token rejected: %s", exc.message)
                self.store.clear()
                if self.credentials is not None:
                    self.credentials.clear()

        self.state = ConnectionState.AUTHENTICATING
        self.flow = LoginFlow(self, self.registry, transport=self._transport)
        try:
            await self.flow.run()
        finally:
            self.flow = None
        return await self.connect()

    async def connect(self) -> ServiceEndpoints:
        """Register the device with the token already in the store."""
        self._check_open()
        token = self.store.get_token()
        if not token:
            error = ChimeError("No session token; log in first")
            self.fail(error)
            raise error

        self.state = ConnectionState.REGISTERING
        try:
            return await self._register(token)
        except ChimeError as exc:
            self.fail(exc)
            raise

    async def _register(self, token: str) -> ServiceEndpoints:
        endpoints = await register_device(
            self.channel, self.store, self.account.server, token, self.account.device_token
        )
        if self.store.display_name:
            self.host.set_display_name(self.store.display_name)
        self.state = ConnectionState.CONNECTED
        logger.info("Connected as %s", self.store.display_name or self.account.email)
        self.host.connected(self)
        return endpoints

    # ------------------------------------------------------------------ #
    # Operations on an established session
    # ------------------------------------------------------------------ #

    @property
    def subscriptions(self) -> list[str]:
        """Push channels this session should subscribe to."""
        channels = (
            self.store.profile_channel,
            self.store.presence_channel,
            self.store.device_channel,
        )
        return [channel for channel in channels if channel]

    async def set_status(self, availability: str) -> ChannelResponse:
        """Set the user's manual availability (e.g. ``"busy"``, ``"available"``).

        Raises:
            ChimeError: If the connection is not registered.
            RequestFailedError: If the presence service rejects the change.
        """
        endpoints = self._require_endpoints()
        url = f"{endpoints.presence.rstrip('/')}/presencesettings"
        result = await self.channel.send(
            "POST", url, json_body={"ManualAvailability": availability}
        )
        if not result.is_success:
            logger.error("Setting status failed: HTTP %d", result.status_code)
            raise RequestFailedError(
                f"Failed to set status '{availability}'", status_code=result.status_code
            )
        return result

    async def renew_token(self) -> str:
        """Exchange the current session token for a fresh one.

        Raises:
            RenewalFailedError: If the profile service refuses; the
                connection has failed by then.
        """
        self._check_open()
        await self.channel.renew()
        token = self.store.get_token()
        assert token is not None
        return token

    def logout(self) -> None:
        """Forget the session token here and on disk."""
        self.store.clear()
        if self.credentials is not None:
            self.credentials.clear()
        if self.state is not ConnectionState.CLOSED:
            self.state = ConnectionState.DISCONNECTED

    # ------------------------------------------------------------------ #
    # Failure and shutdown
    # ------------------------------------------------------------------ #

    def fail(self, error: ChimeError) -> None:
        """Move to :attr:`ConnectionState.FAILED` and tell the host.

        Only the first failure is reported; a closed connection reports
        nothing.
        """
        if self.state is ConnectionState.CLOSED or self.error is not None:
            logger.debug("Ignoring failure after the first: %s", error.message)
            return
        logger.error("Connection '%s' failed: %s", self.account.name, error.message)
        self.error = error
        self.state = ConnectionState.FAILED
        self.host.report_error(error)

    async def close(self) -> None:
        """Cancel any login in progress and release every resource.  Idempotent."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        flow = self.flow
        if flow is not None:
            flow.cancel()
            await flow.release()

        await self.channel.close()
        await self.client.aclose()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _check_open(self) -> None:
        if self.state is ConnectionState.CLOSED:
            raise ChimeError("Connection is closed")

    def _require_endpoints(self) -> ServiceEndpoints:
        self._check_open()
        if self.store.endpoints is None:
            raise ChimeError("Not connected; log in first")
        return self.store.endpoints

    def _stored_token(self) -> Optional[str]:
        if self.credentials is None:
            return None
        entry = self.credentials.load()
        if entry is None:
            return None
        if entry.email != self.account.email:
            logger.info("Stored token belongs to %s; not reusing it", entry.email)
            return None
        return entry.session_token

    def _persist_token(self, token: str) -> None:
        assert self.credentials is not None
        try:
            self.credentials.save(CredentialEntry(session_token=token, email=self.account.email))
        except OSError as exc:
            logger.error("Cannot write %s: %s", self.credentials.path, exc)
            raise ConfigError(f"Failed to save session token: {exc}") from exc
        logger.debug("Session token saved to %s", self.credentials.path)


def _rejects_token(exc: ChimeError) -> bool:
    """Whether *exc* means the server refused the token itself."""
    if isinstance(exc, BadResponseError):
        return True
    if isinstance(exc, RequestFailedError) and exc.status_code is not None:
        return 400 <= exc.status_code < 500
    return False
