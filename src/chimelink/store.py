"""The session token store.

:class:`SessionTokenStore` is the single place a connection keeps its
credentials and the service topology it learned at registration.  It is
mutated by exactly two parties: the registration response parser
(:meth:`SessionTokenStore.populate_from_registration`) and the token
renewal in :class:`~chimelink.client.channel.RequestChannel` (through
:meth:`SessionTokenStore.set_token`).  Observers are told about token
changes so that, for example, the token can be persisted.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from chimelink.exceptions import BadResponseError
from chimelink.models import RegistrationDocument, ServiceEndpoints

logger = logging.getLogger(__name__)

TokenObserver = Callable[[str], None]


class SessionTokenStore:
    """Holds the session token, session identity, and service endpoints.

    Args:
        token: Initial session token (e.g. one restored from disk).

    Example::

        store = SessionTokenStore()
        unsubscribe = store.subscribe(lambda token: print("new token", token))
        store.set_token("abc")   # prints
        store.set_token("abc")   # silent: unchanged
    """

    def __init__(self, token: Optional[str] = None) -> None:
        self._token: Optional[str] = token or None
        self._observers: list[TokenObserver] = []

        self.session_id: Optional[str] = None
        self.profile_id: Optional[str] = None
        self.display_name: Optional[str] = None
        self.profile_channel: Optional[str] = None
        self.presence_channel: Optional[str] = None
        self.device_id: Optional[str] = None
        self.device_channel: Optional[str] = None
        self.endpoints: Optional[ServiceEndpoints] = None

    # ------------------------------------------------------------------ #
    # Token
    # ------------------------------------------------------------------ #

    @property
    def is_authenticated(self) -> bool:
        """``True`` once a non-empty token is held."""
        return bool(self._token)

    @property
    def is_registered(self) -> bool:
        """``True`` once a registration response has been applied."""
        return self.endpoints is not None

    def get_token(self) -> Optional[str]:
        return self._token

    def set_token(self, value: str) -> None:
        """Replace the token and notify observers, unless it is unchanged."""
        if value == self._token:
            return
        self._token = value
        logger.debug("Session token updated")
        for observer in list(self._observers):
            observer(value)

    def subscribe(self, observer: TokenObserver) -> Callable[[], None]:
        """Register *observer* for token changes.

        Returns:
            A callable that removes the observer again.
        """
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def populate_from_registration(self, document: Any) -> RegistrationDocument:
        """Apply a device registration response to the store.

        The document is validated in full before anything is assigned, so
        a response missing any required field leaves the store exactly as
        it was, token included.

        Args:
            document: The decoded JSON body of ``POST /sessions``.

        Returns:
            The validated :class:`~chimelink.models.RegistrationDocument`.

        Raises:
            BadResponseError: If a required field is missing or malformed.
        """
        try:
            registration = RegistrationDocument.model_validate(document)
        except ValidationError as exc:
            logger.error("Invalid registration response: %s", exc)
            raise BadResponseError("Failed to process registration response") from exc

        endpoints = registration.endpoints()
        session = registration.session

        self.session_id = session.session_id
        self.profile_id = session.profile.id
        self.display_name = session.profile.display_name
        self.profile_channel = session.profile.profile_channel
        self.presence_channel = session.profile.presence_channel
        self.device_id = session.device.device_id
        self.device_channel = session.device.channel
        self.endpoints = endpoints
        self.set_token(session.session_token)
        return registration

    def clear(self) -> None:
        """Forget the token and all registration data.  Observers are not notified."""
        self._token = None
        self.session_id = None
        self.profile_id = None
        self.display_name = None
        self.profile_channel = None
        self.presence_channel = None
        self.device_id = None
        self.device_channel = None
        self.endpoints = None
