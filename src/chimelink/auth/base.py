"""Abstract base class for login provider handlers.

This module defines the two foundational types of the provider subsystem:

- :class:`ProviderState` -- per-flow scratch space a provider keeps while
  it walks its own pages (CSRF values, visited URLs, ...).
- :class:`ProviderHandler` -- the abstract base class every identity
  provider sub-flow must extend.

The sign-in service decides which provider handles an account and names it
with a short tag (``"amazon"``, ``"wd"``).  To support a new provider,
subclass :class:`ProviderHandler`, set the :attr:`~ProviderHandler.provider`
property, and implement :meth:`~ProviderHandler.authenticate`.  Override
:meth:`~ProviderHandler.create_state` when the sub-flow needs to remember
anything between its own requests.

See Also:
    :mod:`chimelink.auth.manager` for provider registration and dispatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import httpx

if TYPE_CHECKING:
    from chimelink.auth.login import LoginFlow


class ProviderState:
    """Provider-owned payload attached to a running login flow.

    Providers that need to remember something between their own requests
    subclass this with typed attributes and return an instance from
    :meth:`ProviderHandler.create_state`.  The flow calls :meth:`release`
    exactly once when it finishes, whether it succeeded or failed;
    subclasses that hold secrets should extend it to drop them.

    Example::

        class MyState(ProviderState):
            def __init__(self) -> None:
                super().__init__()
                self.nonce: Optional[str] = None

            def release(self) -> None:
                self.nonce = None
                super().release()
    """

    def __init__(self) -> None:
        self.released = False

    def release(self) -> None:
        self.released = True


class ProviderHandler(ABC):
    """Abstract base class for identity provider sub-flows.

    A handler receives the response to the provider ``path`` returned by
    the sign-in service and drives the provider's own pages until it holds
    the response that carries the session token.

    Handlers are registered with
    :class:`~chimelink.auth.manager.ProviderRegistry` and looked up by their
    :attr:`provider` tag at runtime.  A handler instance is shared between
    flows; anything flow-specific belongs in the :class:`ProviderState`
    returned by :meth:`create_state`.
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        """Return the provider tag this handler serves (e.g. ``"amazon"``)."""
        ...

    def create_state(self) -> Optional[ProviderState]:
        """Return fresh per-flow state, or ``None`` when none is needed."""
        return None

    @abstractmethod
    async def authenticate(self, flow: LoginFlow, response: httpx.Response) -> httpx.Response:
        """Drive the provider sub-flow to completion.

        Implementations issue their requests through
        :meth:`~chimelink.auth.login.LoginFlow.request` and
        :meth:`~chimelink.auth.login.LoginFlow.submit_form` so that cookies,
        status checks and debug logging are shared with the rest of the flow.

        Args:
            flow: The running login flow.  ``flow.provider_state`` holds the
                value returned by :meth:`create_state`.
            response: The response to the provider ``path``.

        Returns:
            The final response, whose body embeds the session token carrier.

        Raises:
            ChimeError: Any subclass, which ends the flow.
        """
        ...
