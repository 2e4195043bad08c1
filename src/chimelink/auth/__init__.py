"""Login and provider subsystem for chimelink.

The main entry points are:

- :class:`LoginFlow` -- the state machine that turns an e-mail address into
  a session token.
- :class:`ProviderHandler` -- abstract base class for identity provider
  sub-flows, dispatched by the provider tag the sign-in service returns.
- :class:`ProviderRegistry` / :func:`create_default_registry` -- maps tags
  to handlers.
- :class:`CredentialStore` -- persistent, per-account session token storage.

Typical usage::

    from chimelink.auth import LoginFlow, create_default_registry

    flow = LoginFlow(connection, create_default_registry())
    token = await flow.run()
"""

from chimelink.auth.base import ProviderHandler, ProviderState
from chimelink.auth.credential_store import CredentialEntry, CredentialStore
from chimelink.auth.login import LoginFlow, LoginState
from chimelink.auth.manager import ProviderRegistry, create_default_registry

__all__ = [
    "CredentialEntry",
    "CredentialStore",
    "LoginFlow",
    "LoginState",
    "ProviderHandler",
    "ProviderRegistry",
    "ProviderState",
    "create_default_registry",
]
