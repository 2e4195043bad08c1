"""Provider registry -- maps provider tags to login sub-flows.

The :class:`ProviderRegistry` is consulted by
:class:`~chimelink.auth.login.LoginFlow` once the sign-in service has named
the identity provider for an account.  Adding a provider means registering
another :class:`~chimelink.auth.base.ProviderHandler`; the flow itself never
changes.

For most use cases, call :func:`create_default_registry` to get a registry
pre-loaded with every built-in provider.
"""

from __future__ import annotations

from chimelink.auth.base import ProviderHandler
from chimelink.exceptions import BadResponseError


class ProviderRegistry:
    """Registry and dispatcher for provider handlers.

    Example::

        from chimelink.auth import ProviderRegistry
        from chimelink.providers.amazon import AmazonProvider

        registry = ProviderRegistry()
        registry.register(AmazonProvider())
        handler = registry.get("amazon")
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ProviderHandler] = {}

    def register(self, handler: ProviderHandler) -> None:
        """Register *handler* under its provider tag, replacing any previous one."""
        self._handlers[handler.provider] = handler

    def get(self, provider: str) -> ProviderHandler:
        """Return the handler for *provider*.

        Raises:
            BadResponseError: If the tag is not registered.  The tag comes
                from the sign-in service, so an unknown one is a response
                the client cannot act on.
        """
        handler = self._handlers.get(provider)
        if handler is None:
            raise BadResponseError("Unknown login provider")
        return handler

    def __contains__(self, provider: object) -> bool:
        return provider in self._handlers

    def list_providers(self) -> list[str]:
        """Return the registered provider tags, sorted."""
        return sorted(self._handlers)


def create_default_registry() -> ProviderRegistry:
    """Create a :class:`ProviderRegistry` with the built-in providers.

    - ``amazon`` -- Amazon corporate sign-in.
    - ``wd`` -- WarpDrive single sign-on.
    """
    from chimelink.providers.amazon import AmazonProvider
    from chimelink.providers.warpdrive import WarpDriveProvider

    registry = ProviderRegistry()
    registry.register(AmazonProvider())
    registry.register(WarpDriveProvider())
    return registry
