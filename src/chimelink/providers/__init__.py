"""Built-in identity provider sub-flows.

Each provider lives in its own sub-package and exposes a single
:class:`~chimelink.auth.base.ProviderHandler` subclass.  They are loaded by
:func:`~chimelink.auth.manager.create_default_registry`.
"""
