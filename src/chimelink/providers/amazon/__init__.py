"""Amazon corporate sign-in provider.

Implements the ``amazon`` provider tag: a single e-mail and password form.

See Also:
    :class:`~chimelink.providers.amazon.plugin.AmazonProvider`
    :mod:`chimelink.auth.base` for the handler interface contract.
"""

from chimelink.providers.amazon.plugin import AmazonProvider

__all__ = ["AmazonProvider"]
