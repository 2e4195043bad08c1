"""WarpDrive single sign-on provider.

Implements the ``wd`` provider tag: a corporate SSO login page followed by a
chain of self-submitting forms.

See Also:
    :class:`~chimelink.providers.warpdrive.plugin.WarpDriveProvider`
"""

from chimelink.providers.warpdrive.plugin import WarpDriveProvider, WarpDriveState

__all__ = ["WarpDriveProvider", "WarpDriveState"]
