"""Numeric process exit codes used by the ``chimelink`` CLI.

Each constant maps to one error category and is referenced by the
corresponding :class:`~chimelink.exceptions.ChimeError` subclass.  The
library itself never exits; only :func:`chimelink.app.main` turns a raised
error into one of these codes.

Example::

    $ chimelink login
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- sign-in was canceled or rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication was canceled by the user or rejected by the identity provider."""

EXIT_BAD_RESPONSE = 5
"""The server answered, but not with what the login or registration step expected."""

EXIT_REQUEST_FAILED = 6
"""A request failed (error status, timeout, DNS failure, connection refused)."""

EXIT_RENEWAL_FAILED = 7
"""The session token could not be renewed; the session is unrecoverable."""
