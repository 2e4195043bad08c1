"""Exception hierarchy for chimelink.

All exceptions inherit from :class:`ChimeError`, which carries a ``kind``
tag (the error category delivered to a connection host) and an
``exit_code`` mapped to a constant from :mod:`chimelink.exit_codes`.
The CLI entry point in :func:`chimelink.app.main` catches ``ChimeError``
and exits with the matching code; library callers receive the exception
itself through :meth:`~chimelink.connection.ConnectionHost.report_error`.

Subclass hierarchy::

    ChimeError            (kind "error",          exit 1)
    +-- AuthCanceledError (kind "auth_canceled",  exit 3)
    +-- AuthFailedError   (kind "auth_failed",    exit 3)
    +-- RequestFailedError(kind "request_failed", exit 6)
    +-- BadResponseError  (kind "bad_response",   exit 5)
    +-- RenewalFailedError(kind "renewal_failed", exit 7)
    +-- ConfigError       (kind "config",         exit 1)
"""

from __future__ import annotations

from typing import Optional

from chimelink.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_BAD_RESPONSE,
    EXIT_GENERIC_FAILURE,
    EXIT_RENEWAL_FAILED,
    EXIT_REQUEST_FAILED,
)


class ChimeError(Exception):
    """Base exception for all chimelink errors.

    Every subclass sets a class-level ``kind`` and ``exit_code``.  The
    message is meant for humans: it is what the host shows to the user.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    kind: str = "error"
    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code

    @property
    def message(self) -> str:
        """The human-readable message passed at construction."""
        return str(self)


class AuthCanceledError(ChimeError):
    """Raised when the user aborts sign-in (e.g. declines to enter a password)."""

    kind = "auth_canceled"
    exit_code = EXIT_AUTH_FAILURE


class AuthFailedError(ChimeError):
    """Raised when an identity provider rejects the supplied credentials."""

    kind = "auth_failed"
    exit_code = EXIT_AUTH_FAILURE


class RequestFailedError(ChimeError):
    """Raised on an unexpected HTTP status or a transport-level failure.

    Args:
        message: Human-readable error description.
        status_code: The HTTP status that caused the failure, or ``None``
            for network errors and timeouts.
    """

    kind = "request_failed"
    exit_code = EXIT_REQUEST_FAILED

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BadResponseError(ChimeError):
    """Raised when a response arrives but lacks an expected form, field, or token."""

    kind = "bad_response"
    exit_code = EXIT_BAD_RESPONSE


class RenewalFailedError(ChimeError):
    """Raised when the session token cannot be renewed.

    This is always fatal for the connection: requests waiting for the
    renewal are abandoned and the session must be re-established.
    """

    kind = "renewal_failed"
    exit_code = EXIT_RENEWAL_FAILED


class ConfigError(ChimeError):
    """Raised for configuration problems (missing accounts, invalid JSON, bad credential sources)."""

    kind = "config"
    exit_code = EXIT_GENERIC_FAILURE
