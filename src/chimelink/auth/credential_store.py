"""Persistent session token storage, one file per account.

Tokens live in ``~/.local/share/chimelink/credentials/<account>.json``
(XDG) or the platform-equivalent directory.  Files go through
:func:`~chimelink.config._atomic_write` with ``0o600`` permissions, so a
token is never world-readable, even momentarily.

A stored token lets :meth:`~chimelink.connection.Connection.login` skip the
interactive login flow.  Whether it is still good is only known once the
server accepts it at device registration.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from chimelink.config import _atomic_write, get_data_dir

logger = logging.getLogger(__name__)


class CredentialEntry(BaseModel):
    """A stored session token.

    Attributes:
        session_token: The token value.
        email: The account e-mail the token was issued for.  A token saved
            for a different e-mail is not reused.
        saved_at: UTC time of the last save.
    """

    session_token: str = Field(min_length=1, description="Session token value")
    email: str = Field(description="Account e-mail the token belongs to")
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _credentials_dir() -> Path:
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class CredentialStore:
    """Read/write the session token of a single account.

    Args:
        account: The account name used to derive the file name.

    Example::

        store = CredentialStore("work")
        store.save(CredentialEntry(session_token="tok123", email="u@x.com"))
        assert store.load().session_token == "tok123"
    """

    def __init__(self, account: str) -> None:
        self._account = account
        self._path = _credentials_dir() / f"{account}.json"

    @property
    def path(self) -> Path:
        return self._path

    def save(self, entry: CredentialEntry) -> None:
        """Persist *entry* atomically with ``0o600`` permissions."""
        data = entry.model_dump(mode="json")
        _atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)

    def load(self) -> Optional[CredentialEntry]:
        """Return the stored entry, or ``None`` if missing or unreadable."""
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return CredentialEntry.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", self._path, exc)
            return None

    def clear(self) -> None:
        """Delete the stored token.  No-op when there is none."""
        if self._path.is_file():
            self._path.unlink()
