"""Session commands -- log in, log out, and set presence.

These commands run a :class:`~chimelink.connection.Connection` with the
terminal as its host: :class:`CliHost` reads the provider password from
the account's ``password_source`` (a hidden prompt by default) and prints
connection errors to stderr.

Example::

    chimelink login
    chimelink status busy --account work
    chimelink logout
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer

from chimelink.auth.credential_store import CredentialStore
from chimelink.config import resolve_config, resolve_credential
from chimelink.connection import Connection, ConnectionHost
from chimelink.exceptions import ChimeError
from chimelink.models import AccountConfig
from chimelink.output import debug, error, format_response, info, progress, success, suggest


class CliHost(ConnectionHost):
    """Connection host backed by the terminal."""

    def __init__(self, account: AccountConfig) -> None:
        self.account = account
        self.display_name: Optional[str] = None

    def report_error(self, err: ChimeError) -> None:
        error(err.message)

    async def request_password(self, email: str, provider: str) -> Optional[str]:
        progress(f"Signing in to {provider} as {email}")
        try:
            return resolve_credential(
                self.account.password_source, prompt=f"Password for {email}: "
            )
        except (EOFError, KeyboardInterrupt):
            return None

    def set_display_name(self, name: str) -> None:
        self.display_name = name

    def connected(self, connection: Connection) -> None:
        debug(f"Subscriptions: {', '.join(connection.subscriptions)}")


def create_connection(account: AccountConfig, host: ConnectionHost) -> Connection:
    """Build the connection used by every session command."""
    return Connection(account, host, credentials=CredentialStore(account.name))


def _resolve_account(ctx: typer.Context, account: Optional[str]) -> AccountConfig:
    obj = ctx.obj or {}
    _, resolved = resolve_config(
        cli_account=account or obj.get("account"),
        cli_server=obj.get("server"),
    )
    if resolved is None:
        error("No account selected.")
        suggest("Create one: chimelink account add NAME --email EMAIL")
        raise typer.Exit(code=2)
    return resolved


def _session_summary(connection: Connection) -> dict[str, Any]:
    store = connection.store
    return {
        "account": connection.account.name,
        "email": connection.account.email,
        "display_name": store.display_name,
        "session_id": store.session_id,
        "profile_id": store.profile_id,
        "device_id": store.device_id,
        "subscriptions": connection.subscriptions,
        "endpoints": store.endpoints.model_dump() if store.endpoints else None,
    }


def _report(connection: Connection, exc: ChimeError) -> None:
    # Connection failures were already shown through CliHost.report_error.
    if connection.error is not exc:
        error(exc.message)


_ACCOUNT_OPTION = typer.Option(None, "--account", "-a", help="Account name.")


def login_command(ctx: typer.Context, account: Optional[str] = _ACCOUNT_OPTION) -> None:
    """Sign in and register this device.

    Reuses the stored session token when the server still accepts it.
    """
    resolved = _resolve_account(ctx, account)

    connection = create_connection(resolved, CliHost(resolved))

    async def _run() -> dict[str, Any]:
        async with connection:
            await connection.login()
            return _session_summary(connection)

    try:
        summary = asyncio.run(_run())
    except ChimeError as exc:
        _report(connection, exc)
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Logged in as {summary['display_name'] or resolved.email}.")
    format_response(summary)


def logout_command(ctx: typer.Context, account: Optional[str] = _ACCOUNT_OPTION) -> None:
    """Forget the stored session token."""
    resolved = _resolve_account(ctx, account)
    store = CredentialStore(resolved.name)
    if store.load() is None:
        info(f'No stored session for "{resolved.name}".')
        return
    store.clear()
    success(f'Logged out of "{resolved.name}".')


def status_command(
    ctx: typer.Context,
    availability: str = typer.Argument(help="Availability, e.g. available, busy, away."),
    account: Optional[str] = _ACCOUNT_OPTION,
) -> None:
    """Sign in and set your manual availability."""
    resolved = _resolve_account(ctx, account)

    connection = create_connection(resolved, CliHost(resolved))

    async def _run() -> None:
        async with connection:
            await connection.login()
            await connection.set_status(availability)

    try:
        asyncio.run(_run())
    except ChimeError as exc:
        _report(connection, exc)
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Status set to {availability}.")
