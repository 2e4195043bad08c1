"""Account commands -- manage the Chime accounts chimelink knows about.

Provides the ``chimelink account`` sub-command group.  An account is a
named :class:`~chimelink.models.AccountConfig`: the e-mail used for
provider discovery, the sign-in server, where the password comes from,
and whether the session token is kept between runs.

Typical workflow::

    chimelink account add work --email me@example.com
    chimelink account list
    chimelink login --account work
"""

from __future__ import annotations

from typing import Optional

import typer

from chimelink.output import error, format_response, get_output, info, success, suggest


account_app = typer.Typer(no_args_is_help=True)


@account_app.command("add")
def account_add(
    name: str = typer.Argument(help="Account name."),
    email: str = typer.Option(..., "--email", "-e", help="Sign-in e-mail address."),
    server: Optional[str] = typer.Option(
        None, "--server", help="Sign-in server URL."
    ),
    password_source: str = typer.Option(
        "prompt",
        "--password-source",
        "-s",
        help="Password source: prompt, env:VAR, file:/path.",
    ),
    persist: bool = typer.Option(
        True, "--persist/--no-persist", help="Keep the session token between runs."
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Log HTTP traffic for this account (with --verbose)."
    ),
) -> None:
    """Create an account.

    The first account created becomes the default account.

    Example::

        chimelink account add work --email me@example.com
        chimelink account add ci --email bot@example.com -s env:CHIME_PASSWORD
    """
    from chimelink.config import (
        account_exists,
        load_global_config,
        save_account,
        save_global_config,
    )
    from chimelink.models import AccountConfig

    if account_exists(name):
        error(f'Account "{name}" already exists.')
        suggest(f"Remove it first: chimelink account remove {name}")
        raise typer.Exit(code=2)

    fields: dict[str, object] = {
        "name": name,
        "email": email,
        "password_source": password_source,
        "persist_token": persist,
        "debug": debug,
    }
    if server is not None:
        fields["server"] = server
    save_account(AccountConfig.model_validate(fields))

    config = load_global_config()
    if config.default_account is None:
        config.default_account = name
        save_global_config(config)
        info(f'"{name}" is now the default account.')

    success(f'Account "{name}" created.')
    suggest(f"Log in: chimelink login --account {name}")


@account_app.command("list")
def account_list() -> None:
    """List configured accounts; the default one is marked with ``*``."""
    from chimelink.config import list_accounts, load_account, load_global_config

    names = list_accounts()
    if not names:
        info("No accounts configured.")
        suggest("Create one: chimelink account add NAME --email EMAIL")
        return

    default = load_global_config().default_account
    rows = []
    for name in names:
        account = load_account(name)
        rows.append(["*" if name == default else "", name, account.email, account.server])
    get_output().print_table(["", "Name", "E-mail", "Server"], rows, title="Accounts")


@account_app.command("show")
def account_show(name: str = typer.Argument(help="Account name.")) -> None:
    """Show an account's settings."""
    from chimelink.config import load_account

    format_response(load_account(name).model_dump(mode="json"))


@account_app.command("remove")
def account_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Account name."),
) -> None:
    """Delete an account and its stored session token.

    Asks for confirmation unless ``--force`` is given.
    """
    from chimelink.auth.credential_store import CredentialStore
    from chimelink.config import (
        account_exists,
        delete_account,
        load_global_config,
        save_global_config,
    )

    if not account_exists(name):
        error(f'Account "{name}" not found.')
        raise typer.Exit(code=2)

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f'Remove account "{name}"?'):
        info("Cancelled.")
        raise typer.Exit()

    delete_account(name)
    CredentialStore(name).clear()

    config = load_global_config()
    if config.default_account == name:
        config.default_account = None
        save_global_config(config)

    success(f'Account "{name}" removed.')
