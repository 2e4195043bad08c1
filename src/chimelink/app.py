"""Typer application and CLI entry point for chimelink.

This module builds the top-level Typer application and registers the
built-in commands: the ``account`` and ``config`` groups plus ``login``,
``logout`` and ``status``.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  It installs signal handlers and invokes the Typer app;
a :class:`~chimelink.exceptions.ChimeError` that escapes a command ends the
process with that error's exit code, and anything else is written to a
crash log under the data directory.

See Also:
    :mod:`chimelink.config`: Account and global configuration resolution.
    :mod:`chimelink.output`: Output and logging set up in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from chimelink import __version__
from chimelink.commands.account import account_app
from chimelink.commands.config import config_app
from chimelink.commands.session import login_command, logout_command, status_command
from chimelink.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="chimelink",
    help="Sign in to Amazon Chime and manage the session from the terminal.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(account_app, name="account", help="Account management.")
app.add_typer(config_app, name="config", help="Configuration management.")
app.command("login")(login_command)
app.command("logout")(logout_command)
app.command("status")(status_command)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"chimelink {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    account: Optional[str] = typer.Option(
        None, "--account", "-a", help="Account name to use."
    ),
    server: Optional[str] = typer.Option(
        None, "--server", help="Override the account's sign-in server."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug logging."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~chimelink.output.OutputManager`, routes
    :mod:`logging` through it, and stores the shared options (``account``,
    ``server``, ``force``) in ``ctx.obj`` for the sub-commands.
    """
    from chimelink.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    output.configure_logging()
    set_output(output)

    ctx.ensure_object(dict)
    ctx.obj["account"] = account
    ctx.obj["server"] = server
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return its path."""
    from chimelink.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(f"{type(exc).__name__}: {exc}\n\n{traceback.format_exc()}")
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``chimelink`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from chimelink.exceptions import ChimeError
        from chimelink.output import error

        if isinstance(exc, ChimeError):
            error(exc.message)
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
