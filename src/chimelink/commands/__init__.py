"""Built-in CLI sub-commands for chimelink.

* :mod:`~chimelink.commands.account` -- add, list, show, and remove accounts.
* :mod:`~chimelink.commands.session` -- ``login``, ``logout``, and
  ``status``, which drive a :class:`~chimelink.connection.Connection`.
* :mod:`~chimelink.commands.config` -- view and modify global settings.

Multi-command groups export a :class:`typer.Typer` sub-application; single
commands are plain callbacks registered on the root app.
"""
