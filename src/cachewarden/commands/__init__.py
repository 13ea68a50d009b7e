"""Built-in CLI sub-commands for cachewarden.

This package groups the Typer sub-command modules that form the CLI's
command tree:

* :mod:`~cachewarden.commands.lifecycle` -- install and activate a build.
* :mod:`~cachewarden.commands.fetch` -- route one request through the agent.
* :mod:`~cachewarden.commands.generations` -- list, show, and evict
  generations in the store.
* :mod:`~cachewarden.commands.triggers` -- fire the background hooks
  (``sync``, ``periodic-sync``, ``push``, ``click``).
* :mod:`~cachewarden.commands.config` -- view and modify the user config.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``generations`` and ``config``) or a plain callback
function registered directly on the root app.  :mod:`._session` holds the
glue they share for opening an agent from the Typer context.
"""
