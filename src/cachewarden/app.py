"""Typer application and CLI entry point for cachewarden.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``install``, ``fetch``, ``generations``, ``sync``,
``periodic-sync``, ``push``, ``click``, ``config``).  Every command resolves
the agent configuration, opens an :class:`~cachewarden.agent.OfflineAgent`
for the duration of one host event, and drains it before exiting.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  It installs signal handlers, registers commands, and
invokes the Typer app.  Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`cachewarden.config`: Configuration precedence resolution.
    :mod:`cachewarden.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from cachewarden import __version__
from cachewarden.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="cachewarden",
    help="Offline caching agent: app-shell cache, cache-first fetches and background hooks.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cachewarden {__version__}")
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
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Origin the agent serves (e.g. https://app.example)."
    ),
    build_label: Optional[str] = typer.Option(
        None, "--build-label", "-b", help="Generation label of the current build."
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
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~cachewarden.output.OutputManager` from
    CLI flags, routes library log records through it, and stores the
    ``origin`` and ``build_label`` overrides in the Typer context so that
    sub-commands can read them via ``ctx.obj``.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        origin: Origin override (highest precedence).
        build_label: Build label override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output.
    """
    from cachewarden.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    output.install_logging()

    ctx.ensure_object(dict)
    ctx.obj["origin"] = origin
    ctx.obj["build_label"] = build_label
    ctx.obj["verbose"] = verbose


def register_commands() -> None:
    """Attach the built-in sub-commands to :data:`app`.  Safe to call twice."""
    if getattr(app, "_cachewarden_registered", False):
        return

    from cachewarden.commands.config import config_app
    from cachewarden.commands.fetch import fetch_command
    from cachewarden.commands.generations import generations_app
    from cachewarden.commands.lifecycle import install_command
    from cachewarden.commands.triggers import (
        click_command,
        periodic_sync_command,
        push_command,
        sync_command,
    )

    app.command("install")(install_command)
    app.command("fetch")(fetch_command)
    app.command("sync")(sync_command)
    app.command("periodic-sync")(periodic_sync_command)
    app.command("push")(push_command)
    app.command("click")(click_command)
    app.add_typer(generations_app, name="generations", help="Inspect and evict cache generations.")
    app.add_typer(config_app, name="config", help="Configuration management.")
    app._cachewarden_registered = True  # type: ignore[attr-defined]


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from cachewarden.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cachewarden`` console script.

    Unhandled :class:`~cachewarden.exceptions.CacheWardenError` instances
    cause a clean exit with the error's ``exit_code``.  All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from cachewarden.exceptions import CacheWardenError
        from cachewarden.output import error

        if isinstance(exc, CacheWardenError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
