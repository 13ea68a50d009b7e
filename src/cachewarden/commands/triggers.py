"""Trigger commands -- fire the agent's background hooks from the shell.

Each command delivers one host event and prints what came of it:

* ``sync`` -- connectivity is back; transmit pending notes and bookmarks.
* ``periodic-sync`` -- the scheduler fired; ask the server for new content.
* ``push`` -- an inbound push message; show a notification.
* ``click`` -- the user clicked a notification (or one of its actions).

Hooks never fail the command because of network trouble; failures are
logged and reflected in the printed result.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

import typer

from cachewarden.commands._session import run_with_agent
from cachewarden.output import format_response, info, success, warning


def sync_command(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(
        None, "--tag", help="Sync tag (defaults to the configured deferred-sync tag)."
    ),
) -> None:
    """Run deferred sync of pending notes and bookmarks.

    Example::

        cachewarden sync
        cachewarden sync --tag background-sync
    """
    report = run_with_agent(ctx, lambda agent: agent.sync(tag))
    if report is None:
        info("No deferred-sync work for that tag.")
        return
    if report.error:
        warning(f"Sync failed: {report.error}")
    elif report.transmitted:
        success(f"Synced {report.notes} note(s) and {report.bookmarks} bookmark(s)")
    format_response(asdict(report))


def periodic_sync_command(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(
        None, "--tag", help="Sync tag (defaults to the configured periodic-sync tag)."
    ),
) -> None:
    """Check the server for new content and notify if there is some.

    Example::

        cachewarden periodic-sync
    """
    record = run_with_agent(ctx, lambda agent: agent.periodic_sync(tag))
    if record is None:
        info("No new content.")
        return
    format_response(record.model_dump(mode="json"))


def push_command(
    ctx: typer.Context,
    payload: Optional[str] = typer.Argument(
        None, help="Push message body. Omit for the default notification text."
    ),
) -> None:
    """Deliver a push message and show its notification.

    Example::

        cachewarden push "Verse of the day is ready"
    """
    record = run_with_agent(ctx, lambda agent: agent.push(payload))
    format_response(record.model_dump(mode="json"))


def click_command(
    ctx: typer.Context,
    action: str = typer.Argument(
        "", help="Action name ('open', 'dismiss', ...). Empty means the body was clicked."
    ),
) -> None:
    """Simulate a click on a notification.

    ``open`` (or a click on the notification body) focuses an open window of
    the application or opens a new one at its root.  Any other action only
    closes the notification.

    Example::

        cachewarden click open
        cachewarden click dismiss
    """
    client = run_with_agent(ctx, lambda agent: agent.notification_click(action))
    if client is None:
        info("Notification closed.")
        return
    success(f"Focused {client.url}")
