"""Install command -- seed and activate a build.

``cachewarden install`` plays the role of the host deploying a new build:
it resumes whatever generation an earlier run activated, installs the build
named by ``--build-label`` (or the config), and activates it straight away
under the default skip-waiting policy.  Unreachable shell resources are
reported but do not fail the command.
"""

from __future__ import annotations

from typing import Any

import typer

from cachewarden.commands._session import run_with_agent
from cachewarden.output import format_response, success, warning


def install_command(ctx: typer.Context) -> None:
    """Install the current build and activate it.

    Prints a summary of the install (label, final lifecycle state, the
    generations left in the store, and any shell resources that could not
    be seeded).

    Example::

        cachewarden --origin https://app.example install
        cachewarden --build-label app-v5 install --json
    """
    from cachewarden.agent import OfflineAgent

    async def _install(agent: OfflineAgent) -> dict[str, Any]:
        await agent.resume()
        manager = await agent.update()
        return {
            "build_label": manager.label,
            "state": manager.state.value,
            "generations": sorted(await agent.store.list_generations()),
            "failed": dict(manager.seed_error.failures) if manager.seed_error else {},
        }

    summary = run_with_agent(ctx, _install)

    for path, reason in summary["failed"].items():
        warning(f"Could not cache {path}: {reason}")
    if summary["state"] == "active":
        success(f"Activated {summary['build_label']}")
    else:
        warning(f"{summary['build_label']} is {summary['state']}")
    format_response(summary)
