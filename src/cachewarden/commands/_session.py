"""Glue shared by the agent-backed commands.

Each command runs as one host event: resolve the configuration from the
Typer context, open an agent, run a coroutine against it, and drain it
before the process exits.  The Typer context object may also carry a
``transport`` (an :class:`httpx.AsyncBaseTransport`) and an ``opener`` for
consumer windows, which the test suite uses to stay off the network.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer

from cachewarden.exceptions import CacheWardenError
from cachewarden.models import AgentConfig
from cachewarden.output import error

T = TypeVar("T")


def _obj(ctx: typer.Context) -> dict[str, Any]:
    return ctx.obj if isinstance(ctx.obj, dict) else {}


def resolve_from_context(ctx: typer.Context) -> AgentConfig:
    """Resolve the agent config, applying ``--origin``/``--build-label`` overrides.

    Raises:
        typer.Exit: With the error's exit code if the config cannot be resolved.
    """
    from cachewarden.config import resolve_config

    obj = _obj(ctx)
    try:
        return resolve_config(
            cli_origin=obj.get("origin"),
            cli_build_label=obj.get("build_label"),
        )
    except CacheWardenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def run_with_agent(ctx: typer.Context, action: Callable[[Any], Awaitable[T]]) -> T:
    """Open an agent for the resolved config, await ``action(agent)``, and drain.

    A :class:`~cachewarden.exceptions.CacheWardenError` is reported on stderr
    and turned into ``typer.Exit`` with the matching exit code.
    """
    from cachewarden.agent import open_agent
    from cachewarden.host import Clients

    config = resolve_from_context(ctx)
    obj = _obj(ctx)

    kwargs: dict[str, Any] = {}
    if obj.get("opener") is not None and config.origin:
        kwargs["clients"] = Clients(config.origin, opener=obj["opener"])

    async def _session() -> T:
        async with open_agent(config, transport=obj.get("transport"), **kwargs) as agent:
            return await action(agent)

    try:
        return asyncio.run(_session())
    except CacheWardenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
