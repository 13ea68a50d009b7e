"""Generation commands -- inspect and evict cache generations.

Provides the ``cachewarden generations`` sub-command group.  These commands
work on the store directly and never touch the network:

* ``list`` -- every generation label, marking the current one.
* ``show`` -- the URLs stored in one generation.
* ``evict`` -- delete a generation.  The current generation is refused.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer

from cachewarden.commands._session import resolve_from_context
from cachewarden.output import error, format_response, info, print_table, success, warning

T = TypeVar("T")

generations_app = typer.Typer(no_args_is_help=True)


def _with_store(ctx: typer.Context, action: Callable[[Any], Awaitable[T]]) -> T:
    from cachewarden.cache import CacheStore
    from cachewarden.config import get_store_dir

    store = CacheStore(get_store_dir(resolve_from_context(ctx)))
    try:
        return asyncio.run(action(store))
    finally:
        store.close()


@generations_app.command("list")
def generations_list(ctx: typer.Context) -> None:
    """List stored generations.

    Example::

        cachewarden generations list
        cachewarden generations list --json
    """

    async def _list(store: Any) -> tuple[set[str], Any]:
        return await store.list_generations(), await store.current()

    labels, current = _with_store(ctx, _list)
    if not labels:
        info("No generations stored.")
        return
    rows = [[label, "yes" if label == current else ""] for label in sorted(labels)]
    print_table(["label", "current"], rows, title="Generations")


@generations_app.command("show")
def generations_show(
    ctx: typer.Context,
    label: str = typer.Argument(help="Generation label."),
) -> None:
    """Show the URLs stored in a generation.

    Example::

        cachewarden generations show bible-app-cache-v4
    """
    from cachewarden.cache import GenerationHandle

    async def _show(store: Any) -> Any:
        if label not in await store.list_generations():
            return None
        return {
            "label": label,
            "current": label == await store.current(),
            "entries": await store.entries(GenerationHandle(label)),
        }

    detail = _with_store(ctx, _show)
    if detail is None:
        error(f"No such generation: {label}")
        raise typer.Exit(code=2)
    format_response(detail)


@generations_app.command("evict")
def generations_evict(
    ctx: typer.Context,
    label: str = typer.Argument(help="Generation label."),
) -> None:
    """Delete a generation and all of its entries.

    The current generation cannot be evicted; install a newer build instead.

    Example::

        cachewarden generations evict bible-app-cache-v3
    """

    async def _evict(store: Any) -> tuple[bool, bool]:
        is_current = label == await store.current()
        return is_current, await store.evict(label)

    is_current, removed = _with_store(ctx, _evict)
    if is_current:
        warning(f"{label} is the current generation and was not evicted.")
        raise typer.Exit(code=1)
    if not removed:
        error(f"No such generation: {label}")
        raise typer.Exit(code=2)
    success(f"Evicted {label}")
