"""Fetch command -- route one request through the agent.

The request is classified exactly as an intercepted consumer request would
be: eligible requests are answered cache-first, everything else goes
straight to the network.  The status line and where the response came from
(``cache``, ``network``, ``fallback``, ``passthrough``) are printed to
stderr; the body goes to stdout.
"""

from __future__ import annotations

from typing import Optional

import typer

from cachewarden.commands._session import resolve_from_context, run_with_agent
from cachewarden.output import error


def _parse_headers(values: Optional[list[str]]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values or []:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            error(f"Invalid header (expected 'Name: value'): {raw}")
            raise typer.Exit(code=2)
        headers[name.strip()] = value.strip()
    return headers


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL, or a path resolved against the origin."),
    navigate: bool = typer.Option(
        False, "--navigate", help="Treat the request as a page navigation."
    ),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header as 'Name: value'. Repeatable."
    ),
) -> None:
    """Resolve a request the way a consumer of the agent would see it.

    The agent first picks up the generation activated by an earlier
    ``install``.  Without one, eligible requests fall through to the network.

    Example::

        cachewarden fetch /index.html
        cachewarden fetch / --navigate
        cachewarden fetch https://cdn.example/lib.js
    """
    from cachewarden.agent import OfflineAgent
    from cachewarden.classifier import absolute_url
    from cachewarden.client.response import format_artifact
    from cachewarden.models import InterceptedRequest, RequestMode

    config = resolve_from_context(ctx)
    if not config.origin:
        error("No origin configured; pass --origin or set CACHEWARDEN_ORIGIN")
        raise typer.Exit(code=2)

    request = InterceptedRequest(
        method=method,
        url=absolute_url(config.origin, url),
        headers=_parse_headers(header),
        mode=RequestMode.NAVIGATE if navigate else RequestMode.SAME_ORIGIN,
    )

    async def _fetch(agent: OfflineAgent):
        await agent.resume()
        return await agent.intercept(request)

    artifact, source = run_with_agent(ctx, _fetch)
    format_artifact(artifact, source.value)
