"""Decide which outbound requests the agent intercepts.

Only same-origin GET requests are eligible.  Everything else (writes, and
any request to a third party such as a CDN) is skipped and goes straight to
the network, so the agent never stalls on an unreachable foreign host and
never stores the result of a side-effecting request.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlsplit

from cachewarden.models import Classification, InterceptedRequest

_DEFAULT_PORTS = {"http": 80, "https": 443}


def origin_of(url: str) -> tuple[str, str, int | None]:
    """Return the ``(scheme, host, port)`` triple of *url* with default ports filled in."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is None:
        port = _DEFAULT_PORTS.get(scheme)
    return scheme, (parts.hostname or "").lower(), port


def same_origin(url: str, origin: str) -> bool:
    return origin_of(url) == origin_of(origin)


def absolute_url(origin: str, target: str) -> str:
    """Resolve *target* (a path or absolute URL) against *origin*."""
    return urljoin(origin.rstrip("/") + "/", target)


def classify(request: InterceptedRequest, origin: str) -> Classification:
    """Classify *request* as eligible for interception or to be skipped.

    Args:
        request: The outbound request.
        origin: The agent's own origin, e.g. ``http://localhost:5173``.

    Returns:
        :attr:`Classification.SKIP` for non-GET or cross-origin requests,
        :attr:`Classification.ELIGIBLE` otherwise.
    """
    if request.method != "GET":
        return Classification.SKIP
    if not same_origin(request.url, origin):
        return Classification.SKIP
    return Classification.ELIGIBLE
