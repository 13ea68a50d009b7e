"""Asynchronous HTTP client used for interception misses, seeding and sync hooks.

:class:`NetworkClient` wraps :class:`httpx.AsyncClient` with the agent's
request settings (timeout, SSL verification, connection retries) and maps
request failures (transport errors, redirect loops, undecodable bodies) onto
:class:`~cachewarden.exceptions.NetworkFailure`.
HTTP error statuses are *not* exceptions here: a 404 is a perfectly good
response to hand back to the consumer, it just never gets cached.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from cachewarden.classifier import absolute_url
from cachewarden.exceptions import NetworkFailure
from cachewarden.models import AgentConfig, InterceptedRequest, ResponseArtifact

logger = logging.getLogger(__name__)


def artifact_from_response(response: httpx.Response) -> ResponseArtifact:
    """Snapshot a fully read :class:`httpx.Response` into a :class:`ResponseArtifact`."""
    try:
        url = str(response.request.url)
    except RuntimeError:
        url = ""
    return ResponseArtifact(
        url=url,
        status_code=response.status_code,
        reason=response.reason_phrase or "",
        headers=dict(response.headers),
        body=response.content,
    )


class NetworkClient:
    """Asynchronous HTTP client bound to one origin.

    Must be used as an async context manager.  A custom *transport* can be
    supplied to route requests somewhere other than the real network
    (tests pass an :class:`httpx.MockTransport`).

    Args:
        config: Agent configuration; ``origin`` and ``request`` are used.
        transport: Optional :class:`httpx.AsyncBaseTransport` override.

    Example::

        async with NetworkClient(config) as network:
            artifact = await network.fetch(request)
    """

    def __init__(
        self,
        config: AgentConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> NetworkClient:
        settings = self._config.request
        self._client = httpx.AsyncClient(
            base_url=self._config.origin or "",
            timeout=settings.timeout,
            verify=settings.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def fetch(self, request: InterceptedRequest) -> ResponseArtifact:
        """Send *request* over the network and snapshot the response.

        Raises:
            NetworkFailure: On connection, timeout or other transport errors
                after all retries are exhausted.
        """
        return await self._send(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body,
        )

    async def fetch_path(self, path: str) -> ResponseArtifact:
        """GET *path* relative to the agent origin."""
        return await self._send("GET", self._absolute(path))

    async def get_json(self, path: str) -> ResponseArtifact:
        """GET *path* asking for JSON, as the update check does."""
        return await self._send(
            "GET",
            self._absolute(path),
            headers={"Content-Type": "application/json"},
        )

    async def post_json(self, path: str, payload: Any) -> ResponseArtifact:
        """POST *payload* as JSON to *path* relative to the agent origin."""
        return await self._send("POST", self._absolute(path), json_body=payload)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _absolute(self, path: str) -> str:
        if not self._config.origin:
            return path
        return absolute_url(self._config.origin, path)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        content: Optional[bytes] = None,
        json_body: Any = None,
    ) -> ResponseArtifact:
        """Execute the request, retrying connection errors with exponential backoff.

        The delay doubles each attempt: 1 s, 2 s, 4 s, ...  Status codes are
        never retried.
        """
        if self._client is None:
            raise NetworkFailure("Network client not initialised -- use as async context manager")

        max_retries = self._config.request.max_retries
        kwargs: dict[str, Any] = {"headers": headers or {}}
        if json_body is not None:
            kwargs["json"] = json_body
        elif content is not None:
            kwargs["content"] = content

        for attempt in range(max_retries + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                return artifact_from_response(response)
            except httpx.TransportError as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error for %s %s: %s, retrying in %ss (attempt %d/%d)",
                        method, url, exc, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkFailure(
                    f"{method} {url} failed after {max_retries + 1} attempt(s): {exc}"
                ) from exc
            except httpx.RequestError as exc:
                # Redirect loops and undecodable bodies are not retried.
                raise NetworkFailure(f"{method} {url} failed: {exc}") from exc

        raise NetworkFailure(f"{method} {url} failed")  # pragma: no cover
