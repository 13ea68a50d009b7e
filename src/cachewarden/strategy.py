"""Cache-first resolution with network fallback for intercepted requests.

:class:`ResolutionStrategy` answers an eligible request in this order:

1. A stored artifact in the current generation is returned as-is.  There is
   no freshness check; entries stay valid until a newer build replaces the
   generation.
2. On a miss the request goes to the network.  A 2xx response is written
   back to the store in the background and returned; any other status is
   returned untouched and never stored.
3. If the network fails and the request is a navigation, the cached shell
   document is returned instead.  Otherwise the failure propagates.

The lookup always completes before the network is touched.  Write-backs are
handed to a ``keep_alive`` callback (normally
:meth:`~cachewarden.router.TaskHandle.wait_until`) so they finish even if the
consumer abandons the request.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Optional

from cachewarden.cache import CacheStore, GenerationHandle
from cachewarden.classifier import absolute_url
from cachewarden.client import NetworkClient
from cachewarden.exceptions import CacheWriteError, NetworkFailure
from cachewarden.models import (
    AgentConfig,
    InterceptedRequest,
    RequestIdentity,
    ResponseArtifact,
)

logger = logging.getLogger(__name__)

KeepAlive = Callable[[Awaitable[Any]], Any]


class ResolutionSource(str, enum.Enum):
    """Where a resolved response came from."""

    CACHE = "cache"
    NETWORK = "network"
    FALLBACK = "fallback"
    PASSTHROUGH = "passthrough"


class ResolutionStrategy:
    """Resolve eligible requests against the store, then the network.

    Args:
        store: The shared generation store.
        network: Client used on cache misses.
        config: Agent configuration (origin, vary headers, navigation fallback).
    """

    def __init__(self, store: CacheStore, network: NetworkClient, config: AgentConfig) -> None:
        self._store = store
        self._network = network
        self._config = config
        self._writes: set[asyncio.Future[Any]] = set()

    async def resolve(
        self,
        request: InterceptedRequest,
        handle: GenerationHandle,
        keep_alive: Optional[KeepAlive] = None,
    ) -> ResponseArtifact:
        """Return the response for *request*.

        Raises:
            NetworkFailure: When the network is unreachable and no fallback
                applies.
        """
        artifact, _ = await self.resolve_with_source(request, handle, keep_alive)
        return artifact

    async def resolve_with_source(
        self,
        request: InterceptedRequest,
        handle: GenerationHandle,
        keep_alive: Optional[KeepAlive] = None,
    ) -> tuple[ResponseArtifact, ResolutionSource]:
        """Like :meth:`resolve` but also report where the response came from."""
        identity = RequestIdentity.from_request(request, self._config.vary_headers)

        cached = await self._store.lookup(handle, identity)
        if cached is not None:
            logger.debug("Cache hit for %s in %s", identity.url, handle.label)
            return cached, ResolutionSource.CACHE

        try:
            artifact = await self._network.fetch(request)
        except NetworkFailure as exc:
            logger.warning("Fetch failed for %s: %s", request.url, exc)
            if request.is_navigation:
                fallback = await self._navigation_fallback(handle)
                if fallback is not None:
                    return fallback, ResolutionSource.FALLBACK
            raise

        if artifact.ok:
            self._schedule_write(handle, identity, artifact, keep_alive)
        else:
            logger.debug("Not caching %s: HTTP %d", identity.url, artifact.status_code)
        return artifact, ResolutionSource.NETWORK

    async def flush(self) -> None:
        """Wait for write-backs that were not handed to a ``keep_alive`` callback."""
        while self._writes:
            await asyncio.wait(list(self._writes))

    async def _navigation_fallback(self, handle: GenerationHandle) -> Optional[ResponseArtifact]:
        if not self._config.origin:
            return None
        url = absolute_url(self._config.origin, self._config.navigation_fallback)
        shell = await self._store.lookup(handle, RequestIdentity.for_url(url))
        if shell is None:
            logger.error("Navigation failed and no shell is cached at %s", url)
        return shell

    def _schedule_write(
        self,
        handle: GenerationHandle,
        identity: RequestIdentity,
        artifact: ResponseArtifact,
        keep_alive: Optional[KeepAlive],
    ) -> None:
        write = self._write_back(handle, identity, artifact)
        if keep_alive is not None:
            keep_alive(write)
            return
        future = asyncio.ensure_future(write)
        self._writes.add(future)
        future.add_done_callback(self._writes.discard)

    async def _write_back(
        self,
        handle: GenerationHandle,
        identity: RequestIdentity,
        artifact: ResponseArtifact,
    ) -> None:
        try:
            await self._store.put(handle, identity, artifact)
        except CacheWriteError as exc:
            logger.warning("Cache put failed: %s", exc)
