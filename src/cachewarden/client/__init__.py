"""Network access for the agent.

Provides :class:`NetworkClient`, a thin wrapper around
:class:`httpx.AsyncClient` bound to the agent origin.  Every response is
materialised into an immutable :class:`~cachewarden.models.ResponseArtifact`
so it can be both returned to the consumer and written to the cache without
re-reading a stream.  Transport errors surface as
:class:`~cachewarden.exceptions.NetworkFailure`.

Example::

    from cachewarden.client import NetworkClient

    async with NetworkClient(config) as network:
        artifact = await network.fetch_path("/index.html")
"""

from cachewarden.client.network import NetworkClient, artifact_from_response

__all__ = ["NetworkClient", "artifact_from_response"]
