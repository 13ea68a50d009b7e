"""Disk-backed, generation-versioned store of response artifacts.

Uses :mod:`diskcache` to persist :class:`~cachewarden.models.ResponseArtifact`
snapshots keyed by :class:`~cachewarden.models.RequestIdentity`.  All
generations share one :class:`diskcache.Cache` opened with ``tag_index=True``;
every entry is tagged with its generation label so a whole generation can be
dropped with a single :meth:`diskcache.Cache.evict` call.

Key layout::

    ("generation", label)             -> creation timestamp   (tag=label)
    ("entry", label, identity.key)    -> artifact dict         (tag=label)
    ("current",)                      -> label of the current generation

diskcache commits each ``set`` in its own SQLite transaction, so concurrent
writers to the same identity are last-write-wins and a reader never sees a
half-written artifact.  The calls themselves are blocking; every public
method runs them through :func:`asyncio.to_thread` so the event loop is never
held up by disk I/O.

Only 2xx artifacts are admitted.  Artifacts are never updated in place,
only replaced.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional

import diskcache

from cachewarden.classifier import absolute_url
from cachewarden.exceptions import (
    CacheWardenError,
    CacheWriteError,
    SeedPartialFailure,
)
from cachewarden.models import RequestIdentity, ResponseArtifact

logger = logging.getLogger(__name__)

_GENERATION = "generation"
_ENTRY = "entry"
_CURRENT = ("current",)
_ALREADY_PRESENT = "present"

_STORAGE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)

Fetcher = Callable[[str], Awaitable[ResponseArtifact]]
"""Async callable fetching one manifest path, as used by :meth:`CacheStore.seed`."""


@dataclass(frozen=True)
class GenerationHandle:
    """Opaque reference to one cache generation, returned by :meth:`CacheStore.open`."""

    label: str


class CacheStore:
    """Versioned store of response artifacts.

    Args:
        directory: Directory holding the diskcache database.  Created on
            first use.

    Example::

        store = CacheStore("/tmp/cachewarden")
        handle = await store.open("app-v2")
        await store.put(handle, RequestIdentity.for_url(url), artifact)
        hit = await store.lookup(handle, RequestIdentity.for_url(url))
        store.close()
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._cache = diskcache.Cache(str(self._directory), tag_index=True)

    @property
    def directory(self) -> Path:
        return self._directory

    # ------------------------------------------------------------------ #
    # Generations
    # ------------------------------------------------------------------ #

    async def open(self, label: str) -> GenerationHandle:
        """Open generation *label*, creating it if absent.  Idempotent."""
        if not label:
            raise ValueError("Generation label must be a non-empty string")
        try:
            await asyncio.to_thread(
                self._cache.add, (_GENERATION, label), time.time(), tag=label
            )
        except _STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Cannot create generation '{label}': {exc}") from exc
        return GenerationHandle(label)

    async def list_generations(self) -> set[str]:
        """Return the labels of every stored generation."""
        return await asyncio.to_thread(self._scan_generations)

    async def current(self) -> Optional[str]:
        """Return the label of the current generation, or ``None`` before any activation."""
        return await asyncio.to_thread(self._cache.get, _CURRENT)

    async def promote(self, label: str) -> None:
        """Persist *label* as the current generation.

        Only the lifecycle manager calls this; it is the single writer of the
        current-generation pointer.
        """
        try:
            await asyncio.to_thread(self._cache.set, _CURRENT, label)
        except _STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Cannot promote generation '{label}': {exc}") from exc

    async def evict(self, label: str) -> bool:
        """Remove generation *label* and all of its entries.

        Evicting the current generation is refused and returns ``False``;
        so is evicting a generation that does not exist.
        """
        if label == await self.current():
            logger.warning("Refusing to evict current generation %s", label)
            return False
        removed = await asyncio.to_thread(self._cache.evict, label)
        if removed:
            logger.info("Evicted generation %s (%d keys)", label, removed)
        return bool(removed)

    # ------------------------------------------------------------------ #
    # Entries
    # ------------------------------------------------------------------ #

    async def lookup(
        self, handle: GenerationHandle, identity: RequestIdentity
    ) -> Optional[ResponseArtifact]:
        """Return the artifact stored for *identity* in *handle*, or ``None``."""
        data = await asyncio.to_thread(
            self._cache.get, (_ENTRY, handle.label, identity.key)
        )
        if data is None:
            return None
        return ResponseArtifact.model_validate(data)

    async def put(
        self,
        handle: GenerationHandle,
        identity: RequestIdentity,
        artifact: ResponseArtifact,
    ) -> None:
        """Store *artifact* under *identity*, replacing any previous artifact.

        Raises:
            CacheWriteError: If the status is outside 2xx, the generation no
                longer exists, or the underlying storage fails.
        """
        if not artifact.ok:
            raise CacheWriteError(
                f"Refusing to cache {identity.url}: HTTP {artifact.status_code}"
            )
        try:
            await asyncio.to_thread(self._write, handle.label, identity, artifact)
        except _STORAGE_ERRORS as exc:
            raise CacheWriteError(f"Failed to cache {identity.url}: {exc}") from exc

    async def seed(
        self,
        handle: GenerationHandle,
        manifest: Iterable[str],
        fetch: Fetcher,
        origin: str,
    ) -> None:
        """Fill *handle* with every manifest path that is not stored yet.

        Paths are fetched concurrently.  A path that cannot be fetched,
        answers with a non-2xx status, or cannot be written is recorded and
        skipped; the rest of the seed carries on.

        Args:
            handle: Generation to fill.
            manifest: Paths relative to *origin*.
            fetch: Async callable returning the artifact for a path.
            origin: Origin the paths are resolved against for their identity.

        Raises:
            SeedPartialFailure: After all reachable paths have been written,
                if at least one path failed.
        """
        paths = list(manifest)
        outcomes = await asyncio.gather(
            *(self._seed_one(handle, path, fetch, origin) for path in paths)
        )
        attempted = sum(1 for reason in outcomes if reason != _ALREADY_PRESENT)
        failures = {
            path: reason
            for path, reason in zip(paths, outcomes)
            if reason and reason != _ALREADY_PRESENT
        }
        if failures:
            raise SeedPartialFailure(failures, attempted)

    async def entries(self, handle: GenerationHandle) -> list[str]:
        """Return the URLs stored in *handle*, sorted."""
        return await asyncio.to_thread(self._scan_entries, handle.label)

    def stats(self) -> dict[str, Any]:
        """Return store statistics: ``directory``, ``size`` (keys) and ``volume`` (bytes)."""
        return {
            "directory": str(self._directory),
            "size": len(self._cache),
            "volume": self._cache.volume(),
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        self._cache.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _seed_one(
        self, handle: GenerationHandle, path: str, fetch: Fetcher, origin: str
    ) -> str:
        """Seed one path and return ``""`` on success or a failure reason."""
        identity = RequestIdentity.for_url(absolute_url(origin, path))
        if await self.lookup(handle, identity) is not None:
            return _ALREADY_PRESENT
        try:
            artifact = await fetch(path)
            if not artifact.ok:
                return f"HTTP {artifact.status_code}"
            await self.put(handle, identity, artifact)
        except CacheWardenError as exc:
            logger.debug("Seeding %s failed: %s", path, exc)
            return str(exc)
        return ""

    def _write(self, label: str, identity: RequestIdentity, artifact: ResponseArtifact) -> None:
        if (_GENERATION, label) not in self._cache:
            raise CacheWriteError(f"Generation '{label}' does not exist")
        data = artifact.model_dump()
        data["url"] = data["url"] or identity.url
        self._cache.set((_ENTRY, label, identity.key), data, tag=label)

    def _scan_generations(self) -> set[str]:
        labels: set[str] = set()
        for key in self._cache.iterkeys():
            if isinstance(key, tuple) and len(key) == 2 and key[0] == _GENERATION:
                labels.add(key[1])
        return labels

    def _scan_entries(self, label: str) -> list[str]:
        urls: list[str] = []
        for key in self._cache.iterkeys():
            if isinstance(key, tuple) and len(key) == 3 and key[0] == _ENTRY and key[1] == label:
                data = self._cache.get(key)
                if data is not None:
                    urls.append(data.get("url", ""))
        return sorted(urls)

