"""Versioned on-disk response store for cachewarden.

This package provides :class:`CacheStore`, which keeps one *generation* of
cached responses per application build in a single :mod:`diskcache`
directory, and :class:`GenerationHandle`, the token returned by
:meth:`CacheStore.open` that every read and write goes through.

The store is consumed by the lifecycle manager (seeding, eviction) and the
resolution strategy (lookups and write-backs).
"""

from cachewarden.cache.store import CacheStore, GenerationHandle

__all__ = ["CacheStore", "GenerationHandle"]
