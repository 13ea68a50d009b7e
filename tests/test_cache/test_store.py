"""Tests for the generation-aware CacheStore."""

from __future__ import annotations

import asyncio

import pytest

from cachewarden.cache import CacheStore, GenerationHandle
from cachewarden.exceptions import CacheWriteError, NetworkFailure, SeedPartialFailure
from cachewarden.models import RequestIdentity, ResponseArtifact

ORIGIN = "http://localhost:5173"


@pytest.fixture()
def store(tmp_path):
    """Create a CacheStore under tmp_path."""
    s = CacheStore(tmp_path / "store")
    yield s
    s.close()


def _artifact(body: bytes = b"<html></html>", status_code: int = 200) -> ResponseArtifact:
    return ResponseArtifact(
        status_code=status_code,
        headers={"content-type": "text/html"},
        body=body,
    )


def _identity(path: str) -> RequestIdentity:
    return RequestIdentity.for_url(f"{ORIGIN}{path}")


class FakeFetcher:
    """Async fetcher over a dict of path -> artifact; missing paths fail."""

    def __init__(self, responses: dict[str, ResponseArtifact]) -> None:
        self.responses = responses
        self.calls: list[str] = []

    async def __call__(self, path: str) -> ResponseArtifact:
        self.calls.append(path)
        if path not in self.responses:
            raise NetworkFailure(f"Connection failed: {path}")
        return self.responses[path]


# ------------------------------------------------------------------ #
# Generations
# ------------------------------------------------------------------ #


class TestGenerations:
    def test_open_creates_generation(self, store: CacheStore) -> None:
        handle = asyncio.run(store.open("app-v1"))
        assert handle == GenerationHandle("app-v1")
        assert asyncio.run(store.list_generations()) == {"app-v1"}

    def test_open_is_idempotent(self, store: CacheStore) -> None:
        """Opening twice yields the same generation and keeps its entries."""

        async def scenario():
            first = await store.open("app-v1")
            await store.put(first, _identity("/"), _artifact())
            second = await store.open("app-v1")
            return second, await store.lookup(second, _identity("/"))

        second, hit = asyncio.run(scenario())
        assert second.label == "app-v1"
        assert hit is not None
        assert asyncio.run(store.list_generations()) == {"app-v1"}

    def test_open_rejects_empty_label(self, store: CacheStore) -> None:
        with pytest.raises(ValueError):
            asyncio.run(store.open(""))

    def test_list_generations_empty(self, store: CacheStore) -> None:
        assert asyncio.run(store.list_generations()) == set()

    def test_current_is_none_before_promotion(self, store: CacheStore) -> None:
        assert asyncio.run(store.current()) is None

    def test_promote_persists_across_instances(self, tmp_path) -> None:
        first = CacheStore(tmp_path / "store")
        asyncio.run(first.open("app-v1"))
        asyncio.run(first.promote("app-v1"))
        first.close()

        second = CacheStore(tmp_path / "store")
        try:
            assert asyncio.run(second.current()) == "app-v1"
        finally:
            second.close()


# ------------------------------------------------------------------ #
# Lookup / put
# ------------------------------------------------------------------ #


class TestLookupPut:
    def test_miss_returns_none(self, store: CacheStore) -> None:
        handle = asyncio.run(store.open("app-v1"))
        assert asyncio.run(store.lookup(handle, _identity("/missing"))) is None

    def test_put_then_lookup(self, store: CacheStore) -> None:
        async def scenario():
            handle = await store.open("app-v1")
            await store.put(handle, _identity("/index.html"), _artifact(b"index"))
            return await store.lookup(handle, _identity("/index.html"))

        hit = asyncio.run(scenario())
        assert hit is not None
        assert hit.body == b"index"
        assert hit.status_code == 200
        assert hit.url == f"{ORIGIN}/index.html"

    def test_put_replaces_previous_artifact(self, store: CacheStore) -> None:
        async def scenario():
            handle = await store.open("app-v1")
            await store.put(handle, _identity("/"), _artifact(b"old"))
            await store.put(handle, _identity("/"), _artifact(b"new"))
            return await store.lookup(handle, _identity("/"))

        assert asyncio.run(scenario()).body == b"new"

    def test_put_rejects_non_2xx(self, store: CacheStore) -> None:
        async def scenario():
            handle = await store.open("app-v1")
            with pytest.raises(CacheWriteError):
                await store.put(handle, _identity("/gone"), _artifact(status_code=404))
            return await store.lookup(handle, _identity("/gone"))

        assert asyncio.run(scenario()) is None

    def test_put_into_unknown_generation_fails(self, store: CacheStore) -> None:
        with pytest.raises(CacheWriteError):
            asyncio.run(store.put(GenerationHandle("nope"), _identity("/"), _artifact()))

    def test_generations_are_isolated(self, store: CacheStore) -> None:
        async def scenario():
            v1 = await store.open("app-v1")
            v2 = await store.open("app-v2")
            await store.put(v1, _identity("/"), _artifact(b"v1"))
            return await store.lookup(v2, _identity("/"))

        assert asyncio.run(scenario()) is None

    def test_fragment_does_not_change_identity(self, store: CacheStore) -> None:
        async def scenario():
            handle = await store.open("app-v1")
            await store.put(handle, RequestIdentity.for_url(f"{ORIGIN}/page#top"), _artifact())
            return await store.lookup(handle, _identity("/page"))

        assert asyncio.run(scenario()) is not None

    def test_entries_lists_urls(self, store: CacheStore) -> None:
        async def scenario():
            handle = await store.open("app-v1")
            await store.put(handle, _identity("/b"), _artifact())
            await store.put(handle, _identity("/a"), _artifact())
            return await store.entries(handle)

        assert asyncio.run(scenario()) == [f"{ORIGIN}/a", f"{ORIGIN}/b"]


# ------------------------------------------------------------------ #
# Eviction
# ------------------------------------------------------------------ #


class TestEvict:
    def test_evict_removes_generation_and_entries(self, store: CacheStore) -> None:
        async def scenario():
            old = await store.open("app-v1")
            await store.put(old, _identity("/"), _artifact())
            removed = await store.evict("app-v1")
            return removed, await store.list_generations(), await store.lookup(old, _identity("/"))

        removed, labels, hit = asyncio.run(scenario())
        assert removed is True
        assert labels == set()
        assert hit is None

    def test_evict_unknown_returns_false(self, store: CacheStore) -> None:
        assert asyncio.run(store.evict("never-existed")) is False

    def test_evict_refuses_current_generation(self, store: CacheStore) -> None:
        async def scenario():
            await store.open("app-v2")
            await store.promote("app-v2")
            removed = await store.evict("app-v2")
            return removed, await store.list_generations()

        removed, labels = asyncio.run(scenario())
        assert removed is False
        assert labels == {"app-v2"}


# ------------------------------------------------------------------ #
# Seeding
# ------------------------------------------------------------------ #


class TestSeed:
    def test_seed_stores_every_path(self, store: CacheStore) -> None:
        """Every manifest path is stored with its fetched status and body."""
        manifest = ["/", "/index.html", "/manifest.json"]
        fetch = FakeFetcher({path: _artifact(path.encode()) for path in manifest})

        async def scenario():
            handle = await store.open("app-v1")
            await store.seed(handle, manifest, fetch, ORIGIN)
            return [await store.lookup(handle, _identity(p)) for p in manifest]

        hits = asyncio.run(scenario())
        assert all(hit is not None and hit.status_code == 200 for hit in hits)
        assert [hit.body for hit in hits] == [p.encode() for p in manifest]

    def test_seed_skips_paths_already_present(self, store: CacheStore) -> None:
        fetch = FakeFetcher({"/": _artifact(b"fresh"), "/index.html": _artifact()})

        async def scenario():
            handle = await store.open("app-v1")
            await store.put(handle, _identity("/"), _artifact(b"seeded earlier"))
            await store.seed(handle, ["/", "/index.html"], fetch, ORIGIN)
            return await store.lookup(handle, _identity("/"))

        hit = asyncio.run(scenario())
        assert fetch.calls == ["/index.html"]
        assert hit.body == b"seeded earlier"

    def test_partial_failure_keeps_reachable_paths(self, store: CacheStore) -> None:
        """One unreachable path is reported; the others are still stored."""
        fetch = FakeFetcher({"/": _artifact(), "/manifest.json": _artifact()})

        async def scenario():
            handle = await store.open("app-v1")
            with pytest.raises(SeedPartialFailure) as exc_info:
                await store.seed(handle, ["/", "/index.html", "/manifest.json"], fetch, ORIGIN)
            stored = [
                await store.lookup(handle, _identity(p))
                for p in ["/", "/index.html", "/manifest.json"]
            ]
            return exc_info.value, stored

        error, stored = asyncio.run(scenario())
        assert set(error.failures) == {"/index.html"}
        assert error.attempted == 3
        assert error.total is False
        assert stored[0] is not None and stored[2] is not None
        assert stored[1] is None

    def test_non_2xx_counts_as_failure(self, store: CacheStore) -> None:
        fetch = FakeFetcher({"/": _artifact(), "/missing": _artifact(status_code=404)})

        async def scenario():
            handle = await store.open("app-v1")
            with pytest.raises(SeedPartialFailure) as exc_info:
                await store.seed(handle, ["/", "/missing"], fetch, ORIGIN)
            return exc_info.value

        error = asyncio.run(scenario())
        assert error.failures == {"/missing": "HTTP 404"}

    def test_total_failure(self, store: CacheStore) -> None:
        fetch = FakeFetcher({})

        async def scenario():
            handle = await store.open("app-v1")
            with pytest.raises(SeedPartialFailure) as exc_info:
                await store.seed(handle, ["/", "/index.html"], fetch, ORIGIN)
            return exc_info.value

        assert asyncio.run(scenario()).total is True

    def test_empty_manifest_is_a_no_op(self, store: CacheStore) -> None:
        fetch = FakeFetcher({})
        handle = asyncio.run(store.open("app-v1"))
        asyncio.run(store.seed(handle, [], fetch, ORIGIN))
        assert fetch.calls == []


class TestStats:
    def test_stats_reports_directory_and_size(self, store: CacheStore, tmp_path) -> None:
        asyncio.run(store.open("app-v1"))
        stats = store.stats()
        assert stats["directory"] == str(tmp_path / "store")
        assert stats["size"] == 1
        assert stats["volume"] > 0
