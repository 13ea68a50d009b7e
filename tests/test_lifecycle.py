"""Tests for the install/activate state machine and the registration."""

from __future__ import annotations

import asyncio

import pytest

from cachewarden.cache import CacheStore
from cachewarden.exceptions import LifecycleError, NetworkFailure
from cachewarden.host import Clients
from cachewarden.lifecycle import LifecycleManager, Registration
from cachewarden.models import LifecycleState, RequestIdentity, ResponseArtifact

ORIGIN = "http://localhost:5173"
SHELL = ["/", "/index.html", "/manifest.json"]


async def _fetch_all(path: str) -> ResponseArtifact:
    return ResponseArtifact(status_code=200, body=path.encode())


def _fetch_except(*unreachable: str):
    async def fetch(path: str) -> ResponseArtifact:
        if path in unreachable:
            raise NetworkFailure(f"GET {path} failed")
        return ResponseArtifact(status_code=200, body=path.encode())

    return fetch


@pytest.fixture()
def store(tmp_path):
    s = CacheStore(tmp_path / "store")
    yield s
    s.close()


@pytest.fixture()
def clients():
    return Clients(ORIGIN, opener=lambda url: None)


def _manager(store, clients, label: str, manifest=SHELL) -> LifecycleManager:
    return LifecycleManager(store, clients, label, manifest, ORIGIN)


# ------------------------------------------------------------------ #
# Single build
# ------------------------------------------------------------------ #


class TestInstall:
    def test_starts_parsed(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        assert manager.state == LifecycleState.PARSED
        assert not manager.accepts_requests

    def test_handle_unavailable_before_install(self, store, clients) -> None:
        with pytest.raises(LifecycleError):
            _manager(store, clients, "app-v1").handle

    def test_install_seeds_shell_and_waits(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")

        async def scenario():
            error = await manager.install(_fetch_all)
            hits = [
                await store.lookup(manager.handle, RequestIdentity.for_url(f"{ORIGIN}{p}"))
                for p in SHELL
            ]
            return error, hits

        error, hits = asyncio.run(scenario())
        assert error is None
        assert manager.state == LifecycleState.WAITING
        assert all(hit is not None for hit in hits)

    def test_partial_seed_still_reaches_active(self, store, clients) -> None:
        """An unreachable shell resource is reported but does not block activation."""
        manager = _manager(store, clients, "app-v1")

        async def scenario():
            error = await manager.install(_fetch_except("/manifest.json"))
            await manager.activate()
            return error

        error = asyncio.run(scenario())
        assert error is not None
        assert set(error.failures) == {"/manifest.json"}
        assert manager.state == LifecycleState.ACTIVE

    def test_total_seed_failure_still_reaches_active(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")

        async def scenario():
            error = await manager.install(_fetch_except(*SHELL))
            await manager.activate()
            return error

        error = asyncio.run(scenario())
        assert error.total
        assert manager.state == LifecycleState.ACTIVE

    def test_install_twice_is_illegal(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        asyncio.run(manager.install(_fetch_all))
        with pytest.raises(LifecycleError):
            asyncio.run(manager.install(_fetch_all))

    def test_activate_before_install_is_illegal(self, store, clients) -> None:
        with pytest.raises(LifecycleError):
            asyncio.run(_manager(store, clients, "app-v1").activate())


class TestActivate:
    def test_activation_evicts_every_other_generation(self, store, clients) -> None:
        """After activation only the active build's label remains in the store."""

        async def scenario():
            await store.open("app-v1")
            await store.open("app-v2")
            await store.open("scratch")
            manager = _manager(store, clients, "app-v3")
            await manager.install(_fetch_all)
            evicted = await manager.activate()
            return evicted, await store.list_generations(), await store.current()

        evicted, labels, current = asyncio.run(scenario())
        assert evicted == {"app-v1", "app-v2", "scratch"}
        assert labels == {"app-v3"}
        assert current == "app-v3"

    def test_activation_claims_clients(self, store, clients) -> None:
        tab = clients.connect("/")
        manager = _manager(store, clients, "app-v1")

        async def scenario():
            await manager.install(_fetch_all)
            await manager.activate()

        asyncio.run(scenario())
        assert tab.controller == "app-v1"

    def test_old_generation_served_until_activation(self, store, clients) -> None:
        """Installing a new build does not touch the active build's generation."""

        async def scenario():
            old = _manager(store, clients, "app-v1")
            await old.install(_fetch_all)
            await old.activate()
            new = _manager(store, clients, "app-v2")
            await new.install(_fetch_all)
            during = await store.list_generations()
            await new.activate()
            return during, await store.list_generations()

        during, after = asyncio.run(scenario())
        assert during == {"app-v1", "app-v2"}
        assert after == {"app-v2"}


class TestRedundant:
    def test_mark_redundant_is_idempotent(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        manager.mark_redundant()
        manager.mark_redundant()
        assert manager.state == LifecycleState.REDUNDANT
        assert not manager.accepts_requests

    def test_redundant_cannot_activate(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        asyncio.run(manager.install(_fetch_all))
        manager.mark_redundant()
        with pytest.raises(LifecycleError):
            asyncio.run(manager.activate())


class TestResume:
    def test_resume_goes_straight_to_active(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        handle = asyncio.run(store.open("app-v1"))
        manager.resume(handle)
        assert manager.state == LifecycleState.ACTIVE
        assert manager.handle == handle

    def test_resume_rejects_foreign_handle(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        handle = asyncio.run(store.open("app-v0"))
        with pytest.raises(LifecycleError):
            manager.resume(handle)

    def test_resume_only_from_parsed(self, store, clients) -> None:
        manager = _manager(store, clients, "app-v1")
        asyncio.run(manager.install(_fetch_all))
        with pytest.raises(LifecycleError):
            manager.resume(manager.handle)


# ------------------------------------------------------------------ #
# Registration
# ------------------------------------------------------------------ #


class TestRegistration:
    def test_first_build_activates_without_skip_waiting(self, store, clients) -> None:
        registration = Registration(clients)
        clients.connect("/")
        manager = _manager(store, clients, "app-v1")

        async def scenario():
            registration.begin_install(manager)
            await manager.install(_fetch_all)
            registration.finish_install(manager)
            ready = registration.ready_to_activate
            await registration.activate_waiting()
            return ready

        assert asyncio.run(scenario()) is True
        assert registration.active is manager
        assert registration.waiting is None
        assert registration.installing is None

    def test_waits_while_clients_connected(self, store, clients) -> None:
        """Without skip-waiting a new build waits until every consumer is gone."""
        registration = Registration(clients)
        tab = clients.connect("/")

        async def scenario():
            old = _manager(store, clients, "app-v1")
            registration.begin_install(old)
            await old.install(_fetch_all)
            registration.finish_install(old)
            await registration.activate_waiting()

            new = _manager(store, clients, "app-v2")
            registration.begin_install(new)
            await new.install(_fetch_all)
            registration.finish_install(new)
            blocked = registration.ready_to_activate
            clients.disconnect(tab.id)
            unblocked = registration.ready_to_activate
            await registration.activate_waiting()
            return old, new, blocked, unblocked

        old, new, blocked, unblocked = asyncio.run(scenario())
        assert blocked is False
        assert unblocked is True
        assert registration.active is new
        assert old.state == LifecycleState.REDUNDANT

    def test_skip_waiting_activates_despite_clients(self, store, clients) -> None:
        registration = Registration(clients)
        clients.connect("/")

        async def scenario():
            old = _manager(store, clients, "app-v1")
            registration.begin_install(old)
            await old.install(_fetch_all)
            registration.finish_install(old)
            await registration.activate_waiting()

            new = _manager(store, clients, "app-v2")
            registration.begin_install(new)
            await new.install(_fetch_all)
            new.skip_waiting()
            registration.finish_install(new)
            return registration.ready_to_activate

        assert asyncio.run(scenario()) is True

    def test_newer_install_retires_older_waiting_build(self, store, clients) -> None:
        registration = Registration(clients)
        first = _manager(store, clients, "app-v2")
        second = _manager(store, clients, "app-v3")

        async def scenario():
            registration.begin_install(first)
            await first.install(_fetch_all)
            registration.finish_install(first)
            registration.begin_install(second)
            await second.install(_fetch_all)
            registration.finish_install(second)

        asyncio.run(scenario())
        assert first.state == LifecycleState.REDUNDANT
        assert registration.waiting is second

    def test_activate_with_nothing_waiting(self, clients) -> None:
        assert asyncio.run(Registration(clients).activate_waiting()) is None
