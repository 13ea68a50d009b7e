"""Install/activate state machine for one build of the agent.

Every deployed build gets its own :class:`LifecycleManager`, constructed with
that build's generation label.  The manager walks through::

    PARSED -> INSTALLING -> WAITING -> ACTIVATING -> ACTIVE -> REDUNDANT

* **Installing** opens the build's generation and seeds it with the app
  shell.  Unreachable shell resources are logged and skipped; even a seed in
  which nothing could be fetched still moves on (degraded-cache mode).
* **Waiting** is left immediately when the manager asked to skip waiting,
  which is the default policy: the newest build takes over at once instead of
  waiting for every consumer to close, accepting that a consumer may briefly
  mix old and new assets.
* **Activating** makes the build's generation current, evicts every other
  generation, then claims all connected consumers.
* **Redundant** is reached when a newer build replaces this one.  A redundant
  manager takes no new requests; work already in flight finishes.

:class:`Registration` tracks which manager is installing, waiting and active
across successive builds and decides when a waiting build may activate.
"""

from __future__ import annotations

import logging
from typing import Optional

from cachewarden.cache import CacheStore, GenerationHandle
from cachewarden.cache.store import Fetcher
from cachewarden.exceptions import CacheWriteError, LifecycleError, SeedPartialFailure
from cachewarden.host import Clients
from cachewarden.models import LifecycleState

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.PARSED: {LifecycleState.INSTALLING, LifecycleState.REDUNDANT},
    LifecycleState.INSTALLING: {LifecycleState.WAITING, LifecycleState.REDUNDANT},
    LifecycleState.WAITING: {LifecycleState.ACTIVATING, LifecycleState.REDUNDANT},
    LifecycleState.ACTIVATING: {LifecycleState.ACTIVE, LifecycleState.REDUNDANT},
    LifecycleState.ACTIVE: {LifecycleState.REDUNDANT},
    LifecycleState.REDUNDANT: set(),
}


class LifecycleManager:
    """State machine for one build.

    Args:
        store: The shared generation store.
        clients: Consumer registry claimed on activation.
        build_label: Generation label of this build.
        manifest: App-shell paths to seed on install.
        origin: Origin the manifest paths belong to.
    """

    def __init__(
        self,
        store: CacheStore,
        clients: Clients,
        build_label: str,
        manifest: list[str],
        origin: str,
    ) -> None:
        self._store = store
        self._clients = clients
        self._label = build_label
        self._manifest = list(manifest)
        self._origin = origin
        self._state = LifecycleState.PARSED
        self._skip_waiting = False
        self._handle: Optional[GenerationHandle] = None
        self.seed_error: Optional[SeedPartialFailure] = None

    def __repr__(self) -> str:
        return f"LifecycleManager({self._label!r}, state={self._state.value})"

    @property
    def label(self) -> str:
        return self._label

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def handle(self) -> GenerationHandle:
        """Handle of this build's generation.  Available once installing has begun."""
        if self._handle is None:
            raise LifecycleError(f"Generation '{self._label}' has not been opened yet")
        return self._handle

    @property
    def accepts_requests(self) -> bool:
        """Whether new interceptions may be routed through this build."""
        return self._state == LifecycleState.ACTIVE

    @property
    def skip_waiting_requested(self) -> bool:
        return self._skip_waiting

    def skip_waiting(self) -> None:
        """Ask to move from WAITING to ACTIVATING without waiting for consumers to close."""
        self._skip_waiting = True

    async def install(self, fetch: Fetcher) -> Optional[SeedPartialFailure]:
        """Open and seed this build's generation, then move to WAITING.

        Returns:
            The seed failure, if any resources could not be stored.
        """
        self._transition(LifecycleState.INSTALLING)
        logger.info("Installing %s", self._label)

        try:
            self._handle = await self._store.open(self._label)
        except CacheWriteError as exc:
            logger.error("Cannot open generation %s: %s", self._label, exc)
            self._handle = GenerationHandle(self._label)

        try:
            await self._store.seed(self._handle, self._manifest, fetch, self._origin)
        except SeedPartialFailure as exc:
            self.seed_error = exc
            if exc.total:
                logger.error("Caching the app shell failed entirely: %s", exc)
            else:
                logger.warning("%s", exc)
        else:
            logger.info("Cached app shell (%d resources) in %s", len(self._manifest), self._label)

        self._transition(LifecycleState.WAITING)
        return self.seed_error

    async def activate(self) -> set[str]:
        """Promote this build's generation, evict all others, and claim consumers.

        Returns:
            The labels of the generations that were evicted.
        """
        self._transition(LifecycleState.ACTIVATING)
        logger.info("Activating %s", self._label)

        try:
            await self._store.promote(self._label)
        except CacheWriteError as exc:
            logger.error("Cannot record %s as current: %s", self._label, exc)

        evicted: set[str] = set()
        for label in await self._store.list_generations():
            if label != self._label:
                logger.info("Deleting old cache: %s", label)
                if await self._store.evict(label):
                    evicted.add(label)

        claimed = await self._clients.claim(self._label)
        logger.debug("%s now controls %d client(s)", self._label, claimed)

        self._transition(LifecycleState.ACTIVE)
        return evicted

    def resume(self, handle: GenerationHandle) -> None:
        """Adopt a generation that an earlier process already activated.

        Used when a host restarts: the persisted current generation is served
        again without re-seeding or re-evicting anything.
        """
        if self._state != LifecycleState.PARSED:
            raise LifecycleError(f"Cannot resume {self._label} from {self._state.value}")
        if handle.label != self._label:
            raise LifecycleError(f"Handle {handle.label!r} does not belong to {self._label}")
        self._handle = handle
        self._state = LifecycleState.ACTIVE

    def mark_redundant(self) -> None:
        """Retire this build.  Safe to call more than once."""
        if self._state != LifecycleState.REDUNDANT:
            self._transition(LifecycleState.REDUNDANT)
            logger.info("%s is now redundant", self._label)

    def _transition(self, target: LifecycleState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise LifecycleError(
                f"Cannot move {self._label} from {self._state.value} to {target.value}"
            )
        self._state = target


class Registration:
    """Which build is installing, which is waiting, and which is active.

    A waiting build activates when it asked to skip waiting, when there is no
    active build yet, or once every consumer has disconnected.
    """

    def __init__(self, clients: Clients) -> None:
        self._clients = clients
        self.installing: Optional[LifecycleManager] = None
        self.waiting: Optional[LifecycleManager] = None
        self.active: Optional[LifecycleManager] = None

    def begin_install(self, manager: LifecycleManager) -> None:
        if self.installing is not None:
            self.installing.mark_redundant()
        self.installing = manager

    def finish_install(self, manager: LifecycleManager) -> None:
        """Move *manager* from installing to waiting, retiring any older waiting build."""
        if self.installing is manager:
            self.installing = None
        if self.waiting is not None and self.waiting is not manager:
            self.waiting.mark_redundant()
        self.waiting = manager

    @property
    def ready_to_activate(self) -> bool:
        if self.waiting is None or self.waiting.state != LifecycleState.WAITING:
            return False
        return (
            self.waiting.skip_waiting_requested
            or self.active is None
            or len(self._clients) == 0
        )

    async def activate_waiting(self) -> Optional[LifecycleManager]:
        """Activate the waiting build and retire the previously active one."""
        manager = self.waiting
        if manager is None:
            return None
        self.waiting = None
        previous = self.active
        self.active = manager
        if previous is not None and previous is not manager:
            previous.mark_redundant()
        await manager.activate()
        return manager
