"""The offline agent: wires the store, lifecycle, strategy and hooks to the router.

:class:`OfflineAgent` registers exactly one handler per trigger kind on an
:class:`~cachewarden.router.EventRouter` and exposes a host-facing API
(:meth:`~OfflineAgent.update`, :meth:`~OfflineAgent.intercept`,
:meth:`~OfflineAgent.sync`, ...) that builds the matching event, dispatches
it, and awaits its handle.

Use :func:`open_agent` to get an agent with its store and network client
set up; leaving the context drains every outstanding task (cache
write-backs included) before anything is closed::

    async with open_agent(config) as agent:
        await agent.update()
        artifact = await agent.fetch(InterceptedRequest(url=f"{origin}/"))
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from cachewarden.background import (
    DeferredSync,
    InteractionCallback,
    PushDelivery,
    ScheduledSync,
    SyncReport,
)
from cachewarden.cache import CacheStore
from cachewarden.classifier import classify
from cachewarden.client import NetworkClient
from cachewarden.config import get_store_dir
from cachewarden.events import (
    ActivateEvent,
    AgentEvent,
    FetchEvent,
    InstallEvent,
    NotificationClickEvent,
    PeriodicSyncEvent,
    PushEvent,
    PushPayload,
    SyncEvent,
)
from cachewarden.exceptions import ConfigError, LifecycleError
from cachewarden.host import Client, Clients, ConsoleNotifier, Notifier
from cachewarden.lifecycle import LifecycleManager, Registration
from cachewarden.manifest import manifest_for
from cachewarden.models import (
    AgentConfig,
    Classification,
    InterceptedRequest,
    NotificationRecord,
    ResponseArtifact,
)
from cachewarden.router import EventRouter, TaskHandle
from cachewarden.storage import LocalStorage, storage_for
from cachewarden.strategy import ResolutionSource, ResolutionStrategy

logger = logging.getLogger(__name__)


class OfflineAgent:
    """Caching agent for one origin.

    Args:
        config: Resolved agent configuration; ``origin`` is required.
        store: Generation store shared by every task.
        network: Network client bound to the origin (already entered).
        clients: Consumer registry.  Defaults to a fresh :class:`Clients`.
        notifier: Notification delivery.  Defaults to :class:`ConsoleNotifier`.
        storage: Pending-records collaborator.  Defaults to the one named by
            ``config.storage_path``.
        manifest: App-shell paths.  Defaults to :func:`manifest_for` on *config*,
            loaded on the first :meth:`update` so other triggers never read it.

    Raises:
        ConfigError: If *config* has no origin.
    """

    def __init__(
        self,
        config: AgentConfig,
        store: CacheStore,
        network: NetworkClient,
        clients: Optional[Clients] = None,
        notifier: Optional[Notifier] = None,
        storage: Optional[LocalStorage] = None,
        manifest: Optional[list[str]] = None,
    ) -> None:
        if not config.origin:
            raise ConfigError("No origin configured; pass --origin or set CACHEWARDEN_ORIGIN")
        self.config = config
        self.origin: str = config.origin
        self.store = store
        self.network = network
        self.clients = clients if clients is not None else Clients(self.origin)
        self.notifier = notifier if notifier is not None else ConsoleNotifier()
        self.storage = storage if storage is not None else storage_for(config.storage_path)
        self._manifest: Optional[list[str]] = list(manifest) if manifest is not None else None

        self.registration = Registration(self.clients)
        self.router = EventRouter()
        self.strategy = ResolutionStrategy(store, network, config)
        self._deferred_sync = DeferredSync(self.storage, network, config)
        self._scheduled_sync = ScheduledSync(network, self.notifier, config)
        self._push = PushDelivery(self.notifier, config.notifications)
        self._click = InteractionCallback(self.notifier, self.clients, config.navigation_fallback)

        self.router.register(InstallEvent.kind, self._on_install)
        self.router.register(ActivateEvent.kind, self._on_activate)
        self.router.register(FetchEvent.kind, self._on_fetch)
        self.router.register(SyncEvent.kind, self._on_sync)
        self.router.register(PeriodicSyncEvent.kind, self._on_periodic_sync)
        self.router.register(PushEvent.kind, self._on_push)
        self.router.register(NotificationClickEvent.kind, self._on_notification_click)

    # ------------------------------------------------------------------ #
    # Host-facing API
    # ------------------------------------------------------------------ #

    @property
    def active(self) -> Optional[LifecycleManager]:
        return self.registration.active

    async def update(self, build_label: Optional[str] = None) -> LifecycleManager:
        """Install a build and activate it when the registration allows.

        Args:
            build_label: Generation label of the new build.  Defaults to
                ``config.build_label``.

        Returns:
            The new build's lifecycle manager.

        Raises:
            ManifestError: If the configured manifest cannot be loaded.
        """
        manager = LifecycleManager(
            self.store,
            self.clients,
            build_label or self.config.build_label,
            await self.load_manifest(),
            self.origin,
        )
        self.registration.begin_install(manager)
        await self._run(InstallEvent())
        if self.registration.ready_to_activate:
            await self._run(ActivateEvent())
        return manager

    async def load_manifest(self) -> list[str]:
        """Return the app-shell paths, reading the configured source once."""
        if self._manifest is None:
            self._manifest = await asyncio.to_thread(manifest_for, self.config)
        return self._manifest

    async def resume(self) -> Optional[LifecycleManager]:
        """Serve the generation an earlier process activated, if there is one.

        Returns:
            The resumed manager, or ``None`` when nothing was ever activated
            or a build is already active in this process.
        """
        if self.registration.active is not None:
            return None
        label = await self.store.current()
        if label is None:
            return None
        # A resumed build is never seeded again.
        manager = LifecycleManager(self.store, self.clients, label, [], self.origin)
        manager.resume(await self.store.open(label))
        self.registration.active = manager
        logger.debug("Resumed generation %s", label)
        return manager

    async def consumers_released(self) -> Optional[LifecycleManager]:
        """Tell the agent every consumer has closed; a waiting build may now activate."""
        if self.registration.ready_to_activate:
            return await self._run(ActivateEvent())
        return None

    async def intercept(
        self, request: InterceptedRequest
    ) -> tuple[ResponseArtifact, ResolutionSource]:
        """Resolve *request* the way a consumer would see it.

        Requests the agent does not intercept go straight to the network
        and are reported as :attr:`ResolutionSource.PASSTHROUGH`.

        Raises:
            NetworkFailure: When the network is unreachable and no cached
                response or fallback applies.
        """
        resolved = await self._run(FetchEvent(request))
        if resolved is not None:
            return resolved
        return await self.network.fetch(request), ResolutionSource.PASSTHROUGH

    async def fetch(self, request: InterceptedRequest) -> ResponseArtifact:
        artifact, _ = await self.intercept(request)
        return artifact

    async def sync(self, tag: Optional[str] = None) -> Optional[SyncReport]:
        return await self._run(SyncEvent(tag=tag if tag is not None else self.config.sync_tag))

    async def periodic_sync(self, tag: Optional[str] = None) -> Optional[NotificationRecord]:
        tag = tag if tag is not None else self.config.periodic_sync_tag
        return await self._run(PeriodicSyncEvent(tag=tag))

    async def push(self, data: PushPayload = None) -> NotificationRecord:
        return await self._run(PushEvent(data=data))

    async def notification_click(
        self, action: str, notification: Optional[NotificationRecord] = None
    ) -> Optional[Client]:
        return await self._run(NotificationClickEvent(action=action, notification=notification))

    async def drain(self) -> None:
        """Wait for every dispatched task and its background work to settle."""
        await self.router.drain()
        await self.strategy.flush()

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _on_install(self, event: AgentEvent, handle: TaskHandle) -> Any:
        manager = self.registration.installing
        if manager is None:
            raise LifecycleError("Install dispatched without a build to install")
        seed_error = await manager.install(self.network.fetch_path)
        if self.config.skip_waiting:
            manager.skip_waiting()
        self.registration.finish_install(manager)
        return seed_error

    async def _on_activate(self, event: AgentEvent, handle: TaskHandle) -> Any:
        return await self.registration.activate_waiting()

    async def _on_fetch(self, event: AgentEvent, handle: TaskHandle) -> Any:
        assert isinstance(event, FetchEvent)
        request = event.request
        if classify(request, self.origin) == Classification.SKIP:
            return None
        manager = self.registration.active
        if manager is None or not manager.accepts_requests:
            return None
        return await self.strategy.resolve_with_source(
            request, manager.handle, keep_alive=handle.wait_until
        )

    async def _on_sync(self, event: AgentEvent, handle: TaskHandle) -> Any:
        assert isinstance(event, SyncEvent)
        logger.info("Background sync triggered: %s", event.tag)
        return await self._deferred_sync.run(event.descriptor)

    async def _on_periodic_sync(self, event: AgentEvent, handle: TaskHandle) -> Any:
        assert isinstance(event, PeriodicSyncEvent)
        logger.info("Periodic sync triggered: %s", event.tag)
        return await self._scheduled_sync.run(event.descriptor)

    async def _on_push(self, event: AgentEvent, handle: TaskHandle) -> Any:
        assert isinstance(event, PushEvent)
        return await self._push.run(event.data)

    async def _on_notification_click(self, event: AgentEvent, handle: TaskHandle) -> Any:
        assert isinstance(event, NotificationClickEvent)
        return await self._click.run(event.action, event.notification)

    async def _run(self, event: AgentEvent) -> Any:
        handle = self.router.dispatch(event)
        if handle is None:
            return None
        return await handle.result()


@asynccontextmanager
async def open_agent(
    config: AgentConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> AsyncIterator[OfflineAgent]:
    """Open the store and network client for *config* and yield an agent.

    Extra keyword arguments are passed to :class:`OfflineAgent`.  On exit the
    agent is drained before the network client and store are closed.
    """
    store = CacheStore(get_store_dir(config))
    try:
        async with NetworkClient(config, transport=transport) as network:
            agent = OfflineAgent(config, store, network, **kwargs)
            try:
                yield agent
            finally:
                await agent.drain()
    finally:
        store.close()
