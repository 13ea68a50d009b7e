"""Explicit event router: one handler per trigger kind, one task per event.

Hosts hand every trigger to :meth:`EventRouter.dispatch`, which starts the
registered handler as its own :class:`asyncio.Task` and returns a
:class:`TaskHandle`.  Events never wait on each other; two fetches, a push
and a sync can all be in flight at once.

A handler receives its own handle and may call :meth:`TaskHandle.wait_until`
to keep work alive after it has produced its result (the resolution strategy
does this for cache write-backs).  :meth:`TaskHandle.settled` waits for the
handler *and* every extension; :meth:`EventRouter.drain` does the same for
every live handle and is what a host awaits before tearing the agent down.

Handler failures stay inside their task.  Whoever awaits the handle (e.g. the
consumer of a fetch) sees the exception; nobody else does.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from cachewarden.events import AgentEvent
from cachewarden.exceptions import AgentError

logger = logging.getLogger(__name__)

Handler = Callable[[AgentEvent, "TaskHandle"], Awaitable[Any]]
"""Signature of an event handler: ``async def handler(event, handle) -> result``."""


class TaskHandle:
    """Tracks one dispatched event: the handler task plus its lifetime extensions."""

    def __init__(self, event: AgentEvent) -> None:
        self.event = event
        self._task: Optional[asyncio.Task[Any]] = None
        self._extensions: list[asyncio.Future[Any]] = []
        self._tracker: Optional[set[TaskHandle]] = None

    @property
    def task(self) -> asyncio.Task[Any]:
        if self._task is None:
            raise AgentError("Handle has not been started")
        return self._task

    def wait_until(self, awaitable: Awaitable[Any]) -> asyncio.Future[Any]:
        """Keep this event alive until *awaitable* completes.

        The returned future is independent of the handler task: cancelling
        the handler does not cancel it.  Its failure is logged, never raised.
        A handle that had already settled is tracked again until the new
        work finishes.
        """
        future = asyncio.ensure_future(awaitable)
        future.add_done_callback(_log_extension_failure)
        self._extensions.append(future)
        if self._tracker is not None:
            self._tracker.add(self)
        future.add_done_callback(self._release)
        return future

    def done(self) -> bool:
        """``True`` once the handler and all extensions have finished."""
        if self._task is None or not self._task.done():
            return False
        return all(f.done() for f in self._extensions)

    def _release(self, _: asyncio.Future[Any]) -> None:
        if self._tracker is not None and self.done():
            self._tracker.discard(self)

    def cancel(self) -> bool:
        """Cancel the handler task (the consumer gave up).  Extensions keep running."""
        return self.task.cancel()

    async def result(self) -> Any:
        """Wait for the handler and return its result, re-raising its failure."""
        return await self.task

    async def settled(self) -> None:
        """Wait for the handler and every extension, including ones added meanwhile."""
        await asyncio.wait([self.task])
        while True:
            pending = [f for f in self._extensions if not f.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    def __await__(self):
        return self.result().__await__()


class EventRouter:
    """Routes events to their handlers and keeps track of live handles.

    Example::

        router = EventRouter()
        router.register("push", on_push)
        handle = router.dispatch(PushEvent(b"Hello"))
        await handle.settled()
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}
        self._live: set[TaskHandle] = set()

    def register(self, kind: str, handler: Handler) -> None:
        """Register the single handler for *kind*.

        Raises:
            AgentError: If *kind* already has a handler.
        """
        if kind in self._handlers:
            raise AgentError(f"A handler for '{kind}' is already registered")
        self._handlers[kind] = handler

    def handles(self, kind: str) -> bool:
        return kind in self._handlers

    def dispatch(self, event: AgentEvent) -> Optional[TaskHandle]:
        """Start the handler for *event* and return its handle.

        Must be called from a running event loop.  Events of a kind with no
        registered handler are ignored and ``None`` is returned.
        """
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.debug("Ignoring unhandled event kind %r", event.kind)
            return None

        handle = TaskHandle(event)
        task = asyncio.create_task(handler(event, handle), name=f"cachewarden:{event.kind}")
        task.add_done_callback(_log_handler_failure)
        handle._task = task
        handle._tracker = self._live
        self._live.add(handle)
        task.add_done_callback(handle._release)
        return handle

    @property
    def live(self) -> list[TaskHandle]:
        """Handles that have not settled yet.  Settled handles drop out on their own."""
        return [h for h in self._live if not h.done()]

    async def drain(self) -> None:
        """Wait until every dispatched event, and anything it extended to, has settled."""
        while True:
            pending = self.live
            if not pending:
                return
            await asyncio.gather(*(h.settled() for h in pending))


def _log_handler_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        logger.debug("Task %s was cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Task %s finished with %s: %s", task.get_name(), type(exc).__name__, exc)


def _log_extension_failure(future: asyncio.Future[Any]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Background work failed: %s", exc)
