"""The host environment as seen by the agent: consumers and notification delivery.

Two collaborators live here:

* :class:`Clients` -- the registry of consumers (application windows/tabs)
  the agent may control.  Activation *claims* every connected consumer, and
  a notification click asks it to focus the application's root view, opening
  a new one through :mod:`webbrowser` when none is connected.
* :class:`Notifier` -- notification delivery.  :class:`ConsoleNotifier`
  renders to the terminal through the global output manager;
  :class:`MemoryNotifier` keeps records in memory for embedding hosts.

Delivery is fire-and-forget: nothing about a notification outlives its
display.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import webbrowser
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from cachewarden.classifier import absolute_url
from cachewarden.models import NotificationOptions, NotificationRecord
from cachewarden.output import get_output

logger = logging.getLogger(__name__)


@dataclass
class Client:
    """One connected consumer.

    Attributes:
        id: Host-assigned identifier.
        url: URL the consumer currently shows.
        controller: Generation label of the agent instance controlling it,
            or ``None`` while uncontrolled.
        focused: Whether the consumer was most recently brought to front.
    """

    id: str
    url: str
    controller: Optional[str] = None
    focused: bool = False


class Clients:
    """Registry of consumers connected to the agent's origin.

    Args:
        origin: The agent origin; relative URLs are resolved against it.
        opener: Callable used to open a new window.  Defaults to
            :func:`webbrowser.open`.
    """

    def __init__(self, origin: str, opener: Callable[[str], Any] = webbrowser.open) -> None:
        self._origin = origin
        self._opener = opener
        self._clients: dict[str, Client] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._clients)

    def all(self) -> list[Client]:
        return list(self._clients.values())

    def connect(self, url: str, client_id: Optional[str] = None) -> Client:
        """Register a consumer showing *url* and return it."""
        client = Client(id=client_id or f"client-{next(self._ids)}", url=absolute_url(self._origin, url))
        self._clients[client.id] = client
        return client

    def disconnect(self, client_id: str) -> None:
        self._clients.pop(client_id, None)

    async def claim(self, label: str) -> int:
        """Put every connected consumer under the control of generation *label*.

        Returns:
            The number of consumers claimed.
        """
        for client in self._clients.values():
            client.controller = label
        logger.debug("Claimed %d client(s) for %s", len(self._clients), label)
        return len(self._clients)

    async def focus_or_open(self, url: str) -> Client:
        """Focus a consumer showing *url*, or open one if none is connected."""
        target = absolute_url(self._origin, url)
        for client in self._clients.values():
            client.focused = False
        for client in self._clients.values():
            if client.url == target:
                client.focused = True
                logger.info("Focusing %s (%s)", client.id, target)
                return client

        logger.info("Opening window at %s", target)
        await asyncio.to_thread(self._opener, target)
        client = self.connect(target)
        client.focused = True
        return client


class Notifier(ABC):
    """Notification delivery channel."""

    @abstractmethod
    async def show_notification(self, title: str, options: NotificationOptions) -> None:
        """Display a notification."""

    async def close_notification(self, record: Optional[NotificationRecord]) -> None:
        """Dismiss a displayed notification.  No-op by default."""


class ConsoleNotifier(Notifier):
    """Renders notifications on stderr through the global output manager."""

    async def show_notification(self, title: str, options: NotificationOptions) -> None:
        get_output().notification(
            title,
            options.body,
            [f"{a.action}: {a.title}" for a in options.actions],
        )


class MemoryNotifier(Notifier):
    """Keeps every shown and closed notification in memory."""

    def __init__(self) -> None:
        self.shown: list[NotificationRecord] = []
        self.closed: list[Optional[NotificationRecord]] = []

    async def show_notification(self, title: str, options: NotificationOptions) -> None:
        self.shown.append(NotificationRecord(title=title, options=options))

    async def close_notification(self, record: Optional[NotificationRecord]) -> None:
        self.closed.append(record)
