"""Inbound triggers delivered to the agent by its host environment.

Each event class corresponds to exactly one trigger kind, exposed as the
class attribute :attr:`AgentEvent.kind`.  The :class:`~cachewarden.router.EventRouter`
dispatches on that string, so hosts only need to build the right event and
hand it over.

Trigger kinds::

    install            InstallEvent
    activate           ActivateEvent
    fetch              FetchEvent(request)
    sync               SyncEvent(tag)
    periodicsync       PeriodicSyncEvent(tag)
    push               PushEvent(data)
    notificationclick  NotificationClickEvent(action, notification)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from cachewarden.models import (
    BackgroundTaskDescriptor,
    InterceptedRequest,
    NotificationRecord,
    TaskKind,
)

PushPayload = Union[bytes, str, None]


@dataclass
class AgentEvent:
    """Base class of every trigger."""

    kind: ClassVar[str] = ""


@dataclass
class InstallEvent(AgentEvent):
    kind: ClassVar[str] = "install"


@dataclass
class ActivateEvent(AgentEvent):
    kind: ClassVar[str] = "activate"


@dataclass
class FetchEvent(AgentEvent):
    """An outbound request from a consumer, offered to the agent for interception."""

    kind: ClassVar[str] = "fetch"

    request: InterceptedRequest


@dataclass
class SyncEvent(AgentEvent):
    """Connectivity came back; deferred work registered under *tag* may run."""

    kind: ClassVar[str] = "sync"

    tag: str = ""

    @property
    def descriptor(self) -> BackgroundTaskDescriptor:
        return BackgroundTaskDescriptor(tag=self.tag, kind=TaskKind.DEFERRED_SYNC)


@dataclass
class PeriodicSyncEvent(AgentEvent):
    """The host's interval timer for *tag* fired."""

    kind: ClassVar[str] = "periodicsync"

    tag: str = ""

    @property
    def descriptor(self) -> BackgroundTaskDescriptor:
        return BackgroundTaskDescriptor(tag=self.tag, kind=TaskKind.SCHEDULED_SYNC)


@dataclass
class PushEvent(AgentEvent):
    """A message arrived on the push channel.  ``data`` is ``None`` for an empty push."""

    kind: ClassVar[str] = "push"

    data: PushPayload = None


@dataclass
class NotificationClickEvent(AgentEvent):
    """The user clicked a notification body (``action == ""``) or one of its buttons."""

    kind: ClassVar[str] = "notificationclick"

    action: str = ""
    notification: Optional[NotificationRecord] = None
