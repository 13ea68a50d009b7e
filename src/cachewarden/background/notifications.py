"""Push delivery and notification-click handling."""

from __future__ import annotations

import logging
import time
from typing import Optional

from cachewarden.events import PushPayload
from cachewarden.host import Client, Clients, Notifier
from cachewarden.models import (
    NotificationAction,
    NotificationConfig,
    NotificationOptions,
    NotificationRecord,
)

logger = logging.getLogger(__name__)

ACTION_OPEN = "open"
ACTION_DISMISS = "dismiss"


def decode_payload(data: PushPayload, default: str) -> str:
    """Return the push payload as text, or *default* when there is none.

    Bytes are decoded as UTF-8 with invalid sequences replaced.
    """
    if data is None:
        return default
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def build_notification(
    config: NotificationConfig,
    body: str,
    with_actions: bool = True,
) -> NotificationRecord:
    """Build a notification record from the configured presentation defaults.

    With *with_actions* the record carries the ``open`` and ``dismiss``
    buttons, a vibration pattern and arrival metadata.
    """
    options = NotificationOptions(body=body, icon=config.icon, badge=config.badge)
    if with_actions:
        options.actions = [
            NotificationAction(action=ACTION_OPEN, title="Open App", icon=config.icon),
            NotificationAction(action=ACTION_DISMISS, title="Close", icon=config.icon),
        ]
        options.vibrate = list(config.vibrate)
        options.data = {"date_of_arrival": int(time.time() * 1000), "primary_key": 1}
    return NotificationRecord(title=config.title, options=options)


class PushDelivery:
    """Shows one notification per inbound push message."""

    def __init__(self, notifier: Notifier, config: NotificationConfig) -> None:
        self._notifier = notifier
        self._config = config

    async def run(self, data: PushPayload) -> NotificationRecord:
        body = decode_payload(data, self._config.default_body)
        record = build_notification(self._config, body)
        logger.info("Push notification received: %s", body)
        await self._notifier.show_notification(record.title, record.options)
        return record


class InteractionCallback:
    """Handles clicks on a displayed notification.

    The notification is always closed.  Clicking the body (empty action) or
    the ``open`` button focuses the application's root view, opening it if
    no consumer shows it; every other action stops there.
    """

    def __init__(self, notifier: Notifier, clients: Clients, root: str = "/") -> None:
        self._notifier = notifier
        self._clients = clients
        self._root = root

    async def run(
        self, action: str, notification: Optional[NotificationRecord] = None
    ) -> Optional[Client]:
        logger.info("Notification clicked: %r", action or "(body)")
        await self._notifier.close_notification(notification)
        if action not in ("", ACTION_OPEN):
            return None
        return await self._clients.focus_or_open(self._root)
