"""Deferred sync and scheduled (periodic) sync.

Both hooks are driven entirely by the host: deferred sync fires when
connectivity is restored, scheduled sync on the host's interval.  Neither
retries on its own.  A failed run is logged and simply waits for the next
trigger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from cachewarden.background.notifications import build_notification
from cachewarden.client import NetworkClient
from cachewarden.exceptions import (
    CacheWardenError,
    NetworkFailure,
    SyncTransmitFailure,
    UpdateCheckFailure,
)
from cachewarden.host import Notifier
from cachewarden.models import (
    AgentConfig,
    BackgroundTaskDescriptor,
    Bookmark,
    Note,
    NotificationRecord,
    TaskKind,
)
from cachewarden.storage import LocalStorage

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one deferred-sync run.

    Attributes:
        notes: Pending notes found.
        bookmarks: Pending bookmarks found.
        transmitted: Whether the records reached the sync endpoint.
        error: Failure description when reading or transmitting failed.
    """

    notes: int = 0
    bookmarks: int = 0
    transmitted: bool = False
    error: Optional[str] = None


class DeferredSync:
    """Sends pending local records to the sync endpoint once online again."""

    def __init__(self, storage: LocalStorage, network: NetworkClient, config: AgentConfig) -> None:
        self._storage = storage
        self._network = network
        self._config = config

    async def run(self, descriptor: BackgroundTaskDescriptor) -> Optional[SyncReport]:
        """Run the sync for *descriptor*.

        Returns:
            ``None`` when the descriptor is not ours, otherwise a report.
        """
        if descriptor.kind != TaskKind.DEFERRED_SYNC or descriptor.tag != self._config.sync_tag:
            logger.debug("Ignoring sync tag %r", descriptor.tag)
            return None

        logger.info("Performing background sync...")
        report = SyncReport()
        try:
            notes = await self._storage.get_pending_notes()
            bookmarks = await self._storage.get_pending_bookmarks()
            report.notes, report.bookmarks = len(notes), len(bookmarks)
            if notes or bookmarks:
                await self.transmit(notes, bookmarks)
                report.transmitted = True
        except (CacheWardenError, ValueError) as exc:
            logger.error("Background sync failed: %s", exc)
            report.error = str(exc)
        return report

    async def transmit(self, notes: list[Note], bookmarks: list[Bookmark]) -> None:
        """POST the pending records to the sync endpoint.

        Raises:
            SyncTransmitFailure: If the endpoint is unreachable or answers
                with a non-2xx status.
        """
        logger.info("Syncing %d note(s), %d bookmark(s)", len(notes), len(bookmarks))
        payload = {
            "notes": [n.model_dump(mode="json") for n in notes],
            "bookmarks": [b.model_dump(mode="json") for b in bookmarks],
        }
        try:
            response = await self._network.post_json(self._config.sync_endpoint, payload)
        except NetworkFailure as exc:
            raise SyncTransmitFailure(f"Sync endpoint unreachable: {exc}") from exc
        if not response.ok:
            raise SyncTransmitFailure(
                f"Sync endpoint {self._config.sync_endpoint} answered HTTP {response.status_code}"
            )


class ScheduledSync:
    """Checks the update endpoint and notifies when new content is available."""

    def __init__(self, network: NetworkClient, notifier: Notifier, config: AgentConfig) -> None:
        self._network = network
        self._notifier = notifier
        self._config = config

    async def run(self, descriptor: BackgroundTaskDescriptor) -> Optional[NotificationRecord]:
        """Run the check for *descriptor*; return the notification shown, if any."""
        if (
            descriptor.kind != TaskKind.SCHEDULED_SYNC
            or descriptor.tag != self._config.periodic_sync_tag
        ):
            logger.debug("Ignoring periodic sync tag %r", descriptor.tag)
            return None

        logger.info("Performing periodic sync...")
        try:
            has_new = await self.check_for_updates()
        except UpdateCheckFailure as exc:
            logger.error("Periodic sync failed: %s", exc)
            return None
        if not has_new:
            return None

        record = build_notification(
            self._config.notifications,
            self._config.notifications.default_body,
            with_actions=False,
        )
        await self._notifier.show_notification(record.title, record.options)
        return record

    async def check_for_updates(self) -> bool:
        """Ask the update-check endpoint whether new content exists.

        Only a 2xx JSON object whose ``hasNewContent`` is ``true`` counts.
        Other statuses and shapes mean "no update".

        Raises:
            UpdateCheckFailure: If the endpoint is unreachable or the body
                is not JSON.
        """
        path = self._config.update_check_path
        try:
            response = await self._network.get_json(path)
        except NetworkFailure as exc:
            raise UpdateCheckFailure(f"Update check unreachable: {exc}") from exc
        if not response.ok:
            logger.debug("Update check answered HTTP %d", response.status_code)
            return False
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpdateCheckFailure(f"Malformed update-check response: {exc}") from exc
        return isinstance(payload, dict) and payload.get("hasNewContent") is True
