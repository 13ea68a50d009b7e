"""Background hooks that run independently of any rendered page.

* :class:`DeferredSync` -- connectivity came back; push pending notes and
  bookmarks to the sync endpoint.
* :class:`ScheduledSync` -- the host's timer fired; ask the update-check
  endpoint whether new content exists and notify if so.
* :class:`PushDelivery` -- turn an inbound push payload into a notification.
* :class:`InteractionCallback` -- react to a click on a notification.

None of these raise out of :meth:`run`: their own failure kinds are logged
and the host is expected to re-trigger them.
"""

from cachewarden.background.notifications import (
    ACTION_DISMISS,
    ACTION_OPEN,
    InteractionCallback,
    PushDelivery,
    build_notification,
    decode_payload,
)
from cachewarden.background.sync import DeferredSync, ScheduledSync, SyncReport

__all__ = [
    "ACTION_DISMISS",
    "ACTION_OPEN",
    "DeferredSync",
    "InteractionCallback",
    "PushDelivery",
    "ScheduledSync",
    "SyncReport",
    "build_notification",
    "decode_payload",
]
