"""Local storage collaborator: where pending notes and bookmarks come from.

The agent never owns user content.  Deferred sync only *reads* pending
records through a :class:`LocalStorage` implementation supplied by the host
application:

* :class:`EmptyStorage` -- nothing is ever pending.
* :class:`JsonFileStorage` -- reads ``{"notes": [...], "bookmarks": [...]}``
  from a JSON file the application keeps up to date.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from cachewarden.exceptions import ConfigError
from cachewarden.models import Bookmark, Note


class LocalStorage(ABC):
    """Read-only view of records waiting to be synced."""

    @abstractmethod
    async def get_pending_notes(self) -> list[Note]:
        """Return notes not yet transmitted; may be empty."""

    @abstractmethod
    async def get_pending_bookmarks(self) -> list[Bookmark]:
        """Return bookmarks not yet transmitted; may be empty."""


class EmptyStorage(LocalStorage):
    async def get_pending_notes(self) -> list[Note]:
        return []

    async def get_pending_bookmarks(self) -> list[Bookmark]:
        return []


class JsonFileStorage(LocalStorage):
    """Pending records kept in a JSON file.

    A missing file means nothing is pending.  The file is re-read on every
    call so the application can rewrite it between syncs.

    Args:
        path: Location of the JSON document.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    async def get_pending_notes(self) -> list[Note]:
        data = await asyncio.to_thread(self._read)
        return [Note.model_validate(item) for item in data.get("notes", [])]

    async def get_pending_bookmarks(self) -> list[Bookmark]:
        data = await asyncio.to_thread(self._read)
        return [Bookmark.model_validate(item) for item in data.get("bookmarks", [])]

    def _read(self) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise ConfigError(f"Invalid pending-records file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid pending-records file {self._path}: expected an object")
        return data


def storage_for(path: Optional[str]) -> LocalStorage:
    """Return the storage collaborator configured by *path*."""
    if path:
        return JsonFileStorage(path)
    return EmptyStorage()
