"""Canonical Pydantic models shared across all cachewarden modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`NotificationConfig`,
    and :class:`AgentConfig`.

**Agent records** -- produced and consumed while the agent runs:
    :class:`RequestMode`, :class:`InterceptedRequest`, :class:`RequestIdentity`,
    :class:`ResponseArtifact`, :class:`Classification`, :class:`LifecycleState`,
    :class:`TaskKind`, :class:`BackgroundTaskDescriptor`,
    :class:`NotificationAction`, :class:`NotificationOptions`,
    :class:`NotificationRecord`, :class:`Note`, and :class:`Bookmark`.

All models use Pydantic v2. Records that must never change after creation
(identities, artifacts) are declared ``frozen``.
"""

from __future__ import annotations

import enum
import hashlib
import json
from typing import Any, Optional
from urllib.parse import urldefrag, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_APP_SHELL = [
    "/",
    "/index.html",
    "/manifest.json",
    "/index.tsx",
    "/App.tsx",
    "/assets/icon-192.png",
    "/assets/icon-512.png",
]
"""Shell resources seeded when neither config nor a manifest file names any."""


# --- Config ---


class RequestConfig(BaseModel):
    """HTTP settings applied to every network call the agent makes."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=0, description="Extra attempts on connection errors"
    )


class CacheConfig(BaseModel):
    """Where the generation store lives on disk."""

    directory: Optional[str] = Field(
        default=None,
        description="Store directory; defaults to the XDG cache directory",
    )


class NotificationConfig(BaseModel):
    """Presentation defaults for notifications raised by push and scheduled sync."""

    title: str = "Digital Sanctuary Bible"
    default_body: str = "New content available!"
    icon: str = "/assets/icon-192.png"
    badge: str = "/assets/icon-192.png"
    vibrate: list[int] = Field(default_factory=lambda: [100, 50, 100])


class AgentConfig(BaseModel):
    """Agent configuration persisted at ``~/.config/cachewarden/config.json``.

    Loaded and saved by :func:`~cachewarden.config.load_agent_config` and
    :func:`~cachewarden.config.save_agent_config`. Values can be overridden
    by a project-local ``cachewarden.json``, environment variables, or CLI
    flags. See :func:`~cachewarden.config.resolve_config` for the full
    precedence chain.

    ``build_label`` names the cache generation for the deployed build and
    must change whenever the deployed assets change; activation evicts
    every generation with a different label.
    """

    origin: Optional[str] = Field(
        default=None, description="Origin the agent serves, e.g. http://localhost:5173"
    )
    build_label: str = Field(
        default="bible-app-cache-v4", description="Cache generation label of this build"
    )
    app_shell: list[str] = Field(default_factory=lambda: list(DEFAULT_APP_SHELL))
    manifest_source: Optional[str] = Field(
        default=None, description="File path or URL of an app-shell manifest"
    )
    navigation_fallback: str = "/"
    skip_waiting: bool = True
    vary_headers: list[str] = Field(default_factory=list)
    update_check_path: str = "/api/check-updates"
    sync_endpoint: str = "/api/sync"
    sync_tag: str = "background-sync"
    periodic_sync_tag: str = "periodic-sync"
    storage_path: Optional[str] = Field(
        default=None, description="JSON file holding pending notes and bookmarks"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @field_validator("origin")
    @classmethod
    def _normalise_origin(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"origin must be an absolute http(s) URL, got {value!r}")
        return f"{parts.scheme}://{parts.netloc}".lower()


# --- Requests and responses ---


class RequestMode(str, enum.Enum):
    """How the consumer issued a request; only ``NAVIGATE`` gets the shell fallback."""

    NAVIGATE = "navigate"
    SAME_ORIGIN = "same-origin"
    CORS = "cors"
    NO_CORS = "no-cors"


class InterceptedRequest(BaseModel):
    """An outbound request handed to the agent by its host.

    ``url`` must be absolute; use
    :func:`~cachewarden.classifier.absolute_url` to resolve paths against
    the agent origin first.
    """

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    mode: RequestMode = RequestMode.CORS
    body: Optional[bytes] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def is_navigation(self) -> bool:
        return self.mode == RequestMode.NAVIGATE


class RequestIdentity(BaseModel):
    """Cache key for a request: method, normalised URL and selected headers.

    The URL loses its fragment, and a bare origin gets the root path, so
    ``http://host`` and ``http://host/`` share one entry.

    Only GET requests have an identity; building one for any other method
    raises :class:`ValueError`. :attr:`key` is a SHA-256 digest so that
    identical requests always resolve to the same store entry regardless
    of header ordering or casing.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    headers: tuple[tuple[str, str], ...] = ()

    @field_validator("method")
    @classmethod
    def _only_get(cls, value: str) -> str:
        value = value.upper()
        if value != "GET":
            raise ValueError(f"Only GET requests can be cache keys, got {value}")
        return value

    @field_validator("url")
    @classmethod
    def _normalise_url(cls, value: str) -> str:
        url = urldefrag(value)[0]
        parts = urlsplit(url)
        if parts.netloc and not parts.path:
            url = parts._replace(path="/").geturl()
        return url

    @classmethod
    def for_url(cls, url: str) -> RequestIdentity:
        """Identity of a plain GET for *url* with no varying headers."""
        return cls(url=url)

    @classmethod
    def from_request(
        cls, request: InterceptedRequest, vary_headers: list[str] | tuple[str, ...] = ()
    ) -> RequestIdentity:
        """Derive the identity of *request*, keeping only the *vary_headers* it carries."""
        wanted = {h.lower() for h in vary_headers}
        selected = sorted(
            (name.lower(), value)
            for name, value in request.headers.items()
            if name.lower() in wanted
        )
        return cls(method=request.method, url=request.url, headers=tuple(selected))

    @property
    def key(self) -> str:
        parts = [self.method, self.url]
        if self.headers:
            parts.append(json.dumps(list(self.headers)))
        raw = "|".join(parts)
        return hashlib.sha256(raw.encode()).hexdigest()


class ResponseArtifact(BaseModel):
    """Immutable snapshot of a response: status, headers and body bytes."""

    model_config = ConfigDict(frozen=True)

    url: str = ""
    status_code: int
    reason: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        """Whether the status is in the 2xx success range."""
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def content_type(self) -> str:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return ""

    def json(self) -> Any:
        return json.loads(self.body)


class Classification(str, enum.Enum):
    """Outcome of :func:`~cachewarden.classifier.classify`."""

    ELIGIBLE = "eligible"
    SKIP = "skip"


# --- Lifecycle ---


class LifecycleState(str, enum.Enum):
    """States of one agent instance, from construction to replacement.

    ``PARSED`` is the state of a freshly constructed instance that has not
    started installing yet.
    """

    PARSED = "parsed"
    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVATING = "activating"
    ACTIVE = "active"
    REDUNDANT = "redundant"


# --- Background tasks ---


class TaskKind(str, enum.Enum):
    """Which host trigger a background invocation corresponds to."""

    DEFERRED_SYNC = "deferred-sync"
    SCHEDULED_SYNC = "scheduled-sync"


class BackgroundTaskDescriptor(BaseModel):
    """A ``(tag, kind)`` pair identifying one background invocation."""

    model_config = ConfigDict(frozen=True)

    tag: str
    kind: TaskKind


class NotificationAction(BaseModel):
    """A named button shown on a notification."""

    action: str
    title: str
    icon: Optional[str] = None


class NotificationOptions(BaseModel):
    """The options record passed to notification delivery alongside the title."""

    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    actions: list[NotificationAction] = Field(default_factory=list)
    vibrate: list[int] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class NotificationRecord(BaseModel):
    """A notification to display once; nothing is kept after delivery."""

    title: str
    options: NotificationOptions

    @property
    def body(self) -> str:
        return self.options.body

    @property
    def action_names(self) -> list[str]:
        return [a.action for a in self.options.actions]


# --- Storage collaborator records ---


class Note(BaseModel):
    """A locally written note waiting to be synced.

    Storage backends may attach extra fields; they are preserved in
    ``model_extra`` and sent along unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    text: str = ""
    updated_at: Optional[str] = None


class Bookmark(BaseModel):
    """A locally created bookmark waiting to be synced."""

    model_config = ConfigDict(extra="allow")

    id: str
    reference: str = ""
    label: Optional[str] = None
