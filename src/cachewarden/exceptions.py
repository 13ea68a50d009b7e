"""Exception hierarchy for cachewarden.

All exceptions inherit from :class:`CacheWardenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cachewarden.exit_codes`.
The top-level error handler in :func:`cachewarden.app.main` catches
``CacheWardenError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Inside the agent none of these errors are fatal.  Each event handler
contains its own failures: seed and cache-write errors are logged, sync
and update-check errors are logged, and only :class:`NetworkFailure`
reaches the caller of a non-navigation fetch.

Subclass hierarchy::

    CacheWardenError (exit 1)
    +-- ConfigError           (exit 1)
    +-- AgentError            (exit 1)
    +-- ManifestError         (exit 7)
    +-- CacheWriteError       (exit 8)
    |   +-- SeedPartialFailure (exit 8)
    +-- NetworkFailure        (exit 6)
    +-- UpdateCheckFailure    (exit 6)
    +-- SyncTransmitFailure   (exit 6)
    +-- LifecycleError        (exit 9)
"""

from __future__ import annotations

from cachewarden.exit_codes import (
    EXIT_CACHE_WRITE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_LIFECYCLE_ERROR,
    EXIT_MANIFEST_ERROR,
    EXIT_NETWORK_FAILURE,
)


class CacheWardenError(Exception):
    """Base exception for all cachewarden errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cachewarden.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(CacheWardenError):
    """Raised for configuration problems (missing origin, invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE


class AgentError(CacheWardenError):
    """Raised when the agent itself is misused (duplicate handlers, closed agent)."""

    exit_code = EXIT_GENERIC_FAILURE


class ManifestError(CacheWardenError):
    """Raised when the app-shell manifest cannot be loaded or has the wrong shape."""

    exit_code = EXIT_MANIFEST_ERROR


class CacheWriteError(CacheWardenError):
    """Raised when the cache store rejects an artifact or the write fails."""

    exit_code = EXIT_CACHE_WRITE_ERROR


class SeedPartialFailure(CacheWriteError):
    """Raised after seeding when one or more shell resources could not be stored.

    Every resource that could be fetched has already been written by the
    time this is raised; the install is expected to carry on.

    Args:
        failures: Mapping of manifest path to a short failure reason.
        attempted: Number of manifest paths that needed fetching.
    """

    def __init__(self, failures: dict[str, str], attempted: int):
        self.failures = dict(failures)
        self.attempted = attempted
        paths = ", ".join(sorted(self.failures))
        super().__init__(
            f"Failed to seed {len(self.failures)} of {attempted} shell resources: {paths}"
        )

    @property
    def total(self) -> bool:
        """``True`` when not a single shell resource could be seeded."""
        return self.attempted > 0 and len(self.failures) >= self.attempted


class NetworkFailure(CacheWardenError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_NETWORK_FAILURE


class UpdateCheckFailure(CacheWardenError):
    """Raised when the update-check endpoint is unreachable or returns garbage."""

    exit_code = EXIT_NETWORK_FAILURE


class SyncTransmitFailure(CacheWardenError):
    """Raised when pending records could not be delivered to the sync endpoint."""

    exit_code = EXIT_NETWORK_FAILURE


class LifecycleError(CacheWardenError):
    """Raised on an illegal lifecycle transition (e.g. activating before install)."""

    exit_code = EXIT_LIFECYCLE_ERROR
