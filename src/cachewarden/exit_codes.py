"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachewarden.exceptions.CacheWardenError` subclass.
Shell wrappers can inspect the exit code to tell an unreachable network
apart from a broken manifest without parsing stderr.

Example::

    $ cachewarden fetch /missing
    $ echo $?
    6   # EXIT_NETWORK_FAILURE -- not cached and the network is unreachable
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_NETWORK_FAILURE = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_MANIFEST_ERROR = 7
"""The app-shell manifest could not be loaded or parsed."""

EXIT_CACHE_WRITE_ERROR = 8
"""The cache store rejected or failed a write."""

EXIT_LIFECYCLE_ERROR = 9
"""The agent was driven through an illegal lifecycle transition."""
