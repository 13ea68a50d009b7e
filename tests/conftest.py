"""Shared test fixtures for cachewarden.

Provides an isolated config environment, a fake origin server served through
:class:`httpx.MockTransport`, a ready-made agent configuration, and output
state management.  These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

import httpx
import pytest

from cachewarden.models import AgentConfig, CacheConfig
from cachewarden.output import OutputFormat, OutputManager, reset_output, set_output


ORIGIN = "http://localhost:5173"


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and its log handler after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()
    logger = logging.getLogger("cachewarden")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Fake origin server
# ---------------------------------------------------------------------------


Route = tuple[int, Union[bytes, str], str]


class FakeOrigin:
    """In-memory origin answering requests through an httpx.MockTransport.

    ``routes`` maps a path to ``(status, body, content_type)``.  Unknown paths
    answer 404.  Setting ``offline`` makes every request fail with a
    connection error; ``unreachable`` does the same for selected paths only.
Paths in ``looping`` redirect to themselves forever.
    Every request that reached the server is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Route] = {}
        self.requests: list[httpx.Request] = []
        self.offline = False
        self.unreachable: set[str] = set()
        self.looping: set[str] = set()

    def add(
        self,
        path: str,
        body: Union[bytes, str] = "",
        status: int = 200,
        content_type: str = "text/html",
    ) -> None:
        self.routes[path] = (status, body, content_type)

    def add_json(self, path: str, payload: Any, status: int = 200) -> None:
        import json

        self.add(path, json.dumps(payload), status, "application/json")

    def calls(self, path: Optional[str] = None, method: Optional[str] = None) -> int:
        """Number of requests received, optionally filtered by path and method."""
        return sum(
            1
            for r in self.requests
            if (path is None or r.url.path == path) and (method is None or r.method == method)
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline or request.url.path in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        self.requests.append(request)
        if request.url.path in self.looping:
            return httpx.Response(302, headers={"location": request.url.path})
        status, body, content_type = self.routes.get(
            request.url.path, (404, "Not Found", "text/plain")
        )
        return httpx.Response(status, content=body, headers={"content-type": content_type})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def origin_server() -> FakeOrigin:
    """A fake origin serving the default app shell."""
    server = FakeOrigin()
    server.add("/", "<html>shell</html>")
    server.add("/index.html", "<html>index</html>")
    server.add_json("/manifest.json", {"name": "Digital Sanctuary Bible"})
    server.add("/index.tsx", "import App from './App'", content_type="text/plain")
    server.add("/App.tsx", "export default App", content_type="text/plain")
    server.add("/assets/icon-192.png", b"\x89PNG-192", content_type="image/png")
    server.add("/assets/icon-512.png", b"\x89PNG-512", content_type="image/png")
    return server


@pytest.fixture
def agent_config(tmp_path: Path) -> AgentConfig:
    """Agent config for ORIGIN with its store under tmp_path."""
    return AgentConfig(
        origin=ORIGIN,
        cache=CacheConfig(directory=str(tmp_path / "store")),
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config.  Clears all CACHEWARDEN_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "CACHEWARDEN_ORIGIN",
        "CACHEWARDEN_BUILD_LABEL",
        "CACHEWARDEN_CONFIG",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner with the built-in commands registered."""
    from typer.testing import CliRunner

    from cachewarden.app import register_commands

    register_commands()
    return CliRunner()
