"""cachewarden -- an offline-first caching agent for web application requests.

The agent sits between an application's outbound HTTP requests and the
network.  It seeds a versioned on-disk cache with the application shell at
install time, answers same-origin GET requests cache-first, falls back to
the cached shell when a navigation cannot reach the network, and runs
background hooks (deferred sync, scheduled sync, push delivery and
notification clicks) independently of any rendered page.

Typical workflow::

    cachewarden --origin http://localhost:5173 install
    cachewarden fetch /index.html
    cachewarden generations list

Modules:
    agent: Wires the store, lifecycle, strategy and hooks into one agent.
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
