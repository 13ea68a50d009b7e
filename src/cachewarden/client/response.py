"""Response formatting bridge -- maps a :class:`ResponseArtifact` to the output system.

After the agent resolves a request, :func:`format_artifact` emits the status
line (and where the response came from) to stderr and routes the body
through :meth:`~cachewarden.output.OutputManager.format_response`.

See Also:
    :mod:`cachewarden.output` -- the output manager that renders data.
"""

from __future__ import annotations

from typing import Any

from cachewarden.models import ResponseArtifact
from cachewarden.output import get_output


def format_artifact(artifact: ResponseArtifact, source: str = "") -> None:
    """Print a resolved response using the global output system.

    Args:
        artifact: The response to display.
        source: Optional provenance label (``cache``, ``network``,
            ``fallback``) appended to the status line.
    """
    output = get_output()

    status = f"HTTP {artifact.status_code} {artifact.reason}".rstrip()
    if source:
        status = f"{status} ({source})"
    output.info(status)

    data = extract_artifact_data(artifact)
    if data is not None:
        output.format_response(data, artifact.content_type or "application/json")


def extract_artifact_data(artifact: ResponseArtifact) -> Any:
    """Extract the body of *artifact* for display.

    JSON bodies are decoded, text bodies returned as ``str``, binary bodies
    summarised by size.  Returns ``None`` for an empty body.
    """
    if not artifact.body:
        return None

    try:
        return artifact.json()
    except ValueError:
        pass

    content_type = artifact.content_type
    if content_type and not content_type.startswith("text/") and "javascript" not in content_type:
        try:
            artifact.body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<{len(artifact.body)} bytes of {content_type}>"
    return artifact.text
