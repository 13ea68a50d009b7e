"""Load the app-shell manifest from config, a local file, or a URL.

The manifest is the ordered list of paths seeded into a new cache generation
at install time.  It normally lives in the agent config
(:attr:`~cachewarden.models.AgentConfig.app_shell`), but a deploy step can
also emit it as a JSON or YAML document and point
:attr:`~cachewarden.models.AgentConfig.manifest_source` at it.  Two document
shapes are accepted::

    ["/", "/index.html", "/assets/icon-192.png"]

    {"app_shell": ["/", "/index.html"]}

Order is preserved and duplicates are dropped, keeping the first occurrence.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import yaml

from cachewarden.exceptions import ManifestError
from cachewarden.models import AgentConfig


def manifest_for(config: AgentConfig) -> list[str]:
    """Return the manifest the agent should seed for *config*.

    ``manifest_source`` wins over the inline ``app_shell`` list when set.

    Raises:
        ManifestError: If the external source cannot be loaded or parsed.
    """
    if config.manifest_source:
        return load_manifest(config.manifest_source)
    return normalise_manifest(config.app_shell)


def load_manifest(source: str) -> list[str]:
    """Load a manifest from a URL (http/https) or a file path.

    Raises:
        ManifestError: If the source cannot be read or has the wrong shape.
    """
    if source.startswith(("http://", "https://")):
        raw = _load_from_url(source)
    else:
        raw = _load_from_file(source)
    return normalise_manifest(_extract_paths(raw))


def normalise_manifest(paths: list[Any]) -> list[str]:
    """Validate manifest entries, keeping order and dropping duplicates."""
    seen: set[str] = set()
    result: list[str] = []
    for entry in paths:
        if not isinstance(entry, str) or not entry.strip():
            raise ManifestError(f"Manifest entries must be non-empty strings, got {entry!r}")
        path = entry.strip()
        if path not in seen:
            seen.add(path)
            result.append(path)
    return result


def _extract_paths(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("app_shell"), list):
        return raw["app_shell"]
    raise ManifestError(
        "Manifest must be a list of paths or an object with an 'app_shell' list"
    )


def _load_from_url(url: str) -> Any:
    """Fetch a manifest document over HTTP(S)."""
    try:
        response = httpx.get(url, timeout=30.0, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise ManifestError(
            f"HTTP {exc.response.status_code} fetching manifest from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise ManifestError(f"Failed to fetch manifest from {url}: {exc}") from exc

    content_type = response.headers.get("content-type", "")
    hint = ""
    if "json" in content_type:
        hint = "json"
    elif "yaml" in content_type or "yml" in content_type:
        hint = "yaml"
    return _parse_content(response.text, hint=hint)


def _load_from_file(path: str) -> Any:
    """Read a manifest document from disk, using the extension as a format hint."""
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise ManifestError(f"Manifest file not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Failed to read manifest file {path}: {exc}") from exc

    if not content.strip():
        raise ManifestError(f"Manifest file is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"
    return _parse_content(content, hint=hint)


def _parse_content(content: str, hint: str = "") -> Any:
    """Parse content as JSON or YAML.

    Tries JSON first (unless hinted as YAML) since valid JSON is also
    valid YAML but the JSON parser is stricter.
    """
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise ManifestError(f"Invalid JSON manifest: {exc}") from exc

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = "Failed to parse manifest as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise ManifestError(msg) from exc
