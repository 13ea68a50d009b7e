"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cachewarden:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachewarden/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Agent config** -- A single :class:`~cachewarden.models.AgentConfig`
  JSON file storing the origin, build label, app shell and hook settings.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and user config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from cachewarden.exceptions import ConfigError
from cachewarden.models import AgentConfig

_APP_NAME = "cachewarden"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "cachewarden.json"

ENV_CONFIG = "CACHEWARDEN_CONFIG"
ENV_ORIGIN = "CACHEWARDEN_ORIGIN"
ENV_BUILD_LABEL = "CACHEWARDEN_BUILD_LABEL"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachewarden/`` (default ``~/.config/cachewarden/``).
    On macOS/Windows: ``~/.cachewarden/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the generation store. Deleting it only costs a re-seed on the
    next install.

    On Linux/BSD: ``$XDG_CACHE_HOME/cachewarden/`` (default ``~/.cache/cachewarden/``).
    On macOS/Windows: ``~/.cachewarden/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cachewarden/`` (default ``~/.local/share/cachewarden/``).
    On macOS/Windows: ``~/.cachewarden/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_store_dir(config: AgentConfig) -> Path:
    """Return the generation store directory configured in *config*."""
    if config.cache.directory:
        return Path(config.cache.directory).expanduser()
    return get_cache_dir() / "generations"


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Agent config ---


def get_config_path() -> Path:
    """Path to the user config file, honouring ``CACHEWARDEN_CONFIG``."""
    override = os.environ.get(ENV_CONFIG)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, what: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {what} at {path}: expected a JSON object")
    return data


def load_agent_config() -> AgentConfig:
    """Load the user configuration.

    Returns:
        The deserialised :class:`~cachewarden.models.AgentConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = get_config_path()
    if not path.is_file():
        return AgentConfig()
    data = _read_json(path, "config")
    try:
        return AgentConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_agent_config(config: AgentConfig) -> Path:
    """Persist the user configuration atomically and return the file written."""
    path = get_config_path()
    data = config.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./cachewarden.json``.

    A repository typically pins its ``origin``, ``build_label`` and
    ``app_shell`` here so every checkout agrees on the shell.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Precedence resolution ---


def resolve_config(
    cli_origin: Optional[str] = None,
    cli_build_label: Optional[str] = None,
) -> AgentConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_origin``, ``cli_build_label``)
        2. Environment variables (``CACHEWARDEN_ORIGIN``, ``CACHEWARDEN_BUILD_LABEL``)
        3. Project config (``./cachewarden.json``)
        4. User config (``~/.config/cachewarden/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is unreadable or the merged result fails
            validation.
    """
    base = load_agent_config().model_dump(mode="json")

    project = load_project_config()
    if project is not None:
        base = _deep_merge(base, project)

    env_origin = os.environ.get(ENV_ORIGIN)
    if env_origin:
        base["origin"] = env_origin
    env_label = os.environ.get(ENV_BUILD_LABEL)
    if env_label:
        base["build_label"] = env_label

    if cli_origin is not None:
        base["origin"] = cli_origin
    if cli_build_label is not None:
        base["build_label"] = cli_build_label

    try:
        return AgentConfig.model_validate(base)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return *base* with *override* laid on top, merging nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
