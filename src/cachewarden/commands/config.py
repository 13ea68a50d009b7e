"""Config commands -- view and modify the user configuration.

Provides the ``cachewarden config`` sub-command group for reading, updating,
and resetting the user's config file
(:class:`~cachewarden.models.AgentConfig`).  ``show`` prints the *effective*
configuration, after project config, environment variables, and CLI flags
have been applied; ``set`` and ``reset`` only touch the user file.
"""

from __future__ import annotations

from typing import Any

import typer

from cachewarden.commands._session import resolve_from_context
from cachewarden.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Example::

        cachewarden config show
        cachewarden --origin http://localhost:5173 config show --json
    """
    from cachewarden.config import get_config_path

    config = resolve_from_context(ctx)
    info(f"Config file: {get_config_path()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: Any, value: str) -> Any:
    """Coerce *value* to the type of the field's *current* value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'request.timeout')."
    ),
    value: str = typer.Argument(help="Value to set. Lists are comma-separated."),
) -> None:
    """Set a configuration value in the user config file.

    Uses dot notation for nested keys.  The value is coerced to match the
    existing field's type (bool, int, float, list, or str) and the result is
    validated against :class:`~cachewarden.models.AgentConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        cachewarden config set origin https://app.example
        cachewarden config set request.timeout 10
        cachewarden config set app_shell /,/index.html,/manifest.json
    """
    from cachewarden.config import load_agent_config, save_agent_config
    from cachewarden.exceptions import ConfigError
    from cachewarden.models import AgentConfig

    try:
        config = load_agent_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced

    try:
        new_config = AgentConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_agent_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the user configuration to defaults.

    Asks for confirmation unless ``--force`` is given.

    Example::

        cachewarden config reset
        cachewarden config reset --force
    """
    from cachewarden.config import save_agent_config
    from cachewarden.models import AgentConfig

    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_agent_config(AgentConfig())
    success("Configuration reset to defaults.")
