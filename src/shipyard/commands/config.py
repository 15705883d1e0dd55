"""Config commands -- view and modify the global configuration.

Provides the ``shipyard config`` sub-command group for reading, updating
and resetting :class:`~shipyard.models.GlobalConfig`: tool paths, the
``run-wasm`` server address, wasm defaults and the build timeout.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from shipyard.commands import reporting_errors
from shipyard.exceptions import InvalidUsageError


config_app = typer.Typer(no_args_is_help=True)


def _coerce(key: str, current: Any, value: str) -> Any:
    """Convert *value* to the type of the field's *current* value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            raise InvalidUsageError(f"Expected integer for {key}, got: {value}") from None
    if current is None and value.lower() in ("", "none", "null"):
        return None
    return value


def set_value(data: dict, key: str, value: str) -> Any:
    """Assign *value* to the dot-separated *key* inside *data* in place.

    Returns:
        The coerced value that was stored.

    Raises:
        InvalidUsageError: If the key path does not exist or the value
            cannot be coerced.
    """
    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            raise InvalidUsageError(f"Invalid config key: {key}")
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        raise InvalidUsageError(f"Unknown config key: {key}")

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced
    return coerced


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Example::

        shipyard config show
        shipyard --json config show
    """
    from shipyard.config import get_config_dir, load_global_config
    from shipyard.output import format_response, info

    with reporting_errors():
        config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'server.port')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to the type
    of the existing field and the result is validated before saving.

    Example::

        shipyard config set tools.wix C:/wix/wix.exe
        shipyard config set server.port 9000
        shipyard config set wasm.package counter
    """
    from shipyard.config import load_global_config, save_global_config
    from shipyard.models import GlobalConfig
    from shipyard.output import success

    with reporting_errors():
        data = load_global_config().model_dump(mode="json")
        coerced = set_value(data, key, value)
        try:
            new_config = GlobalConfig.model_validate(data)
        except ValidationError as exc:
            raise InvalidUsageError(
                f"Invalid value for {key}: {exc.errors()[0]['msg']}"
            ) from exc
        save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        shipyard config reset
        shipyard --force config reset
    """
    from shipyard.config import save_global_config
    from shipyard.models import GlobalConfig
    from shipyard.output import info, success

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")


@config_app.command("path")
def config_path() -> None:
    """Print the path of the global config file."""
    from shipyard.config import global_config_path
    from shipyard.output import print_data

    print_data(str(global_config_path()))
