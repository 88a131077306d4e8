"""Config commands -- view and modify global configuration.

Provides the ``apicache config`` sub-command group for reading, updating
and resetting the user's global configuration file
(:class:`~apicache.models.GlobalConfig`): cache limits, TTL class
durations, the cleanup interval and the default output format.
"""

from __future__ import annotations

import typer

from apicache.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration (all layers merged).

    Example::

        apicache config show
        apicache --json config show
    """
    from apicache.config import get_config_dir, resolve_config
    from apicache.exceptions import ConfigError

    try:
        config = resolve_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cache.max_items')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the user config file.

    Uses dot notation for nested keys. The value is validated against
    :class:`~apicache.models.GlobalConfig` before saving, so bounds such as
    ``max_items >= 1`` are enforced.

    Example::

        apicache config set cache.max_items 1000
        apicache config set cache.ttl.short_seconds 120
        apicache config set cache.default_ttl_class long
    """
    from apicache.config import load_global_config, save_global_config
    from apicache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")

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

    current = target[final_key]
    if isinstance(current, bool):
        coerced: object = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the user config file to defaults. Asks unless ``--force``."""
    from apicache.config import save_global_config
    from apicache.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
