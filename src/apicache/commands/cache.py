"""Cache commands -- inspect and prune the response cache from a shell.

Every command resolves the effective configuration (see
:func:`~apicache.config.resolve_config`), opens the tables in the
configured directory, runs one operation and closes them again. No
background scheduler is started from the CLI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer

from apicache.output import error, format_response, info, success

if TYPE_CHECKING:
    from apicache.service import ApiCache


def open_cache(ctx: typer.Context) -> ApiCache:
    """Open the :class:`~apicache.service.ApiCache` for the active configuration.

    Raises:
        typer.Exit: With code 2 when the configuration is invalid.
    """
    from apicache.config import resolve_config
    from apicache.exceptions import ConfigError
    from apicache.service import ApiCache

    cli_dir = ctx.obj.get("dir") if ctx.obj else None
    try:
        config = resolve_config(cli_dir=cli_dir)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    return ApiCache.from_config(config.cache)


def stats_command(ctx: typer.Context) -> None:
    """Show cache and offline-queue statistics.

    Example::

        apicache stats
        apicache --json stats
    """
    cache = open_cache(ctx)
    try:
        report = cache.stats()
    finally:
        cache.close()
    info(f"Cache directory: {cache.directory}")
    format_response(report.model_dump(mode="json"))


def sweep_command(
    ctx: typer.Context,
    max_items: Optional[int] = typer.Option(
        None, "--max-items", min=1, help="Item cap for this pass (default: configured max_items)."
    ),
) -> None:
    """Remove expired entries, then the oldest entries above the cap.

    Example::

        apicache sweep
        apicache sweep --max-items 100
    """
    cache = open_cache(ctx)
    try:
        removed = cache.evict(max_items)
    finally:
        cache.close()
    format_response({"removed": removed})
    success(f"Removed {removed} cache entries.")


def invalidate_command(
    ctx: typer.Context,
    pattern: str = typer.Argument(help="Substring of the cache key (URL part) to match."),
    regex: bool = typer.Option(False, "--regex", "-r", help="Treat PATTERN as a regular expression."),
) -> None:
    """Delete every cached response whose key matches PATTERN.

    Example::

        apicache invalidate /bookings/
        apicache invalidate --regex '^GET:.*/reviews\\?'
    """
    from apicache.exceptions import PatternError

    cache = open_cache(ctx)
    try:
        removed = cache.invalidate(pattern, regex=regex)
    except PatternError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    finally:
        cache.close()
    format_response({"removed": removed})
    success(f"Invalidated {removed} cache entries.")


def clear_command(ctx: typer.Context) -> None:
    """Delete every cached response. Asks for confirmation unless ``--force``.

    The offline queue is left untouched.
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Delete all cached responses?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    cache = open_cache(ctx)
    try:
        removed = cache.clear()
    finally:
        cache.close()
    format_response({"removed": removed})
    success(f"Cleared {removed} cache entries.")
