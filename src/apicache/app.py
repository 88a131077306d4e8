"""Typer application and CLI entry point for apicache.

The ``apicache`` command is an operator tool for the durable tables that
a client application writes through :class:`~apicache.service.ApiCache`:
it reports statistics, sweeps and invalidates cached responses, and
manages the offline queue.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. :class:`~apicache.exceptions.ApiCacheError` exits with
its ``exit_code``; anything else is written to a crash log under the data
directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from apicache import __version__
from apicache.commands.cache import (
    clear_command,
    invalidate_command,
    stats_command,
    sweep_command,
)
from apicache.commands.config import config_app
from apicache.commands.queue import queue_app
from apicache.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="apicache",
    help="Inspect and maintain a persistent API response cache and offline write queue.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("stats")(stats_command)
app.command("sweep")(sweep_command)
app.command("invalidate")(invalidate_command)
app.command("clear")(clear_command)
app.add_typer(queue_app, name="queue", help="Offline write queue management.")
app.add_typer(config_app, name="config", help="Configuration management.")

_LOG_FORMAT = "%(name)s: %(message)s"


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"apicache {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool = False) -> None:
    """Route library log records to stderr through Rich; DEBUG with ``--verbose``, else WARNING."""
    root = logging.getLogger("apicache")
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not root.handlers:
        handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--dir", "-d", help="Cache directory (overrides config and APICACHE_DIR)."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback: set up output and logging, stash shared flags in ``ctx.obj``."""
    from apicache.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["dir"] = cache_dir
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from apicache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``apicache`` console script."""
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from apicache.exceptions import ApiCacheError
        from apicache.output import error

        if isinstance(exc, ApiCacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
