"""Queue commands -- inspect and manage the offline write queue.

Replaying needs a transport, so there is no ``replay`` command here; use
:meth:`apicache.client.CachingClient.replay` from the application. These
commands cover what an operator needs: seeing what is pending, dropping a
request that will never succeed, and recovering dead letters.
"""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from apicache.commands.cache import open_cache
from apicache.exit_codes import EXIT_NOT_FOUND
from apicache.output import error, info, print_table, success

queue_app = typer.Typer(no_args_is_help=True)


def _fmt_ms(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@queue_app.command("list")
def queue_list(ctx: typer.Context) -> None:
    """List pending requests in replay order."""
    cache = open_cache(ctx)
    try:
        entries = cache.list_pending()
    finally:
        cache.close()

    if not entries:
        info("Offline queue is empty.")
        return
    rows = [
        [str(e.id), e.method, e.url, _fmt_ms(e.enqueued_at), str(e.retry_count)]
        for e in entries
    ]
    print_table(["ID", "Method", "URL", "Enqueued (UTC)", "Retries"], rows, title="Offline queue")


@queue_app.command("dead")
def queue_dead(ctx: typer.Context) -> None:
    """List dead letters (requests that will not be replayed automatically)."""
    cache = open_cache(ctx)
    try:
        letters = cache.list_dead_letters()
    finally:
        cache.close()

    if not letters:
        info("No dead letters.")
        return
    rows = [
        [str(d.entry.id), d.entry.method, d.entry.url, str(d.entry.retry_count), d.reason]
        for d in letters
    ]
    print_table(["ID", "Method", "URL", "Retries", "Reason"], rows, title="Dead letters")


@queue_app.command("drop")
def queue_drop(
    ctx: typer.Context,
    entry_id: int = typer.Argument(help="Id of the pending request to drop."),
) -> None:
    """Remove one pending request without replaying it."""
    cache = open_cache(ctx)
    try:
        if cache.queue.get(entry_id) is None:
            error(f"No pending request with id {entry_id}")
            raise typer.Exit(code=EXIT_NOT_FOUND)
        cache.remove(entry_id)
    finally:
        cache.close()
    success(f"Dropped request {entry_id}.")


@queue_app.command("retry")
def queue_retry(
    ctx: typer.Context,
    entry_id: int = typer.Argument(help="Id of the dead letter to requeue."),
) -> None:
    """Move a dead letter back to the pending queue."""
    cache = open_cache(ctx)
    try:
        new_id = cache.requeue_dead_letter(entry_id)
    finally:
        cache.close()
    if new_id is None:
        error(f"No dead letter with id {entry_id}")
        raise typer.Exit(code=EXIT_NOT_FOUND)
    success(f"Requeued dead letter {entry_id} as {new_id}.")


@queue_app.command("purge-dead")
def queue_purge_dead(ctx: typer.Context) -> None:
    """Delete all dead letters. Asks for confirmation unless ``--force``."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Delete all dead letters?"):
        info("Cancelled.")
        raise typer.Exit()

    cache = open_cache(ctx)
    try:
        removed = cache.purge_dead_letters()
    finally:
        cache.close()
    success(f"Purged {removed} dead letters.")
