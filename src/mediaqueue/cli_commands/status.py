"""Status command for mediaqueue CLI."""

import json

import typer

from mediaqueue.config import get_settings
from mediaqueue.sync import SQLiteRecordStore

_EMPTY_STATS = {"pending": 0, "in_flight": 0, "failed": 0, "total": 0}


def _get_queue_stats() -> dict:
    """Get upload queue statistics without touching the network."""
    db_path = get_settings().queue_db_path
    if not db_path.exists():
        return dict(_EMPTY_STATS)

    with SQLiteRecordStore(db_path) as store:
        return store.count_by_status()


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show upload queue status.

    Displays how many uploads are pending, in flight and failed.
    """
    settings = get_settings()
    stats = _get_queue_stats()

    status_data = {
        "queue_total": stats.get("total", 0),
        "queue_pending": stats.get("pending", 0),
        "queue_in_flight": stats.get("in_flight", 0),
        "queue_failed": stats.get("failed", 0),
        "server_url": settings.server_url,
        "data_dir": str(settings.data_path),
    }

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("Upload Queue Status")
    typer.echo("-------------------")
    typer.echo(f"Server: {settings.server_url}")
    typer.echo(f"Queue: {stats.get('pending', 0)} pending uploads")
    if stats.get("in_flight", 0) > 0:
        typer.echo(f"In flight: {stats.get('in_flight', 0)} uploads")
    if stats.get("failed", 0) > 0:
        typer.echo(f"Failed: {stats.get('failed', 0)} uploads")
        typer.echo("Retry them with: mediaqueue queue retry --all")
    typer.echo("")
