"""Queue management CLI commands."""

import asyncio
import json
import mimetypes
import signal
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer

from mediaqueue.config import get_settings
from mediaqueue.logging import setup_logging
from mediaqueue.service import SyncService
from mediaqueue.sync import MediaKind, NotFound, QueueManager, UploadRecord, UploadStatus

queue_app = typer.Typer(
    name="queue",
    help="Queue management - add, inspect, retry and cancel uploads.",
    no_args_is_help=True,
)


def _output(data: Any, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


def _record_dict(record: UploadRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "status": record.status.value,
        "kind": record.payload.kind.value,
        "filename": record.payload.filename,
        "size": record.payload.size,
        "retry_count": record.retry_count,
        "created_at": record.created_at.isoformat(),
        "last_error": record.last_error,
    }


def _guess_kind(path: Path) -> MediaKind | None:
    mime, _ = mimetypes.guess_type(path.name)
    if mime is None:
        return None
    major = mime.split("/", 1)[0]
    if major == "image":
        return MediaKind.IMAGE
    if major == "video":
        return MediaKind.VIDEO
    return None


def _run(action: Callable[[QueueManager], Awaitable[Any]], sync: bool = False) -> Any:
    """Run an action against the queue, optionally followed by a sync pass."""

    async def runner() -> Any:
        service = SyncService(get_settings())
        service.open()
        try:
            result = await action(service.manager)
            if sync:
                await service.sync_once()
            return result
        finally:
            await service.stop()

    return asyncio.run(runner())


@queue_app.command(name="list")
def list_records(
    status: UploadStatus | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show uploads in this status",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List queued uploads."""
    records = _run(lambda manager: manager.records(status))
    data = [_record_dict(r) for r in records]

    if output_json:
        typer.echo(json.dumps(data))
        return

    if not data:
        typer.echo("Queue is empty.")
        return

    for item in data:
        line = (
            f"{item['id']}  {item['status']:<9}  {item['kind']:<5}  "
            f"{item['filename']} ({item['size']} bytes, retries: {item['retry_count']})"
        )
        typer.echo(line)
        if item["last_error"]:
            typer.echo(f"    last error: {item['last_error']}")


@queue_app.command()
def enqueue(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    kind: MediaKind | None = typer.Option(
        None,
        "--kind",
        "-k",
        help="Media kind (default: guessed from the file extension)",
    ),
    sync: bool = typer.Option(
        False,
        "--sync",
        help="Try to upload right away",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Add a photo or video to the upload queue."""
    media_kind = kind or _guess_kind(file)
    if media_kind is None:
        _output(
            {"status": "error", "message": "Cannot determine media kind"},
            output_json,
            f"Cannot tell whether {file.name} is an image or a video. Use --kind.",
        )
        raise typer.Exit(1)

    data = file.read_bytes()
    upload_id = _run(
        lambda manager: manager.enqueue(data, media_kind, file.name),
        sync=sync,
    )
    _output(
        {"status": "queued", "id": upload_id, "kind": media_kind.value},
        output_json,
        f"Queued {file.name} ({media_kind.value}) as {upload_id}",
    )


@queue_app.command()
def retry(
    upload_id: str | None = typer.Argument(None, help="Upload ID to retry"),
    all_failed: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Retry every failed upload",
    ),
    sync: bool = typer.Option(
        False,
        "--sync",
        help="Try to upload right away",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Move failed uploads back to pending."""
    if all_failed:
        count = _run(lambda manager: manager.retry_all_failed(), sync=sync)
        _output(
            {"status": "retrying", "count": count},
            output_json,
            f"{count} failed upload{'s' if count != 1 else ''} queued for retry.",
        )
        return

    if not upload_id:
        _output(
            {"status": "error", "message": "Upload ID or --all required"},
            output_json,
            "Pass an upload ID or --all.",
        )
        raise typer.Exit(1)

    try:
        _run(lambda manager: manager.retry(upload_id), sync=sync)
    except NotFound as e:
        _output({"status": "error", "message": str(e)}, output_json, str(e))
        raise typer.Exit(1)

    _output(
        {"status": "retrying", "id": upload_id},
        output_json,
        f"Upload {upload_id} queued for retry.",
    )


@queue_app.command()
def cancel(
    upload_id: str = typer.Argument(..., help="Upload ID to remove"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Remove an upload from the queue."""
    _run(lambda manager: manager.cancel(upload_id))
    _output(
        {"status": "cancelled", "id": upload_id},
        output_json,
        f"Upload {upload_id} removed from queue.",
    )


@queue_app.command()
def clear(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """Abandon every queued upload."""
    if not yes:
        typer.confirm("Remove every queued upload?", abort=True)
    _run(lambda manager: manager.clear())
    typer.echo("Upload queue cleared.")


@queue_app.command()
def drain(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Upload pending items now, if the server is reachable."""

    async def runner() -> dict[str, Any]:
        service = SyncService(get_settings())
        try:
            return await service.sync_once()
        finally:
            await service.stop()

    status = asyncio.run(runner())
    queue = status["queue"]

    if not status["reachable"]:
        _output(
            status,
            output_json,
            f"Server {status['server_url']} is unreachable; {queue['pending']} uploads still pending.",
        )
        raise typer.Exit(1)

    _output(
        status,
        output_json,
        f"Sync complete: {queue['pending']} pending, {queue['failed']} failed.",
    )


@queue_app.command()
def serve() -> None:
    """Run the sync service until interrupted.

    Uploads whenever the server becomes reachable, and sweeps the queue
    periodically for uploads added by other processes.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.device_id)

    async def runner() -> None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        async with SyncService(settings):
            await stop_event.wait()

    typer.echo(f"Syncing uploads to {settings.server_url}. Press Ctrl+C to stop.")
    asyncio.run(runner())
