"""Upload queue CLI commands."""

from pathlib import Path

import typer

from metroai.cli_commands.common import output, run_with_orchestrator
from metroai.engine import UploadOrchestrator
from metroai.sync.errors import InvalidTransitionError, LocalIOError, RecordNotFoundError, StoreError
from metroai.sync.models import CaptureRecord, RunSummary, UploadStatus

queue_app = typer.Typer(
    name="queue",
    help="Upload queue - add, list, upload, retry, and delete captures.",
    no_args_is_help=True,
)


def _record_dict(record: CaptureRecord) -> dict:
    return {
        "id": record.id,
        "status": record.status.value,
        "defect_type_id": record.defect_type_id,
        "captured_at": record.captured_at.isoformat(),
        "uploaded_at": record.uploaded_at.isoformat() if record.uploaded_at else None,
        "retry_count": record.retry_count,
        "station_id": record.station_id,
        "location": record.location_string,
        "last_error": record.last_error,
    }


def _summary_lines(summary: RunSummary) -> list[str]:
    if summary.skipped:
        return ["Upload already in progress."]
    lines = [
        f"Uploaded: {summary.uploaded}",
        f"Waiting for retry: {summary.requeued}",
    ]
    if summary.repaired:
        lines.append(f"Recovered interrupted uploads: {summary.repaired}")
    if summary.failed:
        lines.append(f"Failed permanently: {summary.failed}")
    if summary.auth_required:
        lines.append("Authentication required. Run: metroai auth login --token <token>")
    return lines


def _fail(message: str, as_json: bool) -> None:
    output({"status": "error", "message": message}, as_json, [message])
    raise typer.Exit(1)


@queue_app.command()
def add(
    image: Path = typer.Argument(..., help="Path of the captured JPEG image"),
    defect: str = typer.Option(..., "--defect", "-d", help="Defect type ID"),
    notes: str = typer.Option(None, "--notes", "-n", help="Free text notes"),
    latitude: float = typer.Option(None, "--lat", help="GPS latitude"),
    longitude: float = typer.Option(None, "--lon", help="GPS longitude"),
    accuracy: float = typer.Option(None, "--accuracy", help="Location accuracy in meters"),
    station: str = typer.Option(None, "--station", "-s", help="Station ID"),
    thumbnail: Path = typer.Option(None, "--thumbnail", help="Thumbnail image path"),
    no_upload: bool = typer.Option(
        False,
        "--no-upload",
        help="Only queue the capture, do not start an upload run",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Queue a captured image for upload."""

    async def _action(orchestrator: UploadOrchestrator) -> tuple[CaptureRecord, RunSummary | None]:
        record = orchestrator.add_capture(
            image,
            defect_type_id=defect,
            notes=notes,
            latitude=latitude,
            longitude=longitude,
            location_accuracy=accuracy,
            station_id=station,
            thumbnail_path=thumbnail,
        )
        summary = None if no_upload else await orchestrator.process_queue()
        return orchestrator.store.get(record.id), summary

    try:
        record, summary = run_with_orchestrator(_action)
    except (LocalIOError, StoreError, ValueError) as e:
        _fail(str(e), output_json)

    data = {"status": "queued", "record": _record_dict(record)}
    lines = [f"Queued capture {record.id} ({record.status.value})"]
    if summary is not None:
        data["run"] = summary.to_dict()
        lines.extend(_summary_lines(summary))
    output(data, output_json, lines)


@queue_app.command(name="list")
def list_records(
    status: UploadStatus = typer.Option(None, "--status", help="Only show this status"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List queued captures, oldest first."""

    async def _action(orchestrator: UploadOrchestrator) -> list[CaptureRecord]:
        return orchestrator.list_records(status)

    records = run_with_orchestrator(_action)

    lines = [
        f"{r.id}  {r.status.value:<9}  retries={r.retry_count}  "
        f"defect={r.defect_type_id}  captured={r.captured_at:%Y-%m-%d %H:%M:%S}"
        for r in records
    ] or ["Queue is empty."]
    output({"records": [_record_dict(r) for r in records]}, output_json, lines)


@queue_app.command()
def process(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Upload all pending captures now."""

    async def _action(orchestrator: UploadOrchestrator) -> RunSummary:
        return await orchestrator.process_queue()

    summary = run_with_orchestrator(_action)
    output(summary.to_dict(), output_json, _summary_lines(summary))


@queue_app.command()
def retry(
    record_id: str = typer.Argument(..., help="ID of the capture to retry"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Reset a failed capture and run the queue."""

    async def _action(orchestrator: UploadOrchestrator) -> RunSummary:
        return await orchestrator.retry_record(record_id)

    try:
        summary = run_with_orchestrator(_action)
    except (RecordNotFoundError, InvalidTransitionError) as e:
        _fail(str(e), output_json)
    output(summary.to_dict(), output_json, _summary_lines(summary))


@queue_app.command(name="retry-all")
def retry_all(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Reset every failed capture and run the queue."""

    async def _action(orchestrator: UploadOrchestrator) -> RunSummary:
        return await orchestrator.retry_all_failed()

    summary = run_with_orchestrator(_action)
    output(summary.to_dict(), output_json, _summary_lines(summary))


@queue_app.command()
def delete(
    record_id: str = typer.Argument(..., help="ID of the capture to delete"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Delete a capture and its image files."""

    async def _action(orchestrator: UploadOrchestrator) -> None:
        orchestrator.delete_record(record_id)

    try:
        run_with_orchestrator(_action)
    except RecordNotFoundError as e:
        _fail(str(e), output_json)
    output({"status": "deleted", "id": record_id}, output_json, [f"Deleted {record_id}"])


@queue_app.command()
def cleanup(
    days: int = typer.Option(
        None,
        "--days",
        min=0,
        help="Retention in days, 0 removes every uploaded capture (default: from config)",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Remove uploaded captures older than the retention period."""

    async def _action(orchestrator: UploadOrchestrator) -> int:
        return orchestrator.cleanup(days)

    removed = run_with_orchestrator(_action)
    output({"removed": removed}, output_json, [f"Removed {removed} uploaded captures."])


@queue_app.command()
def watch(
    interval: int = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between queue runs (default: from config)",
    ),
) -> None:
    """Keep uploading in the foreground until interrupted."""

    async def _action(orchestrator: UploadOrchestrator) -> None:
        await orchestrator.watch(float(interval) if interval else None)

    typer.echo("Watching upload queue. Press Ctrl+C to stop.")
    try:
        run_with_orchestrator(_action)
    except KeyboardInterrupt:
        typer.echo("\nStopped.")
