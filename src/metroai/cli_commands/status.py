"""Status and stats commands for the MetroAI CLI."""

import json

import typer

from metroai.cli_commands.common import run_with_orchestrator
from metroai.engine import UploadOrchestrator
from metroai.sync.errors import UploadError
from metroai.sync.models import LeaderboardEntry

stats_app = typer.Typer(
    name="stats",
    help="Upload statistics and the points leaderboard.",
    no_args_is_help=True,
)


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show upload queue status.

    Displays queue counts per status, sign-in state, and local stats.
    """

    async def _action(orchestrator: UploadOrchestrator) -> dict:
        return orchestrator.get_status()

    status_data = run_with_orchestrator(_action)
    queue = status_data["queue"]

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("MetroAI Upload Status")
    typer.echo("---------------------")
    typer.echo(f"Signed in: {'yes' if status_data['authenticated'] else 'no'}")
    typer.echo(f"Queue: {queue['pending']} pending, {queue['uploading']} uploading")
    typer.echo(f"Uploaded: {queue['uploaded']}")
    if queue["failed"] > 0:
        typer.echo(f"Failed: {queue['failed']} uploads (retry with: metroai queue retry-all)")
    stats = status_data["stats"]
    if stats:
        typer.echo(f"Points: {stats['total_points']} ({stats['photos_uploaded']} photos)")
    typer.echo("")


@stats_app.command()
def show(
    refresh: bool = typer.Option(
        False,
        "--refresh",
        "-r",
        help="Fetch the latest stats from the server first",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show the current user's points and upload count."""

    async def _action(orchestrator: UploadOrchestrator) -> dict | None:
        if refresh:
            await orchestrator.refresh_stats()
        return orchestrator.get_status()["stats"]

    try:
        stats = run_with_orchestrator(_action)
    except UploadError as e:
        typer.echo(f"Failed to refresh stats: {e}")
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps(stats))
    elif stats is None:
        typer.echo("No stats yet. Set METROAI_CURRENT_USERNAME and upload a photo.")
    else:
        typer.echo(f"Photos uploaded: {stats['photos_uploaded']}")
        typer.echo(f"Total points: {stats['total_points']}")
        if stats["current_rank"]:
            typer.echo(f"Rank: #{stats['current_rank']}")
        typer.echo(f"Last synced: {stats['last_synced_at'] or 'never'}")


@stats_app.command()
def leaderboard(
    limit: int = typer.Option(50, "--limit", "-l", min=1, help="Number of entries to show"),
    offset: int = typer.Option(0, "--offset", min=0, help="Entries to skip"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show the points leaderboard and record your rank."""

    async def _action(orchestrator: UploadOrchestrator) -> tuple[list[LeaderboardEntry], str | None]:
        entries = await orchestrator.fetch_leaderboard(limit=limit, offset=offset)
        return entries, orchestrator.config.current_username

    try:
        entries, username = run_with_orchestrator(_action)
    except UploadError as e:
        typer.echo(f"Failed to fetch leaderboard: {e}")
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps([entry.to_dict() for entry in entries]))
        return

    if not entries:
        typer.echo("Leaderboard is empty.")
        return

    for entry in entries:
        marker = "*" if username in (entry.username, entry.user_id) else " "
        typer.echo(f"{marker} #{entry.rank:<4} {entry.username:<24} {entry.points} pts")
