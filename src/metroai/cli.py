"""MetroAI CLI - Command-line interface for the capture upload queue."""

import typer

from metroai import __version__
from metroai.cli_commands import auth_app, config_app, queue_app, stats_app, status_command
from metroai.config import get_settings
from metroai.logging import setup_logging

app = typer.Typer(
    name="metroai",
    help="MetroAI uploader - offline queue for metro defect reports.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(queue_app, name="queue")
app.add_typer(auth_app, name="auth")
app.add_typer(config_app, name="config")
app.add_typer(stats_app, name="stats")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"metroai-uploader {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """MetroAI uploader - offline queue for metro defect reports."""
    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_file, device_id=settings.device_id)


# Register status as a direct command on the main app
app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
