"""Configuration CLI commands."""

import json

import typer

from metroai.config import get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration - view current settings.",
    no_args_is_help=True,
)


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration."""
    settings = get_settings()

    config_data = {
        "api_base_url": settings.api_base_url,
        "upload_timeout": settings.upload_timeout,
        "max_retry_attempts": settings.max_retry_attempts,
        "watch_interval": settings.watch_interval,
        "photo_retention_days": settings.photo_retention_days,
        "current_username": settings.current_username,
        "data_dir": str(settings.data_path),
        "log_level": settings.log_level,
        "device_id": settings.device_id,
    }

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
    else:
        typer.echo("")
        typer.echo("MetroAI Configuration")
        typer.echo("---------------------")
        typer.echo(f"API URL: {settings.api_base_url}")
        typer.echo(f"Upload timeout: {settings.upload_timeout}s")
        typer.echo(f"Max retry attempts: {settings.max_retry_attempts}")
        typer.echo(f"Watch interval: {settings.watch_interval}s")
        typer.echo(f"Photo retention: {settings.photo_retention_days} days")
        typer.echo(f"Current user: {settings.current_username or '-'}")
        typer.echo(f"Data directory: {settings.data_path}")
        typer.echo(f"Log level: {settings.log_level}")
        typer.echo(f"Device ID: {settings.device_id or '-'}")
        typer.echo("")
        typer.echo("Set values using environment variables with METROAI_ prefix")
        typer.echo("Example: METROAI_MAX_RETRY_ATTEMPTS=5")
