"""CLI command modules for the MetroAI uploader."""

from metroai.cli_commands.auth import auth_app
from metroai.cli_commands.config import config_app
from metroai.cli_commands.queue import queue_app
from metroai.cli_commands.status import stats_app, status_command

__all__ = ["auth_app", "config_app", "queue_app", "stats_app", "status_command"]
