"""Helpers shared by the CLI command modules."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from metroai.config import get_settings
from metroai.engine import UploadOrchestrator

T = TypeVar("T")


def output(data: dict, as_json: bool, human_lines: list[str]) -> None:
    """Output data as JSON or human-readable lines."""
    if as_json:
        typer.echo(json.dumps(data, default=str))
    else:
        for line in human_lines:
            typer.echo(line)


def run_with_orchestrator(action: Callable[[UploadOrchestrator], Awaitable[T]]) -> T:
    """Build an orchestrator from settings, run an async action, close it."""

    async def _main() -> T:
        async with UploadOrchestrator(get_settings()) as orchestrator:
            return await action(orchestrator)

    return asyncio.run(_main())
