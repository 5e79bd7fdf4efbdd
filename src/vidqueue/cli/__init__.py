"""vidqueue CLI.

Package structure:
    cli/
    ├── __init__.py           # app assembly and global options
    ├── helpers.py            # logging state, config loading, executor factory
    ├── output.py             # Rich formatting
    └── commands/
        ├── run.py            # run command
        ├── validate.py       # validate command
        └── models.py         # models command
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from vidqueue import __version__

# Re-export helpers module for direct access to internal state (conftest.py needs this)
from . import helpers as helpers
from .commands import models, run, validate
from .helpers import (
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="vidqueue",
    help="Queue bulk video generation jobs with concurrency and rate limits",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"vidqueue v{__version__}")
        raise typer.Exit()


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="VIDQUEUE_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Write logs to this file (JSON lines)",
            envvar="VIDQUEUE_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log output format: console, json or both",
            envvar="VIDQUEUE_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """vidqueue - bulk video generation queue."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

app.command()(run)
app.command()(validate)
app.command()(models)


__all__ = ["app", "main"]
