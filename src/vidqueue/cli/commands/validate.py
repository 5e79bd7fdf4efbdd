"""``vidqueue validate``: check a batch file without running it.

Exit codes:
  0: every entry is a valid submission
  1: one or more entries are invalid
  2: the batch or config file cannot be read
"""

from __future__ import annotations

from pathlib import Path

import typer

from vidqueue.core.batch import load_batch
from vidqueue.core.errors import ConfigError

from ..helpers import load_config_or_exit
from ..output import console
from ._shared import build_batch_jobs


def validate(
    batch_file: Path = typer.Argument(
        ...,
        help="Path to a YAML batch file",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a vidqueue YAML configuration file",
    ),
) -> None:
    """Validate every job in a batch file."""
    config = load_config_or_exit(config_file, console)
    try:
        batch = load_batch(batch_file)
    except ConfigError as e:
        console.print(f"[red]Cannot validate:[/red] {e}")
        raise typer.Exit(2) from None

    jobs, problems = build_batch_jobs(batch, batch_file.parent, config)
    if problems:
        for index, message in problems:
            console.print(f"[red]✗[/red] Job {index}: {message}")
        console.print(f"[red]{len(problems)} of {len(batch.jobs)} job(s) invalid[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] {len(jobs)} job(s) valid")
