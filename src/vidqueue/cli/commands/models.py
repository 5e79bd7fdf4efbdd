"""``vidqueue models``: list selectable models and aspect ratios."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from ..helpers import load_config_or_exit
from ..output import console


def models(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a vidqueue YAML configuration file",
    ),
) -> None:
    """List the models and aspect ratios jobs may use."""
    config = load_config_or_exit(config_file, console)

    table = Table(title="Models")
    table.add_column("Model", style="cyan")
    table.add_column("API name")
    table.add_column("Default", justify="center")
    for name in config.models:
        table.add_row(
            name,
            config.gemini.api_model(name),
            "✓" if name == config.default_model else "",
        )
    console.print(table)

    ratios = ", ".join(
        f"[bold]{r}[/bold]" if r == config.default_aspect_ratio else r
        for r in config.aspect_ratios
    )
    console.print(f"Aspect ratios: {ratios}")
    limits = config.scheduler
    console.print(
        f"[dim]Limits: {limits.max_concurrent_jobs} concurrent, "
        f"{limits.rate_limit_job_count} per {limits.rate_limit_window_ms} ms[/dim]"
    )
