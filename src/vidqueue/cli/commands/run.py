"""``vidqueue run``: submit a batch file and process it until idle.

All jobs are validated before any is queued, so a batch with one bad entry
submits nothing. While jobs run, a live table shows each job's status.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.live import Live

from vidqueue.core.batch import load_batch
from vidqueue.core.config import QueueConfig
from vidqueue.core.errors import ConfigError, ExportError, NothingToExportError
from vidqueue.core.logging import get_logger
from vidqueue.core.models import Job, JobStatus
from vidqueue.export import export_archive
from vidqueue.queue.service import QueueService

from .. import helpers
from ..helpers import load_config_or_exit
from ..output import console, create_jobs_table, create_summary_panel, output_error
from ._shared import build_batch_jobs

_logger = get_logger("cli.run")

_REFRESH_SECONDS = 0.5


def run(
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
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Directory for downloaded videos (overrides config)",
    ),
    export: Path | None = typer.Option(
        None,
        "--export",
        "-e",
        help="Write all completed videos into this zip archive",
    ),
    retry_failed: bool = typer.Option(
        False,
        "--retry-failed/--no-retry-failed",
        help="Offer to retry failed jobs once the queue is idle",
    ),
) -> None:
    """Run every job in a batch file."""
    config = load_config_or_exit(config_file, console)
    if output_dir is not None:
        config = config.model_copy(update={"output_dir": output_dir})

    try:
        batch = load_batch(batch_file)
    except ConfigError as e:
        output_error(str(e))
        raise typer.Exit(2) from None

    jobs, problems = build_batch_jobs(batch, batch_file.parent, config)
    if problems:
        for index, message in problems:
            console.print(f"[red]✗[/red] Job {index}: {message}")
        output_error(
            "Batch not submitted",
            hints=["Run 'vidqueue validate' to check a batch file"],
        )
        raise typer.Exit(1)
    if not jobs:
        console.print("[yellow]No jobs in batch file.[/yellow]")
        return

    final = asyncio.run(_run_batch(config, jobs, export, retry_failed))

    console.print(create_summary_panel(final))
    if any(job.status == JobStatus.FAILED for job in final):
        raise typer.Exit(1)


async def _run_batch(
    config: QueueConfig,
    jobs: list[Job],
    export: Path | None,
    retry_failed: bool,
) -> list[Job]:
    service = QueueService(config, helpers.create_executor(config))
    try:
        for job in jobs:
            service.add(job)
        service.start()
        await _watch(service)

        failed = service.stats().failed
        if retry_failed and failed and typer.confirm(
            f"Retry {failed} failed job(s)?", default=True,
        ):
            service.retry_failed()
            await _watch(service)

        if export is not None:
            await _export(service.jobs(), export)
    finally:
        await service.aclose()
    return service.jobs()


async def _watch(service: QueueService) -> None:
    """Show the live job table until the queue goes idle."""
    with Live(
        create_jobs_table(service.jobs()),
        console=console,
        refresh_per_second=4,
    ) as live:
        while True:
            try:
                await asyncio.wait_for(
                    service.scheduler.wait_until_idle(), _REFRESH_SECONDS,
                )
                break
            except TimeoutError:
                live.update(create_jobs_table(service.jobs()))
        live.update(create_jobs_table(service.jobs()))


async def _export(jobs: list[Job], destination: Path) -> None:
    try:
        written = await export_archive(jobs, destination)
    except NothingToExportError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return
    except ExportError as e:
        output_error(f"Export failed: {e}")
        return
    console.print(f"[green]Exported {len(written)} video(s) to {destination}[/green]")
    _logger.info("cli.exported", path=str(destination), entries=len(written))
