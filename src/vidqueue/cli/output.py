"""Rich output formatting for the vidqueue CLI.

Centralizes status colours, the job table and error output so every command
renders jobs the same way.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from vidqueue.core.models import InputType, Job, JobStatus

# =============================================================================
# Shared console instance
# =============================================================================

console = Console()


# =============================================================================
# Status colours
# =============================================================================


class StatusColors:
    """Colour mappings for job status badges."""

    JOB_STATUS: dict[JobStatus, str] = {
        JobStatus.QUEUED: "white on grey37",
        JobStatus.PROCESSING: "white on blue",
        JobStatus.COMPLETED: "white on green",
        JobStatus.FAILED: "white on red",
    }

    @classmethod
    def get_job_color(cls, status: JobStatus) -> str:
        return cls.JOB_STATUS.get(status, "white")


def status_badge(status: JobStatus) -> Text:
    """Render a status as a coloured pill."""
    return Text(f" {status.value} ", style=StatusColors.get_job_color(status))


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


# =============================================================================
# Tables and panels
# =============================================================================


def create_jobs_table(jobs: Sequence[Job], title: str | None = None) -> Table:
    """Build the job queue table from a store snapshot."""
    table = Table(title=title or f"Job Queue ({len(jobs)})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Prompt", overflow="ellipsis", max_width=48)
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Aspect", no_wrap=True)
    table.add_column("Type", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Result / Error", overflow="fold")

    for index, job in enumerate(jobs, start=1):
        if job.status == JobStatus.COMPLETED:
            detail = Text(job.result_url or "", style="green")
        elif job.status == JobStatus.FAILED:
            detail = Text(job.error or "", style="red")
        else:
            detail = Text("")
        table.add_row(
            str(index),
            _truncate(job.prompt, 48),
            job.model,
            job.aspect_ratio,
            "Image" if job.input_type == InputType.IMAGE_TO_VIDEO else "Text",
            status_badge(job.status),
            detail,
        )
    return table


def create_summary_panel(jobs: Sequence[Job]) -> Panel:
    """Totals per status after a run."""
    counts = {status: 0 for status in JobStatus}
    for job in jobs:
        counts[job.status] += 1
    lines = [
        f"[green]Completed:[/green] {counts[JobStatus.COMPLETED]}",
        f"[red]Failed:[/red] {counts[JobStatus.FAILED]}",
    ]
    if counts[JobStatus.QUEUED]:
        lines.append(f"[yellow]Still queued:[/yellow] {counts[JobStatus.QUEUED]}")
    border = "red" if counts[JobStatus.FAILED] else "green"
    return Panel("\n".join(lines), title="Run Summary", border_style=border)


def output_error(
    message: str,
    *,
    hints: list[str] | None = None,
    console_instance: Console | None = None,
) -> None:
    """Print an error line with optional hints."""
    out = console_instance or console
    out.print(f"[red]Error:[/red] {message}")
    if hints:
        out.print()
        out.print("[dim]Hints:[/dim]")
        for hint in hints:
            out.print(f"  - {hint}")


__all__ = [
    "StatusColors",
    "console",
    "create_jobs_table",
    "create_summary_panel",
    "output_error",
    "status_badge",
]
