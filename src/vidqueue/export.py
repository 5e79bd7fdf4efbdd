"""Bulk export and single-job download of generated videos.

Pure glue over already-resolved jobs: nothing here touches scheduling.
Artifacts are read from a local path or fetched over http(s) with httpx.
"""

from __future__ import annotations

import re
import shutil
import zipfile
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlparse

import httpx

from vidqueue.core.errors import ExportError, NothingToExportError
from vidqueue.core.logging import get_logger
from vidqueue.core.models import Job, JobStatus

_logger = get_logger("export")

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)
_PROMPT_PREFIX_CHARS = 30


def exportable_jobs(jobs: Iterable[Job]) -> list[Job]:
    """Completed jobs that carry a result reference, in queue order."""
    return [
        job for job in jobs
        if job.status == JobStatus.COMPLETED and job.result_url
    ]


def archive_entry_name(index: int, job: Job) -> str:
    """Zip entry name: ``video_<n>_<first 30 prompt chars, sanitized>.mp4``."""
    sanitized = _UNSAFE_CHARS.sub("_", job.prompt[:_PROMPT_PREFIX_CHARS])
    return f"video_{index}_{sanitized}.mp4"


async def fetch_artifact(result_url: str, client: httpx.AsyncClient | None = None) -> bytes:
    """Read a result reference: a local path, ``file://`` URL or http(s) URL.

    Raises:
        ExportError: If the artifact cannot be read.
    """
    parsed = urlparse(result_url)
    if parsed.scheme in ("http", "https"):
        if client is None:
            async with httpx.AsyncClient(follow_redirects=True) as own_client:
                return await _fetch_http(own_client, result_url)
        return await _fetch_http(client, result_url)

    path = Path(parsed.path) if parsed.scheme == "file" else Path(result_url)
    try:
        return path.read_bytes()
    except OSError as e:
        raise ExportError(f"Cannot read {path}: {e}") from e


async def _fetch_http(client: httpx.AsyncClient, url: str) -> bytes:
    try:
        response = await client.get(url)
    except httpx.RequestError as e:
        raise ExportError(f"Cannot fetch {url}: {e}") from e
    if not response.is_success:
        raise ExportError(f"Cannot fetch {url}: HTTP {response.status_code}")
    return response.content


async def export_archive(
    jobs: Iterable[Job],
    destination: Path,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[str]:
    """Write every completed job's video into one zip archive.

    Entries are numbered in queue order. An artifact that cannot be fetched
    is logged and left out; the rest are still written.

    Returns:
        Names of the entries written.

    Raises:
        NothingToExportError: If no job is Completed with a result.
    """
    completed = exportable_jobs(jobs)
    if not completed:
        raise NothingToExportError("No completed videos to download.")

    destination.parent.mkdir(parents=True, exist_ok=True)
    written: list[str] = []
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_STORED) as archive:
        for index, job in enumerate(completed, start=1):
            if job.result_url is None:
                continue
            try:
                data = await fetch_artifact(job.result_url, client)
            except ExportError as e:
                _logger.warning("export.fetch_failed", job_id=job.id, error=str(e))
                continue
            name = archive_entry_name(index, job)
            archive.writestr(name, data)
            written.append(name)

    _logger.info(
        "export.archive_written",
        path=str(destination),
        entries=len(written),
        skipped=len(completed) - len(written),
    )
    return written


async def download_job(
    job: Job,
    destination: Path,
    *,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """Save one completed job's video to ``destination``.

    Raises:
        ExportError: If the job is not Completed or its artifact is unreadable.
    """
    if job.status != JobStatus.COMPLETED or not job.result_url:
        raise ExportError(f"Job {job.id} has no completed video")
    destination.parent.mkdir(parents=True, exist_ok=True)

    source = Path(job.result_url)
    if urlparse(job.result_url).scheme == "" and source.exists():
        shutil.copyfile(source, destination)
    else:
        destination.write_bytes(await fetch_artifact(job.result_url, client))
    return destination


__all__ = [
    "archive_entry_name",
    "download_job",
    "export_archive",
    "exportable_jobs",
    "fetch_artifact",
]
