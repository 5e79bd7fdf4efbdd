"""Helpers shared by the batch commands."""

from __future__ import annotations

from pathlib import Path

from vidqueue.core.batch import BatchFile
from vidqueue.core.config import QueueConfig
from vidqueue.core.errors import ConfigError, JobSubmissionError
from vidqueue.core.models import Job
from vidqueue.queue.service import build_job


def build_batch_jobs(
    batch: BatchFile,
    base_dir: Path,
    config: QueueConfig,
) -> tuple[list[Job], list[tuple[int, str]]]:
    """Turn batch entries into jobs.

    Returns:
        The valid jobs, and ``(1-based entry index, message)`` for each
        invalid entry.
    """
    jobs: list[Job] = []
    problems: list[tuple[int, str]] = []
    for index, entry in enumerate(batch.jobs, start=1):
        try:
            image = entry.load_image(base_dir)
            jobs.append(
                build_job(
                    config,
                    entry.prompt,
                    input_type=entry.input_type,
                    model=entry.model,
                    aspect_ratio=entry.aspect_ratio,
                    number_of_outputs=entry.outputs,
                    source_image=image,
                )
            )
        except (ConfigError, JobSubmissionError) as e:
            problems.append((index, str(e)))
    return jobs, problems
