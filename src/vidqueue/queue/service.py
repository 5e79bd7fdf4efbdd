"""Queue service: the producer-facing API over store, scheduler and executor.

Validates submissions before a Job exists, then hands jobs to the
scheduler. Front ends (the CLI, tests) talk to this class rather than to
the scheduler directly.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pydantic import ValidationError

from vidqueue.backends.base import VideoExecutor
from vidqueue.core.config import QueueConfig
from vidqueue.core.errors import JobSubmissionError
from vidqueue.core.logging import get_logger
from vidqueue.core.models import InputType, Job, JobStatus, SourceImage
from vidqueue.queue.scheduler import JobScheduler, SchedulerStats
from vidqueue.queue.store import JobStore

_logger = get_logger("queue.service")


def build_job(
    config: QueueConfig,
    prompt: str,
    input_type: InputType = InputType.TEXT_TO_VIDEO,
    model: str | None = None,
    aspect_ratio: str | None = None,
    number_of_outputs: int = 1,
    source_image: SourceImage | None = None,
) -> Job:
    """Validate a submission against ``config`` and build its Job.

    ``model`` and ``aspect_ratio`` default to the configured defaults.
    A text-to-video job drops any image it is given.

    Raises:
        JobSubmissionError: If the submission is invalid.
    """
    if not prompt or not prompt.strip():
        raise JobSubmissionError("Prompt cannot be empty.")
    if input_type == InputType.IMAGE_TO_VIDEO and source_image is None:
        raise JobSubmissionError(
            "Please upload an image for Image-to-Video generation."
        )

    model = model or config.default_model
    if model not in config.models:
        raise JobSubmissionError(
            f"Unknown model {model!r}. Choose one of: {', '.join(config.models)}"
        )
    aspect_ratio = aspect_ratio or config.default_aspect_ratio
    if aspect_ratio not in config.aspect_ratios:
        raise JobSubmissionError(
            f"Unsupported aspect ratio {aspect_ratio!r}. "
            f"Choose one of: {', '.join(config.aspect_ratios)}"
        )
    if not 1 <= number_of_outputs <= 4:
        raise JobSubmissionError("Number of outputs must be between 1 and 4.")

    if input_type == InputType.TEXT_TO_VIDEO:
        source_image = None

    try:
        return Job(
            prompt=prompt,
            input_type=input_type,
            model=model,
            aspect_ratio=aspect_ratio,
            number_of_outputs=number_of_outputs,
            source_image=source_image,
        )
    except ValidationError as e:
        raise JobSubmissionError(str(e)) from e


class QueueService:
    """Owns one store + scheduler pair and the executor they drive."""

    def __init__(
        self,
        config: QueueConfig,
        executor: VideoExecutor,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._executor = executor
        self._store = JobStore()
        self._scheduler = JobScheduler(
            self._store, executor, config.scheduler, clock=clock,
        )

    @property
    def scheduler(self) -> JobScheduler:
        return self._scheduler

    @property
    def config(self) -> QueueConfig:
        return self._config

    def submit_job(
        self,
        prompt: str,
        input_type: InputType = InputType.TEXT_TO_VIDEO,
        model: str | None = None,
        aspect_ratio: str | None = None,
        number_of_outputs: int = 1,
        source_image: SourceImage | None = None,
    ) -> Job:
        """Validate a submission and queue it.

        Raises:
            JobSubmissionError: If the submission is invalid. No job is
                created in that case.
        """
        job = build_job(
            self._config,
            prompt,
            input_type=input_type,
            model=model,
            aspect_ratio=aspect_ratio,
            number_of_outputs=number_of_outputs,
            source_image=source_image,
        )
        return self._scheduler.add(job)

    def add(self, job: Job) -> Job:
        """Queue a job already built with ``build_job``."""
        return self._scheduler.add(job)

    def start(self) -> bool:
        """Start processing queued jobs. False if nothing is queued."""
        return self._scheduler.start()

    def retry(self, job_id: str) -> Job:
        """Re-queue a failed job."""
        return self._scheduler.retry(job_id)

    def retry_failed(self) -> list[Job]:
        """Re-queue every failed job, in queue order."""
        return [
            self._scheduler.retry(job.id)
            for job in self._store.with_status(JobStatus.FAILED)
        ]

    def jobs(self) -> list[Job]:
        """Snapshot of all jobs in submission order."""
        return self._store.list()

    def get(self, job_id: str) -> Job | None:
        return self._store.get(job_id)

    def stats(self) -> SchedulerStats:
        return self._scheduler.stats()

    async def run_until_idle(self) -> list[Job]:
        """Start processing and wait until nothing is Queued or Processing."""
        if self.start():
            await self._scheduler.wait_until_idle()
        return self.jobs()

    async def aclose(self) -> None:
        """Wait for in-flight jobs, then release the executor."""
        await self._scheduler.shutdown()
        await self._executor.close()
        _logger.debug("service.closed")


__all__ = ["QueueService", "build_job"]
