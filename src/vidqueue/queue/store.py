"""In-memory job store.

Holds every job in submission order. Records are immutable pydantic models;
an update replaces the record with a re-validated copy, so a half-applied
update is never observable. All methods are synchronous and are called from
the single event loop thread that owns the store.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from vidqueue.core.errors import DuplicateJobError, InvalidTransitionError, JobNotFoundError
from vidqueue.core.logging import get_logger
from vidqueue.core.models import ALLOWED_TRANSITIONS, Job, JobStatus

_logger = get_logger("queue.store")


class JobStore:
    """Ordered job collection with atomic per-record updates.

    Insertion order is never changed by status updates; it is both the
    display order and the FIFO order the scheduler admits jobs in. Jobs are
    never deleted.
    """

    def __init__(self) -> None:
        self._order: list[str] = []
        self._jobs: dict[str, Job] = {}

    def append(self, job: Job) -> Job:
        """Add a job at the end of the queue with status Queued.

        Raises:
            DuplicateJobError: If a job with the same id already exists.
        """
        if job.id in self._jobs:
            raise DuplicateJobError(job.id)
        if job.status != JobStatus.QUEUED or job.result_url or job.error:
            job = job.model_copy(
                update={"status": JobStatus.QUEUED, "result_url": None, "error": None}
            )
        self._order.append(job.id)
        self._jobs[job.id] = job
        _logger.debug("store.job_appended", job_id=job.id, position=len(self._order))
        return job

    def apply_update(self, job_id: str, **fields: Any) -> Job | None:
        """Merge ``fields`` into the job with ``job_id``.

        The merged record is validated as a whole before it replaces the
        old one; a ``pydantic.ValidationError`` leaves the store unchanged.

        Returns:
            The updated job, or None if no job has that id.
        """
        job = self._jobs.get(job_id)
        if job is None:
            _logger.warning(
                "store.update_unknown_job", job_id=job_id, fields=sorted(fields)
            )
            return None
        updated = Job.model_validate({**job.model_dump(), **fields})
        self._jobs[job_id] = updated
        return updated

    def transition(self, job_id: str, status: JobStatus, **fields: Any) -> Job:
        """Move a job to ``status``, enforcing the lifecycle.

        Raises:
            JobNotFoundError: If no job has that id.
            InvalidTransitionError: If the lifecycle forbids the move.
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if status not in ALLOWED_TRANSITIONS[job.status]:
            raise InvalidTransitionError(job_id, job.status.value, status.value)
        updated = self.apply_update(job_id, status=status, **fields)
        if updated is None:
            raise JobNotFoundError(job_id)
        _logger.debug(
            "store.job_transitioned",
            job_id=job_id,
            from_status=job.status.value,
            to_status=status.value,
        )
        return updated

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def list(self) -> list[Job]:
        """Snapshot of all jobs in insertion order."""
        return [self._jobs[job_id] for job_id in self._order]

    def with_status(self, status: JobStatus) -> list[Job]:
        """Jobs currently in ``status``, in insertion order."""
        return [job for job in self.list() if job.status == status]

    def count(self, status: JobStatus) -> int:
        return sum(1 for job in self._jobs.values() if job.status == status)

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Job]:
        return iter(self.list())


__all__ = ["JobStore"]
