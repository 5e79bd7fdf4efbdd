"""Exception hierarchy for vidqueue.

All vidqueue exceptions inherit from VidQueueError, enabling callers to catch
broad (VidQueueError) or narrow (e.g., GenerationError). Submission errors
surface synchronously to the producer; execution errors are captured by the
scheduler as a job's Failed status and never propagate past it.
"""

from __future__ import annotations


class VidQueueError(Exception):
    """Base exception for all vidqueue errors."""


class ConfigError(VidQueueError):
    """Raised when a configuration or batch file cannot be read or validated."""


class JobSubmissionError(VidQueueError):
    """Raised when a job submission fails validation.

    Examples: empty prompt, image-to-video without an image, unknown model.
    No job is created when this is raised.
    """


# ─── Job store / lifecycle ─────────────────────────────────────────


class JobStateError(VidQueueError):
    """Base for errors about job records and their lifecycle."""


class JobNotFoundError(JobStateError):
    """Raised when a job id is not present in the store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class DuplicateJobError(JobStateError):
    """Raised when appending a job whose id is already in the store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job already queued: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(JobStateError):
    """Raised when a requested status change is not allowed by the lifecycle."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Job {job_id} cannot move from {current} to {requested}"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


# ─── Execution ─────────────────────────────────────────────────────


class ExecutionError(VidQueueError):
    """Base for failures while generating a job's video."""


class MissingSourceImageError(ExecutionError):
    """An image-to-video job reached the executor without an image."""


class SubmissionError(ExecutionError):
    """The remote API rejected or failed the generation request."""


class GenerationError(ExecutionError):
    """The remote operation finished with an error."""


class MissingArtifactError(ExecutionError):
    """The remote operation finished but produced no download link."""


class ArtifactDownloadError(ExecutionError):
    """The generated video could not be downloaded."""


class PollTimeoutError(ExecutionError):
    """The executor gave up polling a remote operation."""


# ─── Export ────────────────────────────────────────────────────────


class ExportError(VidQueueError):
    """Raised when packaging results fails."""


class NothingToExportError(ExportError):
    """Raised when no completed job has a result to export."""
