"""Job data model for the generation queue.

Defines the Job record, its status lifecycle and the source image payload.
All models are Pydantic v2 BaseModel; every store write re-validates the
record, so the terminal-field invariant holds for every stored job.
"""

from __future__ import annotations

import random
import string
import time
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ID_ALPHABET = string.ascii_lowercase + string.digits


class JobStatus(str, Enum):
    """Status of a queued generation job."""

    QUEUED = "Queued"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class InputType(str, Enum):
    """What the generation starts from."""

    TEXT_TO_VIDEO = "TextToVideo"
    IMAGE_TO_VIDEO = "ImageToVideo"


# Failed -> Queued is the retry path; nothing leaves Completed.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
}


def new_job_id() -> str:
    """Generate an opaque job id: ``job-<epoch ms>-<9 base36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"job-{int(time.time() * 1000)}-{suffix}"


class SourceImage(BaseModel):
    """An uploaded image used as the first frame of an image-to-video job."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False, description="Raw image bytes")
    mime_type: str = Field(default="image/png", description="Image MIME type")
    filename: str | None = Field(default=None, description="Original file name")

    @field_validator("data")
    @classmethod
    def _non_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("image data is empty")
        return v


class Job(BaseModel):
    """A single video generation job.

    ``result_url`` is populated only when the job is Completed and ``error``
    only when it is Failed; both are absent in every other status.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_job_id)
    prompt: str = Field(min_length=1)
    input_type: InputType = InputType.TEXT_TO_VIDEO
    model: str
    aspect_ratio: str
    number_of_outputs: int = Field(default=1, ge=1, le=4)
    source_image: SourceImage | None = None
    status: JobStatus = JobStatus.QUEUED
    result_url: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def _terminal_fields(self) -> Job:
        if self.status == JobStatus.COMPLETED:
            if not self.result_url:
                raise ValueError("a completed job requires a result_url")
            if self.error is not None:
                raise ValueError("a completed job cannot carry an error")
        elif self.status == JobStatus.FAILED:
            if not self.error:
                raise ValueError("a failed job requires an error message")
            if self.result_url is not None:
                raise ValueError("a failed job cannot carry a result_url")
        elif self.result_url is not None or self.error is not None:
            raise ValueError(
                f"result_url and error must be empty while {self.status.value}"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        """Whether the job has finished (Completed or Failed)."""
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "InputType",
    "Job",
    "JobStatus",
    "SourceImage",
    "new_job_id",
]
