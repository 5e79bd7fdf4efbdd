"""Abstract base for video generation executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from vidqueue.core.models import Job


@dataclass(frozen=True)
class VideoArtifact:
    """Reference to a generated video.

    ``uri`` becomes the job's result reference; it is either a local file
    path or an http(s) URL the exporter can fetch.
    """

    uri: str
    """Where the video can be read from."""

    path: Path | None = None
    """Local file holding the video, when it was downloaded."""

    content_type: str = "video/mp4"
    """MIME type of the video."""

    size_bytes: int | None = None
    """Size of the downloaded file, if known."""


class VideoExecutor(ABC):
    """Performs the remote generation for one job.

    Implementations submit the job, wait (however long it takes) for the
    remote operation to finish, and fetch the artifact. Any failure is raised
    as an ``ExecutionError`` subclass with a human-readable message; the
    scheduler records that message on the job.
    """

    @abstractmethod
    async def execute(self, job: Job) -> VideoArtifact:
        """Generate the video for ``job``.

        Raises:
            ExecutionError: On any submission, generation or download failure.
        """
        ...

    async def close(self) -> None:
        """Release resources (HTTP clients). Safe to call more than once."""
        return None

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable executor name."""
        ...


__all__ = ["VideoArtifact", "VideoExecutor"]
