"""Shared test helpers for vidqueue tests."""

from __future__ import annotations

import asyncio

from vidqueue.backends.base import VideoArtifact, VideoExecutor
from vidqueue.core.models import Job


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExecutor(VideoExecutor):
    """Executor whose jobs finish when the test says so.

    By default every ``execute`` call waits on a per-job future that the test
    settles with ``resolve``, ``fail`` or ``cancel``. With ``auto=True`` jobs
    finish on their own; ``failures`` maps a prompt to how many attempts of
    it should fail before one succeeds.
    """

    def __init__(
        self,
        *,
        auto: bool = False,
        failures: dict[str, int] | None = None,
    ) -> None:
        self.auto = auto
        self.failures = dict(failures or {})
        self.calls: list[str] = []
        self.closed = False
        self._pending: dict[str, asyncio.Future[VideoArtifact]] = {}

    @property
    def name(self) -> str:
        return "fake"

    def _future(self, job_id: str) -> asyncio.Future[VideoArtifact]:
        if job_id not in self._pending:
            self._pending[job_id] = asyncio.get_running_loop().create_future()
        return self._pending[job_id]

    async def execute(self, job: Job) -> VideoArtifact:
        self.calls.append(job.id)
        if self.auto:
            await asyncio.sleep(0)
            if self.failures.get(job.prompt, 0) > 0:
                self.failures[job.prompt] -= 1
                raise RuntimeError(f"generation failed for {job.prompt}")
            return VideoArtifact(uri=f"/videos/{job.id}.mp4")
        try:
            return await self._future(job.id)
        finally:
            self._pending.pop(job.id, None)

    def resolve(self, job_id: str, uri: str | None = None) -> None:
        self._future(job_id).set_result(
            VideoArtifact(uri=f"/videos/{job_id}.mp4" if uri is None else uri)
        )

    def fail(self, job_id: str, exc: BaseException) -> None:
        self._future(job_id).set_exception(exc)

    def cancel(self, job_id: str) -> None:
        self._future(job_id).cancel()

    async def close(self) -> None:
        self.closed = True


def make_job(prompt: str = "A cat surfing a wave", **fields: object) -> Job:
    """Build a valid text-to-video job."""
    data: dict[str, object] = {
        "prompt": prompt,
        "model": "veo-2.0-generate-001",
        "aspect_ratio": "16:9",
    }
    data.update(fields)
    return Job.model_validate(data)


async def settle(rounds: int = 20) -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
