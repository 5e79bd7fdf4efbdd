"""Job scheduler: signal-driven admission and fire-and-forget dispatch.

Every event that can change what is admissible (a job added, start, retry,
a job resolving, the rate window expiring) posts a signal. Each signal gets
its own synchronous scheduling pass. Signals are never coalesced, so two jobs
resolving back to back each trigger a fresh pass.

A pass:

1. does nothing unless processing is enabled;
2. counts Processing jobs and collects Queued jobs in submission order;
3. clears the enabled flag when both are empty (auto-stop);
4. asks the ``AdmissionController`` for available slots;
5. admits the first N Queued jobs: records a rate-window timestamp, marks the
   job Processing, then spawns an ``asyncio.Task`` that runs the executor.

The Processing transition happens before the task is created, so a job can
never be selected twice. The pass never awaits a job; each task writes its
own Completed/Failed status and posts a signal when it resolves.

All store, rate-window and flag mutations happen on the event loop thread in
synchronous code, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from vidqueue.backends.base import VideoExecutor
from vidqueue.core.config import SchedulerConfig
from vidqueue.core.errors import MissingArtifactError
from vidqueue.core.logging import JobContext, get_logger, with_context
from vidqueue.core.models import Job, JobStatus
from vidqueue.queue.admission import AdmissionController
from vidqueue.queue.store import JobStore

_logger = get_logger("queue.scheduler")

# Fire the rate-window timer a little late so the expired entry is pruned
_TIMER_SLACK_SECONDS = 0.01


@dataclass
class SchedulerStats:
    """Statistics snapshot from the scheduler."""

    queued: int
    processing: int
    completed: int
    failed: int
    processing_enabled: bool
    admissions_in_window: int
    max_concurrent: int


class JobScheduler:
    """Admits queued jobs under concurrency and rate limits.

    The scheduler owns the processing-enabled flag and the rate window; the
    ``JobStore`` owns the job records. Construct one scheduler per run.
    """

    def __init__(
        self,
        store: JobStore,
        executor: VideoExecutor,
        config: SchedulerConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._executor = executor
        self._admission = AdmissionController(config, clock=clock)

        self._enabled = False
        self._idle = asyncio.Event()
        self._idle.set()

        # Signal queue; _draining guards against nested passes
        self._signals: deque[str] = deque()
        self._draining = False

        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._rate_timer: asyncio.TimerHandle | None = None

    # ─── Properties ────────────────────────────────────────────────

    @property
    def processing_enabled(self) -> bool:
        """Whether scheduling passes may admit jobs."""
        return self._enabled

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    @property
    def in_flight(self) -> list[str]:
        """Ids of jobs whose executor task has not finished yet."""
        return list(self._tasks)

    # ─── Controls ──────────────────────────────────────────────────

    def add(self, job: Job) -> Job:
        """Queue a job. Does not change the processing-enabled flag."""
        job = self._store.append(job)
        _logger.info(
            "scheduler.job_added",
            job_id=job.id,
            model=job.model,
            input_type=job.input_type.value,
        )
        self._post("job_added")
        return job

    def start(self) -> bool:
        """Enable processing if at least one job is Queued.

        Returns:
            True if processing was enabled, False if nothing was queued.
        """
        if self._store.count(JobStatus.QUEUED) == 0:
            _logger.info("scheduler.start_ignored", reason="no_queued_jobs")
            return False
        self._enable()
        self._post("start")
        return True

    def retry(self, job_id: str) -> Job:
        """Re-queue a Failed job, clearing its error.

        Turns processing on if it had stopped.

        Raises:
            JobNotFoundError: If no job has that id.
            InvalidTransitionError: If the job is not Failed.
        """
        job = self._store.transition(job_id, JobStatus.QUEUED, error=None)
        _logger.info("scheduler.job_retried", job_id=job_id)
        if not self._enabled:
            self._enable()
        self._post("retry")
        return job

    def reevaluate(self, reason: str = "manual") -> None:
        """Post a signal that triggers one scheduling pass."""
        self._post(reason)

    async def wait_until_idle(self) -> None:
        """Wait until processing stops (nothing Queued or Processing)."""
        await self._idle.wait()

    async def shutdown(self) -> None:
        """Stop admitting jobs and wait for in-flight executions to finish.

        Jobs still Queued stay Queued. In-flight jobs are not cancelled.
        """
        self._cancel_rate_timer()
        if self._enabled:
            self._enabled = False
            self._idle.set()
        while self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        _logger.info("scheduler.shutdown", jobs=len(self._store))

    def stats(self) -> SchedulerStats:
        """Return a snapshot of queue state."""
        return SchedulerStats(
            queued=self._store.count(JobStatus.QUEUED),
            processing=self._store.count(JobStatus.PROCESSING),
            completed=self._store.count(JobStatus.COMPLETED),
            failed=self._store.count(JobStatus.FAILED),
            processing_enabled=self._enabled,
            admissions_in_window=len(self._admission.recent_admissions),
            max_concurrent=self._admission.max_concurrent,
        )

    # ─── Signal handling ───────────────────────────────────────────

    def _post(self, reason: str) -> None:
        self._signals.append(reason)
        if self._draining:
            return
        self._draining = True
        try:
            while self._signals:
                self._run_pass(self._signals.popleft())
        finally:
            self._draining = False

    def _run_pass(self, reason: str) -> None:
        if not self._enabled:
            return

        processing = self._store.count(JobStatus.PROCESSING)
        queued = self._store.with_status(JobStatus.QUEUED)

        if not queued and processing == 0:
            self._disable()
            return

        available = self._admission.available_slots(processing)
        admitted = queued[:available] if available > 0 else []
        for job in admitted:
            self._dispatch(job)

        if len(queued) > len(admitted) and self._admission.is_rate_bound(
            processing + len(admitted),
        ):
            self._arm_rate_timer()

        _logger.debug(
            "scheduler.pass",
            reason=reason,
            processing=processing + len(admitted),
            queued=len(queued) - len(admitted),
            admitted=len(admitted),
        )

    def _dispatch(self, job: Job) -> None:
        if job.id in self._tasks:
            # Only reachable if a Processing job were reset behind our back
            _logger.error("scheduler.duplicate_dispatch", job_id=job.id)
            return

        self._admission.record_admission()
        job = self._store.transition(job.id, JobStatus.PROCESSING)

        task = asyncio.create_task(self._run_job(job), name=f"job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t: self._on_task_done(job.id, t))

        _logger.info(
            "scheduler.job_dispatched",
            job_id=job.id,
            active=len(self._tasks),
        )

    async def _run_job(self, job: Job) -> None:
        ctx = JobContext(job_id=job.id, component="queue.scheduler", model=job.model)
        with with_context(ctx):
            try:
                artifact = await self._executor.execute(job)
                if not artifact.uri:
                    raise MissingArtifactError(
                        "Video generation completed, but no download link was found."
                    )
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                self._store.transition(
                    job.id, JobStatus.FAILED, error=message, result_url=None,
                )
                _logger.warning(
                    "scheduler.job_failed",
                    error=message,
                    error_type=type(exc).__name__,
                )
            else:
                self._store.transition(
                    job.id, JobStatus.COMPLETED, result_url=artifact.uri, error=None,
                )
                _logger.info("scheduler.job_completed", result_url=artifact.uri)
            finally:
                self._release(job.id)
        self._post("job_resolved")

    def _release(self, job_id: str) -> None:
        """Forget the running task before its resolution signal is posted.

        A retry issued as soon as the queue goes idle must find the job free
        to dispatch again.
        """
        self._tasks.pop(job_id, None)

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        """Done-callback for job tasks.

        A normal task has already released its entry, written its status
        and posted a signal. A task that crashed or was cancelled outside
        the executor call leaves its job Processing; mark it Failed so its
        slot is freed.
        """
        freed = self._tasks.get(job_id) is task
        if freed:
            del self._tasks[job_id]

        if task.cancelled():
            reason = "Job execution was cancelled"
        else:
            exc = task.exception()
            if exc is None:
                if freed:
                    self._post("job_released")
                return
            reason = str(exc) or type(exc).__name__
            _logger.error(
                "scheduler.job_task_crashed",
                job_id=job_id,
                error=reason,
                task_name=task.get_name(),
            )

        job = self._store.get(job_id)
        if job is not None and job.status == JobStatus.PROCESSING:
            self._store.transition(job_id, JobStatus.FAILED, error=reason)
        self._post("job_crashed")


    # ─── Flag and timer ────────────────────────────────────────────

    def _enable(self) -> None:
        self._enabled = True
        self._idle.clear()
        _logger.info("scheduler.processing_enabled")

    def _disable(self) -> None:
        self._enabled = False
        self._cancel_rate_timer()
        self._idle.set()
        _logger.info(
            "scheduler.idle",
            completed=self._store.count(JobStatus.COMPLETED),
            failed=self._store.count(JobStatus.FAILED),
        )

    def _arm_rate_timer(self) -> None:
        if self._rate_timer is not None:
            return
        delay = self._admission.seconds_until_next_expiry()
        if delay is None:
            return
        loop = asyncio.get_running_loop()
        self._rate_timer = loop.call_later(
            delay + _TIMER_SLACK_SECONDS, self._on_rate_timer,
        )
        _logger.debug("scheduler.rate_limited", resume_in_seconds=round(delay, 3))

    def _on_rate_timer(self) -> None:
        self._rate_timer = None
        self._post("rate_window")

    def _cancel_rate_timer(self) -> None:
        if self._rate_timer is not None:
            self._rate_timer.cancel()
            self._rate_timer = None


__all__ = ["JobScheduler", "SchedulerStats"]
