"""Concurrency and sliding-window rate admission.

Decides how many queued jobs may start right now. Two limits apply:

- ``max_concurrent``: jobs in Processing at the same time.
- ``rate_limit_count`` per ``window_seconds``: admissions inside the trailing
  window, tracked as a sequence of admission timestamps.

The timestamp sequence is pruned lazily on every admission check (never in
the background), so an expired entry only disappears the next time somebody
asks for slots.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, MutableSequence

from vidqueue.core.config import SchedulerConfig
from vidqueue.core.logging import get_logger

_logger = get_logger("queue.admission")


def _prune(timestamps: MutableSequence[float], now: float, window_seconds: float) -> int:
    """Drop timestamps that have aged out of the window. Returns how many."""
    kept = [ts for ts in timestamps if now - ts < window_seconds]
    removed = len(timestamps) - len(kept)
    if removed:
        timestamps.clear()
        timestamps.extend(kept)
    return removed


def compute_available_slots(
    max_concurrent: int,
    rate_limit_count: int,
    window_seconds: float,
    processing_count: int,
    timestamps: MutableSequence[float],
    now: float,
) -> int:
    """Return how many more jobs may start at ``now``.

    ``timestamps`` is pruned in place as a side effect, whatever the result.

    Args:
        max_concurrent: Concurrency cap.
        rate_limit_count: Admissions allowed per window.
        window_seconds: Length of the trailing window.
        processing_count: Jobs currently Processing.
        timestamps: Admission times (oldest first), owned by the caller.
        now: Current time on the same clock as ``timestamps``.
    """
    _prune(timestamps, now, window_seconds)
    concurrency_slots = max_concurrent - processing_count
    rate_slots = rate_limit_count - len(timestamps)
    return max(0, min(concurrency_slots, rate_slots))


class AdmissionController:
    """Owns the rate-window timestamps and applies the configured limits.

    The clock defaults to ``time.monotonic`` and can be replaced in tests.
    """

    def __init__(
        self,
        config: SchedulerConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_concurrent = config.max_concurrent_jobs
        self._rate_limit_count = config.rate_limit_job_count
        self._window_seconds = config.rate_limit_window_seconds
        self._clock = clock
        self._timestamps: deque[float] = deque()

    def available_slots(self, processing_count: int) -> int:
        """Slots available now, given ``processing_count`` running jobs."""
        slots = compute_available_slots(
            self._max_concurrent,
            self._rate_limit_count,
            self._window_seconds,
            processing_count,
            self._timestamps,
            self._clock(),
        )
        _logger.debug(
            "admission.checked",
            processing=processing_count,
            admissions_in_window=len(self._timestamps),
            available=slots,
        )
        return slots

    def record_admission(self) -> float:
        """Record that a job was admitted now. Returns the timestamp."""
        now = self._clock()
        self._timestamps.append(now)
        return now

    def is_rate_bound(self, processing_count: int) -> bool:
        """True when concurrency has room but the rate window is full.

        Reads the timestamps as last pruned; call after ``available_slots``.
        """
        return (
            processing_count < self._max_concurrent
            and len(self._timestamps) >= self._rate_limit_count
        )

    def seconds_until_next_expiry(self) -> float | None:
        """Seconds until the oldest admission leaves the window, or None."""
        if not self._timestamps:
            return None
        remaining = self._timestamps[0] + self._window_seconds - self._clock()
        return max(0.0, remaining)

    @property
    def recent_admissions(self) -> list[float]:
        """Admission timestamps as last pruned (oldest first)."""
        return list(self._timestamps)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent


__all__ = ["AdmissionController", "compute_available_slots"]
