"""Job store, admission control and scheduling."""

from vidqueue.queue.admission import AdmissionController, compute_available_slots
from vidqueue.queue.scheduler import JobScheduler, SchedulerStats
from vidqueue.queue.service import QueueService, build_job
from vidqueue.queue.store import JobStore

__all__ = [
    "AdmissionController",
    "JobScheduler",
    "JobStore",
    "QueueService",
    "SchedulerStats",
    "build_job",
    "compute_available_slots",
]
