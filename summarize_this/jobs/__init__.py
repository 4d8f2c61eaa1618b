"""Job queue and worker pool."""

from summarize_this.jobs.models import Job, JobTransition
from summarize_this.jobs.queue import JobQueue, QueueClosed
from summarize_this.jobs.workers import WorkerPool

__all__ = ["Job", "JobQueue", "JobTransition", "QueueClosed", "WorkerPool"]
