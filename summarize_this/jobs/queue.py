"""
Bounded priority job queue.

Due jobs are served by ``(priority, scheduled_at, sequence)``, so equal
priorities run FIFO. Jobs waiting on a retry backoff sit in a separate
delay heap and move over once due, so a delayed job never blocks ready ones.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, Dict, List, Literal, Optional, Set, Tuple

from summarize_this.errors import Overloaded, PipelineError, Timeout
from summarize_this.jobs.models import Job

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Outcome = Literal["completed", "retrying", "failed", "cancelled", "stale"]


class QueueClosed(Exception):
    """Raised to waiting workers once the queue shuts down."""


class JobQueue:
    def __init__(
        self,
        max_size: int = 1000,
        backoff_initial: float = 2.0,
        backoff_factor: float = 2.0,
        job_timeout: float = 300.0,
        clock: Clock = time.monotonic,
    ):
        self.max_size = max_size
        self.backoff_initial = backoff_initial
        self.backoff_factor = backoff_factor
        self.job_timeout = job_timeout
        self._clock = clock
        self._ready: List[Tuple[int, float, int, str]] = []
        self._delayed: List[Tuple[float, int, str]] = []
        self._jobs: Dict[str, Job] = {}
        self._pending: Set[str] = set()
        self._active: Set[str] = set()
        self._sequence = itertools.count()
        self._cond = asyncio.Condition()
        self._closed = False

    # -- introspection -------------------------------------------------

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def position(self, job_id: str) -> Optional[int]:
        """1-based place of a queued job among the due jobs; None once it left the queue."""
        job = self._jobs.get(job_id)
        if job is None or job.state != "queued":
            return None
        key = (job.priority, job.scheduled_at, job.sequence)
        ahead = sum(
            1
            for priority, at, sequence, other_id in self._ready
            if other_id != job_id
            and (priority, at, sequence) < key
            and self._is_current(other_id, sequence) is not None
        )
        return ahead + 1

    def forget(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is not None and job.is_terminal:
            del self._jobs[job_id]

    # -- scheduling ----------------------------------------------------

    def backoff(self, attempts: int) -> float:
        return self.backoff_initial * self.backoff_factor ** max(0, attempts - 1)

    def _schedule(self, job: Job, at: float) -> None:
        job.scheduled_at = at
        job.sequence = next(self._sequence)
        self._pending.add(job.job_id)
        if at <= self._clock():
            heapq.heappush(self._ready, (job.priority, at, job.sequence, job.job_id))
        else:
            heapq.heappush(self._delayed, (at, job.sequence, job.job_id))

    def _is_current(self, job_id: str, sequence: int) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None or job.state != "queued" or job.sequence != sequence:
            return None
        return job

    def _promote_due(self, now: float) -> None:
        while self._delayed and self._delayed[0][0] <= now:
            at, sequence, job_id = heapq.heappop(self._delayed)
            job = self._is_current(job_id, sequence)
            if job is not None:
                heapq.heappush(self._ready, (job.priority, at, sequence, job_id))

    def _pop_ready(self) -> Tuple[Optional[Job], Optional[float]]:
        now = self._clock()
        self._promote_due(now)
        while self._ready:
            _, _, sequence, job_id = heapq.heappop(self._ready)
            job = self._is_current(job_id, sequence)
            if job is not None:
                return job, None
        while self._delayed and self._is_current(
            self._delayed[0][2], self._delayed[0][1]
        ) is None:
            heapq.heappop(self._delayed)
        if self._delayed:
            return None, max(0.0, self._delayed[0][0] - now)
        return None, None

    async def enqueue(self, job: Job, delay: float = 0.0) -> Job:
        async with self._cond:
            if self._closed:
                raise Overloaded("Job queue is shut down")
            if len(self._pending) >= self.max_size:
                logger.warning(f"[QUEUE] Overloaded | pending={len(self._pending)}")
                raise Overloaded(
                    "Job queue is full", {"max_size": self.max_size}
                )
            self._jobs[job.job_id] = job
            self._schedule(job, self._clock() + delay)
            self._cond.notify_all()
        logger.info(
            f"[QUEUE] Enqueued | job={job.job_id} | method={job.request.method} | "
            f"priority={job.priority}"
        )
        return job

    async def dequeue(self, worker_id: str) -> Job:
        """Wait for the next due job and hand it to ``worker_id``."""
        async with self._cond:
            while True:
                if self._closed:
                    raise QueueClosed()
                job, delay = self._pop_ready()
                if job is not None:
                    now = self._clock()
                    self._pending.discard(job.job_id)
                    self._active.add(job.job_id)
                    job.attempts += 1
                    job.worker_id = worker_id
                    job.started_at = now
                    job.transition("active", now, f"attempt {job.attempts} on {worker_id}")
                    return job
                if delay is None:
                    await self._cond.wait()
                else:
                    try:
                        await asyncio.wait_for(self._cond.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass

    # -- outcomes ------------------------------------------------------

    def _holds(self, job: Job, worker_id: str) -> bool:
        return job.state == "active" and job.worker_id == worker_id

    def _finish(self, job: Job, state: str, reason: str) -> None:
        self._active.discard(job.job_id)
        self._pending.discard(job.job_id)
        job.transition(state, self._clock(), reason)

    async def complete(self, job: Job, worker_id: str, result) -> Outcome:
        async with self._cond:
            if not self._holds(job, worker_id):
                logger.warning(f"[QUEUE] Stale result discarded | job={job.job_id} | worker={worker_id}")
                return "stale"
            if job.cancel_requested:
                self._finish(job, "cancelled", "cancel requested")
                return "cancelled"
            job.result = result
            self._finish(job, "completed", "")
        return "completed"

    async def fail(self, job: Job, worker_id: str, error: PipelineError) -> Outcome:
        """Record a failed attempt; re-queue with backoff when it is retryable."""
        async with self._cond:
            if not self._holds(job, worker_id):
                logger.warning(f"[QUEUE] Stale failure discarded | job={job.job_id} | worker={worker_id}")
                return "stale"
            job.last_error = error
            if job.cancel_requested:
                self._finish(job, "cancelled", "cancel requested")
                return "cancelled"
            if error.retryable and job.attempts < job.max_attempts:
                delay = self.backoff(job.attempts)
                self._active.discard(job.job_id)
                job.worker_id = None
                job.transition("queued", self._clock(), f"retry in {delay:.2f}s: {error.error_kind}")
                self._schedule(job, self._clock() + delay)
                self._cond.notify_all()
                logger.info(
                    f"[QUEUE] Retry scheduled | job={job.job_id} | attempt={job.attempts} | "
                    f"delay={delay:.2f}s | error={error.error_kind}"
                )
                return "retrying"
            self._finish(job, "failed", error.error_kind)
        logger.warning(
            f"[QUEUE] Failed | job={job.job_id} | attempts={job.attempts} | error={error.error_kind}"
        )
        return "failed"

    async def finish_cancelled(self, job: Job, worker_id: str) -> Outcome:
        async with self._cond:
            if not self._holds(job, worker_id):
                return "stale"
            self._finish(job, "cancelled", "cancel requested")
        return "cancelled"

    async def cancel(self, job_id: str) -> Tuple[Optional[Job], bool]:
        """
        Cancel ``job_id``.

        Queued jobs move to ``cancelled`` immediately (second value True).
        Active jobs get their cancel flag set and the running worker performs
        the transition. Terminal jobs are left untouched.
        """
        async with self._cond:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return job, False
            job.cancel_requested = True
            if job.state == "queued":
                self._finish(job, "cancelled", "cancelled while queued")
                logger.info(f"[QUEUE] Cancelled | job={job_id} | state=queued")
                return job, True
            job.cancel_event.set()
            logger.info(f"[QUEUE] Cancel requested | job={job_id} | state=active")
            return job, False

    async def reap_stalled(self, now: Optional[float] = None) -> List[Job]:
        """Re-queue or fail active jobs held longer than ``job_timeout``; returns jobs it ended."""
        ended: List[Job] = []
        async with self._cond:
            now = self._clock() if now is None else now
            for job_id in list(self._active):
                job = self._jobs[job_id]
                if job.started_at is None or now - job.started_at < self.job_timeout:
                    continue
                stalled_on = job.worker_id
                if job.attempts < job.max_attempts and not job.cancel_requested:
                    self._active.discard(job_id)
                    job.worker_id = None
                    job.transition("queued", now, f"stalled on {stalled_on}")
                    self._schedule(job, self._clock())
                    logger.warning(f"[QUEUE] Stalled job re-queued | job={job_id} | worker={stalled_on}")
                elif job.cancel_requested:
                    self._finish(job, "cancelled", f"stalled on {stalled_on}")
                    ended.append(job)
                else:
                    job.last_error = Timeout(
                        f"Job exceeded {self.job_timeout}s on every attempt",
                        {"attempts": job.attempts},
                    )
                    self._finish(job, "failed", "stalled")
                    ended.append(job)
                    logger.warning(f"[QUEUE] Stalled job failed | job={job_id} | worker={stalled_on}")
            if self._pending:
                self._cond.notify_all()
        return ended

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()
