"""Long-lived worker tasks draining the job queue."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from summarize_this.errors import as_pipeline_error
from summarize_this.jobs.models import Job
from summarize_this.jobs.queue import JobQueue, Outcome, QueueClosed
from summarize_this.summarizer.models import SummarizationResult
from summarize_this.summarizer.service import StrategyRegistry

logger = logging.getLogger(__name__)

FinishedCallback = Callable[[Job], Awaitable[None]]


class WorkerPool:
    """N workers; each reports terminal jobs through ``on_finished``."""

    def __init__(
        self,
        queue: JobQueue,
        registry: StrategyRegistry,
        on_finished: FinishedCallback,
        count: int = 2,
    ):
        self.queue = queue
        self.registry = registry
        self.on_finished = on_finished
        self.count = count
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        for index in range(self.count):
            worker_id = f"worker-{index + 1}"
            self._tasks.append(
                asyncio.create_task(self._worker(worker_id), name=worker_id)
            )
        logger.info(f"[WORKERS] Started | count={self.count}")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("[WORKERS] Stopped")

    async def _worker(self, worker_id: str) -> None:
        while True:
            try:
                job = await self.queue.dequeue(worker_id)
            except QueueClosed:
                return
            outcome = await self.process(job, worker_id)
            if outcome in ("completed", "failed", "cancelled"):
                try:
                    await self.on_finished(job)
                except Exception:
                    logger.exception(f"[WORKERS] Completion callback failed | job={job.job_id}")

    async def process(self, job: Job, worker_id: str) -> Outcome:
        """Run one attempt of ``job``; a cancel request interrupts the strategy."""
        logger.info(
            f"[WORKERS] Running | job={job.job_id} | worker={worker_id} | attempt={job.attempts}"
        )
        runner = asyncio.create_task(self._execute(job))
        watcher = asyncio.create_task(job.cancel_event.wait())
        try:
            await asyncio.wait({runner, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            runner.cancel()
            raise
        finally:
            watcher.cancel()

        if not runner.done():
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)
            return await self.queue.finish_cancelled(job, worker_id)

        if runner.cancelled():
            return await self.queue.finish_cancelled(job, worker_id)
        error: Optional[BaseException] = runner.exception()
        if error is not None:
            if not isinstance(error, Exception):
                raise error
            pipeline_error = as_pipeline_error(error)
            if pipeline_error is not error:
                logger.error(
                    f"[WORKERS] Unexpected error | job={job.job_id} | "
                    f"error={error.__class__.__name__}: {error}"
                )
            return await self.queue.fail(job, worker_id, pipeline_error)
        return await self.queue.complete(job, worker_id, runner.result())

    async def _execute(self, job: Job) -> SummarizationResult:
        request = job.request
        result = await self.registry.run(request.method, request.payload, request.options)
        result.metadata.setdefault("attempts", job.attempts)
        return result
