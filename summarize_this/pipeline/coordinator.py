"""
Pipeline coordinator: the public facade of the summarization pipeline.

``submit`` validates, fingerprints, probes the cache, joins or leads a
single-flight, reserves credits and then either runs the strategy inline or
hands a job to the worker pool. Completion commits the reservation and
caches the result; every failure path refunds before the error surfaces.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from summarize_this.cache.fingerprint import fingerprint
from summarize_this.cache.single_flight import Flight, SingleFlight
from summarize_this.cache.store import (
    CacheEntry,
    MemoryCacheBackend,
    RedisCacheBackend,
    ResultCache,
)
from summarize_this.config import Settings
from summarize_this.errors import (
    Cancelled,
    Conflict,
    InsufficientCredits,
    NotFound,
    PipelineError,
    ProviderError,
    ReservationResolved,
    Timeout,
    as_pipeline_error,
)
from summarize_this.jobs.models import Job
from summarize_this.jobs.queue import JobQueue
from summarize_this.jobs.workers import WorkerPool
from summarize_this.ledger.ledger import CostPolicy, CreditLedger
from summarize_this.ledger.models import Reservation
from summarize_this.pipeline import events
from summarize_this.pipeline.events import EventBus
from summarize_this.providers.catalog import build_provider_pool
from summarize_this.providers.pool import ProviderPool, UsageSink
from summarize_this.summarizer.models import SummarizationRequest, SummarizationResult
from summarize_this.summarizer.service import StrategyRegistry, build_registry
from summarize_this.summarizer.validation import validate_request

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Base processing time per method, in milliseconds, for a 1000-character text.
BASE_PROCESSING_MS: Dict[str, int] = {
    "extractive": 100,
    "ranked": 500,
    "generative": 2000,
    "composite": 1500,
}

METHOD_CATALOG: Dict[str, Dict[str, str]] = {
    "extractive": {
        "speed": "fast",
        "description": "Keyword and position scored sentence extraction",
    },
    "ranked": {
        "speed": "medium",
        "description": "TextRank graph ranking of sentences",
    },
    "generative": {
        "speed": "slow",
        "description": "Abstractive summary written by an LLM provider",
    },
    "composite": {
        "speed": "slow",
        "description": "Weighted merge of extractive, ranked and generative summaries",
    },
}


def estimate_seconds(method: str, text_length: int, backlog: float = 0.0) -> float:
    """``base_ms * ln(len/1000 + 1)``, stretched by the queue backlog per worker."""
    base_ms = BASE_PROCESSING_MS.get(method, 1000)
    single = base_ms * math.log(text_length / 1000 + 1) / 1000
    return round(single * (1 + backlog), 3)


@dataclass(slots=True)
class Response:
    request_id: str
    state: str
    result: Optional[SummarizationResult] = None
    job_id: Optional[str] = None
    estimated_seconds: Optional[float] = None
    queue_position: Optional[int] = None
    credits_charged: int = 0

    @property
    def cached(self) -> bool:
        return bool(self.result and self.result.cached)

    def for_request(self, request_id: str) -> "Response":
        return Response(
            request_id=request_id,
            state=self.state,
            result=self.result,
            job_id=self.job_id,
            estimated_seconds=self.estimated_seconds,
            queue_position=self.queue_position,
            credits_charged=0,
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.result is not None:
            payload = self.result.to_dict()
            payload["request_id"] = self.request_id
            payload["credits_charged"] = self.credits_charged
            return payload
        return {
            "request_id": self.request_id,
            "job_id": self.job_id,
            "state": self.state,
            "estimated_seconds": self.estimated_seconds,
            "queue_position": self.queue_position,
        }


@dataclass(slots=True)
class JobStatus:
    request_id: str
    state: str
    progress: float
    attempts: int = 0
    max_attempts: int = 0
    job_id: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    result: Optional[SummarizationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "job_id": self.job_id,
            "state": self.state,
            "progress": self.progress,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "error": self.error,
            "result": self.result.to_dict() if self.result else None,
        }


@dataclass(slots=True)
class RequestRecord:
    request: SummarizationRequest
    fingerprint: str
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    response: Optional[Response] = None
    error: Optional[PipelineError] = None
    flight: Optional[Flight] = None
    reservation_id: Optional[str] = None
    job_id: Optional[str] = None
    leader_id: Optional[str] = None
    task: Optional[asyncio.Task] = None
    cancelled: bool = False
    finished_at: Optional[float] = None

    @property
    def is_live(self) -> bool:
        return self.finished_at is None


class PipelineCoordinator:
    def __init__(
        self,
        settings: Settings,
        registry: StrategyRegistry,
        pool: ProviderPool,
        ledger: CreditLedger,
        cache: ResultCache,
        queue: JobQueue,
        bus: Optional[EventBus] = None,
        flights: Optional[SingleFlight] = None,
        clock: Clock = time.monotonic,
    ):
        self.settings = settings
        self.registry = registry
        self.pool = pool
        self.ledger = ledger
        self.cache = cache
        self.queue = queue
        self.bus = bus or EventBus(settings.event_buffer_size)
        self.flights = flights if flights is not None else SingleFlight()
        self.costs = CostPolicy(settings.credit_costs)
        self.workers = WorkerPool(
            queue, registry, self._on_job_finished, settings.resolved_worker_count()
        )
        self._clock = clock
        self._records: Dict[str, RequestRecord] = {}
        self._sync_in_use = 0
        self._sweeper: Optional[asyncio.Task] = None
        self.counters: Dict[str, int] = {
            "requests": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "completed": 0,
            "failed": 0,
            "cancelled": 0,
        }

    # -- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        await self.recover()
        self.workers.start()
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="sweeper")
        logger.info(
            f"[PIPELINE] Started | workers={self.workers.count} | "
            f"providers={', '.join(self.pool.names()) or 'none'}"
        )

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        await self.queue.close()
        await self.workers.stop()
        await self.pool.close()
        await self.cache.close()
        logger.info("[PIPELINE] Stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("[PIPELINE] Sweep failed")

    # -- submit --------------------------------------------------------

    async def submit(self, request: SummarizationRequest) -> Response:
        validate_request(
            request,
            self.settings.min_text_length,
            self.settings.max_text_length,
            tuple(self.registry.names()),
        )

        existing = self._records.get(request.request_id)
        if existing is not None:
            logger.info(f"[PIPELINE] Idempotent replay | request={request.request_id}")
            await existing.ready.wait()
            if existing.error is not None:
                raise existing.error
            return existing.response

        record = RequestRecord(request=request, fingerprint=fingerprint(request))
        self._records[request.request_id] = record
        self.counters["requests"] += 1
        try:
            record.response = await self._admit(record)
        except asyncio.CancelledError:
            self._abandon(record, Cancelled("Request was cancelled before completion"))
            raise
        except PipelineError as exc:
            if record.cancelled:
                # kept so status and cancel keep reporting the cancellation
                record.error = exc
            else:
                self._abandon(record, exc)
            raise
        except Exception as exc:
            logger.exception(f"[PIPELINE] Unexpected error | request={request.request_id}")
            error = as_pipeline_error(exc)
            self._abandon(record, error)
            raise error from exc
        finally:
            record.ready.set()
        return record.response

    def _abandon(self, record: RequestRecord, error: PipelineError) -> None:
        """Forget a request that produced no response so its id can be reused."""
        record.error = error
        record.finished_at = self._clock()
        self._records.pop(record.request.request_id, None)

    async def _admit(self, record: RequestRecord) -> Response:
        request = record.request
        self.bus.publish(
            events.Submitted(
                request.request_id, request.user_id, time.time(),
                method=request.method, fingerprint=record.fingerprint,
            )
        )

        while True:
            entry = await self.cache.lookup(record.fingerprint)
            if entry is not None:
                return self._serve_cached(record, entry)

            charged = await self.ledger.store.find_reservation(request.request_id)
            if charged is not None and charged.state == "committed":
                logger.warning(
                    f"[PIPELINE] Already charged | request={request.request_id} | "
                    f"reservation={charged.reservation_id}"
                )
                raise Conflict(request.request_id, charged.reservation_id)

            flight, leader = await self.flights.claim(record.fingerprint, request.request_id)
            if leader:
                # a previous leader may have cached and released while our lookup was pending
                entry = await self.cache.lookup(record.fingerprint)
                if entry is not None:
                    await self.flights.release(flight)
                    response = self._serve_cached(record, entry)
                    flight.resolve(response)
                    return response
                self.counters["cache_misses"] += 1
                record.flight = flight
                return await self._lead(record, flight)

            try:
                shared: Response = await flight.wait()
            except (InsufficientCredits, Cancelled):
                # the leader could not pay or was cancelled; this caller runs on its own credits
                continue
            return self._follow(record, flight, shared)

    def _serve_cached(self, record: RequestRecord, entry: CacheEntry) -> Response:
        request = record.request
        self.counters["cache_hits"] += 1
        record.finished_at = self._clock()
        self.bus.publish(
            events.Cached(
                request.request_id, request.user_id, time.time(),
                fingerprint=record.fingerprint,
            )
        )
        logger.info(f"[PIPELINE] Cache hit | request={request.request_id}")
        return Response(
            request_id=request.request_id,
            state="completed",
            result=entry.result.as_cached(),
        )

    def _follow(self, record: RequestRecord, flight: Flight, shared: Response) -> Response:
        record.leader_id = flight.leader_id
        logger.info(
            f"[PIPELINE] Joined flight | request={record.request.request_id} | "
            f"leader={flight.leader_id}"
        )
        if shared.state == "completed":
            record.finished_at = self._clock()
        return shared.for_request(record.request.request_id)

    async def _lead(self, record: RequestRecord, flight: Flight) -> Response:
        request = record.request
        try:
            cost = self.costs.cost(request.method, request.payload)
            reservation = await self.ledger.reserve(
                request.user_id, cost, request.request_id, snapshot=request.snapshot()
            )
            record.reservation_id = reservation.reservation_id
            self.bus.publish(
                events.Reserved(
                    request.request_id, request.user_id, time.time(),
                    reservation_id=reservation.reservation_id, amount=cost,
                )
            )

            if self._claim_inline(request):
                try:
                    response = await self._run_inline(record, reservation)
                finally:
                    if self.registry.requires_provider(request.method):
                        self._sync_in_use -= 1
            else:
                response = await self._enqueue(record, reservation)
        except BaseException as exc:
            await self.flights.release(flight)
            if isinstance(exc, PipelineError):
                flight.resolve(error=exc)
            else:
                flight.resolve(error=Cancelled("Shared request did not complete"))
            raise

        if response.state == "completed":
            await self.flights.release(flight)
        flight.resolve(response)
        return response

    def _claim_inline(self, request: SummarizationRequest) -> bool:
        if not self.registry.requires_provider(request.method):
            return True
        if request.method == "composite" and not request.options.sync_preferred:
            return False
        if request.payload_bytes >= self.settings.sync_threshold_bytes:
            return False
        if self._sync_in_use >= self.settings.sync_slots:
            return False
        self._sync_in_use += 1
        return True

    async def _run_inline(self, record: RequestRecord, reservation: Reservation) -> Response:
        request = record.request
        record.task = asyncio.ensure_future(self._execute_inline(request))
        try:
            result = await asyncio.wait_for(record.task, self.settings.sync_deadline_seconds)
        except asyncio.TimeoutError:
            error: PipelineError = Timeout(
                f"Request exceeded {self.settings.sync_deadline_seconds}s",
                {"method": request.method},
            )
            await self._settle_failure(record, reservation.reservation_id, error)
            raise error from None
        except asyncio.CancelledError:
            if record.cancelled:
                await self._settle_cancelled(record, reservation.reservation_id)
                raise Cancelled(
                    "Request was cancelled", {"request_id": request.request_id}
                ) from None
            await self._settle_failure(
                record, reservation.reservation_id, Cancelled("Request was cancelled")
            )
            raise
        except PipelineError as exc:
            await self._settle_failure(record, reservation.reservation_id, exc)
            raise
        except Exception as exc:
            logger.exception(f"[PIPELINE] Strategy crashed | request={request.request_id}")
            error = as_pipeline_error(exc)
            await self._settle_failure(record, reservation.reservation_id, error)
            raise error from exc
        finally:
            record.task = None

        await self._settle_success(record, reservation.reservation_id, reservation.amount, result)
        return Response(
            request_id=request.request_id,
            state="completed",
            result=result,
            credits_charged=reservation.amount,
        )

    async def _execute_inline(self, request: SummarizationRequest) -> SummarizationResult:
        """Run the strategy; a direct generative call gets bounded inline retries."""
        retries = self.settings.generative_retries if request.method == "generative" else 0
        attempt = 0
        while True:
            try:
                result = await self.registry.run(
                    request.method, request.payload, request.options
                )
            except ProviderError as exc:
                if not exc.retryable or attempt >= retries:
                    raise
                delay = min(
                    self.settings.generative_backoff_initial * 4**attempt,
                    self.settings.generative_backoff_max,
                )
                attempt += 1
                logger.warning(
                    f"[PIPELINE] Provider retry | request={request.request_id} | "
                    f"attempt={attempt + 1} | delay={delay:.2f}s | kind={exc.kind}"
                )
                await asyncio.sleep(delay)
                continue
            result.metadata.setdefault("attempts", attempt + 1)
            return result

    async def _enqueue(self, record: RequestRecord, reservation: Reservation) -> Response:
        request = record.request
        if request.method == "generative":
            try:
                self.pool.check_available(self.settings.generative_provider)
            except PipelineError as exc:
                await self.ledger.refund(reservation.reservation_id, reason=exc.error_kind)
                self._publish_failure(request, exc)
                record.finished_at = self._clock()
                raise

        job = Job(
            request=request,
            reservation_id=reservation.reservation_id,
            reserved_credits=reservation.amount,
            max_attempts=request.max_attempts or self.settings.job_max_attempts,
            fingerprint=record.fingerprint,
        )
        try:
            await self.queue.enqueue(job)
        except PipelineError as exc:
            await self.ledger.refund(reservation.reservation_id, reason=exc.error_kind)
            self._publish_failure(request, exc)
            raise
        record.job_id = job.job_id

        workers = max(1, self.workers.count)
        return Response(
            request_id=request.request_id,
            state="queued",
            job_id=job.job_id,
            estimated_seconds=estimate_seconds(
                request.method, len(request.payload), self.queue.pending_count / workers
            ),
            queue_position=self.queue.position(job.job_id),
        )

    # -- settlement ----------------------------------------------------

    async def _settle_success(
        self,
        record: RequestRecord,
        reservation_id: str,
        amount: int,
        result: SummarizationResult,
    ) -> None:
        request = record.request
        try:
            await self.ledger.commit(reservation_id)
        except ReservationResolved:
            logger.error(
                f"[PIPELINE] Reservation already refunded at completion | "
                f"request={request.request_id} | reservation={reservation_id}"
            )
        await self.cache.store(record.fingerprint, result)
        record.finished_at = self._clock()
        self.counters["completed"] += 1
        self.bus.publish(
            events.Completed(
                request.request_id, request.user_id, time.time(),
                method_used=result.method_used, credits_charged=amount,
            )
        )
        logger.info(
            f"[PIPELINE] Completed | request={request.request_id} | "
            f"method={result.method_used} | credits={amount}"
        )

    async def _settle_failure(
        self, record: RequestRecord, reservation_id: str, error: PipelineError
    ) -> None:
        request = record.request
        await self.ledger.refund(reservation_id, reason=error.error_kind)
        record.finished_at = self._clock()
        self._publish_failure(request, error)

    async def _settle_cancelled(
        self, record: RequestRecord, reservation_id: str, job_id: Optional[str] = None
    ) -> None:
        request = record.request
        await self.ledger.refund(reservation_id, reason="cancelled")
        record.finished_at = self._clock()
        self.counters["cancelled"] += 1
        self.bus.publish(
            events.Cancelled(
                request.request_id, request.user_id, time.time(), job_id=job_id
            )
        )
        logger.info(f"[PIPELINE] Cancelled | request={request.request_id}")

    def _publish_failure(self, request: SummarizationRequest, error: PipelineError) -> None:
        self.counters["failed"] += 1
        self.bus.publish(
            events.Failed(
                request.request_id, request.user_id, time.time(),
                error_kind=error.error_kind, message=error.message,
            )
        )
        logger.warning(
            f"[PIPELINE] Failed | request={request.request_id} | "
            f"error={error.error_kind}: {error.message}"
        )

    async def _on_job_finished(self, job: Job) -> None:
        """Settle the reservation of a job that reached a terminal state."""
        record = self._records.get(job.request.request_id)
        if record is None:
            record = RequestRecord(request=job.request, fingerprint=job.fingerprint)
        if not record.is_live:
            return

        if job.state == "completed" and job.result is not None:
            reservation = await self.ledger.store.get_reservation(job.reservation_id)
            amount = reservation.amount if reservation else 0
            await self._settle_success(record, job.reservation_id, amount, job.result)
        elif job.state == "cancelled":
            await self._settle_cancelled(record, job.reservation_id, job.job_id)
        else:
            error = job.last_error or PipelineError("Job failed")
            await self._settle_failure(record, job.reservation_id, error)

        if record.flight is not None:
            await self.flights.release(record.flight)

    # -- status & cancel -----------------------------------------------

    def _record(self, request_id: str) -> RequestRecord:
        record = self._records.get(request_id)
        if record is None:
            raise NotFound("Request", request_id)
        return record

    async def status(self, request_id: str) -> "JobStatus":
        record = self._record(request_id)
        if record.cancelled:
            return JobStatus(request_id=request_id, state="cancelled", progress=1.0)

        source = record
        if record.leader_id is not None:
            source = self._records.get(record.leader_id) or record

        job = self.queue.get(source.job_id) if source.job_id else None
        if job is not None:
            return JobStatus(
                request_id=request_id,
                state=job.state,
                progress=job.progress,
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                job_id=job.job_id,
                error=job.last_error.to_payload()
                if job.last_error is not None and job.state in ("failed", "queued")
                else None,
                result=job.result,
            )

        response = source.response or record.response
        if response is not None and response.result is not None:
            return JobStatus(
                request_id=request_id,
                state="completed",
                progress=1.0,
                attempts=int(response.result.metadata.get("attempts", 1)),
                max_attempts=int(response.result.metadata.get("attempts", 1)),
                result=response.result,
            )
        if source.error is not None:
            return JobStatus(
                request_id=request_id,
                state="failed",
                progress=1.0,
                error=source.error.to_payload(),
            )
        return JobStatus(request_id=request_id, state="active", progress=0.5)

    async def cancel(self, request_id: str) -> "JobStatus":
        """Cancel a request; repeated calls return the same terminal status."""
        record = self._record(request_id)
        if record.leader_id is not None:
            # followers only detach; the shared execution keeps running
            if not record.cancelled and record.is_live:
                record.cancelled = True
                record.finished_at = self._clock()
                logger.info(f"[PIPELINE] Follower detached | request={request_id}")
            return await self.status(request_id)

        if record.job_id is not None:
            job, cancelled_now = await self.queue.cancel(record.job_id)
            if cancelled_now and job is not None:
                await self._on_job_finished(job)
        elif record.task is not None and not record.task.done():
            record.cancelled = True
            record.task.cancel()
            logger.info(f"[PIPELINE] Cancelling inline request | request={request_id}")
            await record.ready.wait()
        return await self.status(request_id)

    # -- maintenance ---------------------------------------------------

    async def sweep(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Reap stalled jobs, refund expired reservations and prune old records.

        ``now`` is in the ledger's clock and only affects reservation expiry.
        """
        ended = await self.queue.reap_stalled()
        for job in ended:
            await self._on_job_finished(job)

        live = {
            request_id for request_id, record in self._records.items() if record.is_live
        }
        swept = await self.ledger.sweep_expired(
            now=now, keep=lambda reservation: reservation.correlation in live
        )

        cutoff = self._clock() - self.settings.record_retention_seconds
        pruned = 0
        for request_id, record in list(self._records.items()):
            if record.leader_id is not None and record.is_live:
                leader = self._records.get(record.leader_id)
                if leader is None or not leader.is_live:
                    record.finished_at = leader.finished_at if leader else self._clock()
            if record.finished_at is not None and record.finished_at <= cutoff:
                if record.job_id:
                    self.queue.forget(record.job_id)
                del self._records[request_id]
                pruned += 1

        if ended or swept or pruned:
            logger.info(
                f"[PIPELINE] Sweep | stalled={len(ended)} | expired={swept} | pruned={pruned}"
            )
        return {"stalled": len(ended), "expired": swept, "pruned": pruned}

    async def recover(self) -> int:
        """Re-enqueue open reservations whose request snapshot has no live job."""
        recovered = 0
        for reservation in await self.ledger.open_reservations():
            if not reservation.snapshot or reservation.correlation in self._records:
                continue
            request = SummarizationRequest.from_snapshot(reservation.snapshot)
            record = RequestRecord(request=request, fingerprint=fingerprint(request))
            record.reservation_id = reservation.reservation_id
            flight, leader = await self.flights.claim(record.fingerprint, request.request_id)
            if leader:
                record.flight = flight
            self._records[request.request_id] = record
            try:
                response = await self._enqueue(record, reservation)
            except PipelineError as exc:
                record.error = exc
                record.finished_at = self._clock()
                if leader:
                    await self.flights.release(flight)
                    flight.resolve(error=exc)
                record.ready.set()
                continue
            record.response = response
            record.ready.set()
            if leader:
                flight.resolve(response)
            recovered += 1
            logger.info(
                f"[PIPELINE] Recovered | request={request.request_id} | job={response.job_id}"
            )
        return recovered

    # -- introspection -------------------------------------------------

    async def balance(self, user_id: str):
        return await self.ledger.balance(user_id)

    async def grant(self, user_id: str, amount: int, reason: str = ""):
        return await self.ledger.grant(user_id, amount, reason)

    def methods(self) -> Dict[str, Dict[str, Any]]:
        catalog = {}
        for name in self.registry.names():
            strategy = self.registry.resolve(name)
            catalog[name] = {
                "cost": self.costs.base_cost(name),
                "confidence": strategy.confidence,
                "requires_provider": strategy.requires_provider,
                **METHOD_CATALOG.get(name, {}),
            }
        return catalog

    def health(self) -> Dict[str, Any]:
        return {
            "queue_depth": self.queue.pending_count,
            "active_jobs": self.queue.active_count,
            "workers_running": self.workers.running,
            "providers": self.pool.states(),
            "usage": self.pool.usage_totals(),
            "counters": dict(self.counters),
        }


def build_cache(settings: Settings) -> ResultCache:
    if settings.cache_backend == "redis":
        backend = RedisCacheBackend(settings.redis_url)
    else:
        backend = MemoryCacheBackend()
    return ResultCache(
        backend, ttl_seconds=settings.cache_ttl_seconds, prefix=settings.cache_key_prefix
    )


def build_coordinator(
    settings: Settings,
    pool: Optional[ProviderPool] = None,
    ledger: Optional[CreditLedger] = None,
    cache: Optional[ResultCache] = None,
    usage_sink: Optional[UsageSink] = None,
) -> PipelineCoordinator:
    """Assemble the coordinator and its collaborators from ``settings``."""
    pool = pool if pool is not None else build_provider_pool(settings, sink=usage_sink)
    return PipelineCoordinator(
        settings=settings,
        registry=build_registry(pool, settings.generative_provider),
        pool=pool,
        ledger=ledger or CreditLedger(reservation_ttl_seconds=settings.reservation_ttl_seconds),
        cache=cache or build_cache(settings),
        queue=JobQueue(
            max_size=settings.queue_max_size,
            backoff_initial=settings.job_backoff_initial,
            backoff_factor=settings.job_backoff_factor,
            job_timeout=settings.job_timeout_seconds,
        ),
        bus=EventBus(settings.event_buffer_size),
    )
