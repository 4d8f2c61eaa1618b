"""Rate-limited, bounded-concurrency provider access with circuit breaking."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from summarize_this.errors import CircuitOpen, ProviderError
from summarize_this.providers.base import (
    BREAKER_KINDS,
    ProviderCallError,
    ProviderClient,
    ProviderResponse,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class UsageRecord:
    provider: str
    model: str
    input_tokens: int
    output_tokens: int


UsageSink = Callable[[UsageRecord], None]


def log_usage(record: UsageRecord) -> None:
    logger.info(
        f"[PROVIDER] Usage | provider={record.provider} | model={record.model} | "
        f"input={record.input_tokens} | output={record.output_tokens}"
    )


class TokenBucket:
    """Token bucket holding up to ``capacity`` tokens, refilled at ``refill_rate``/s."""

    def __init__(self, capacity: int, refill_rate: float, clock: Clock = time.monotonic):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._updated = now

    def try_acquire(self) -> float:
        """Take a token; return 0 on success, else the seconds until one is due."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return 0.0
        return (1 - self._tokens) / self.refill_rate

    async def acquire(self) -> None:
        while True:
            wait = self.try_acquire()
            if not wait:
                return
            await asyncio.sleep(wait)

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    ``failure_threshold`` failures inside ``window_seconds`` with no success in
    between open the circuit for ``reset_seconds``. After that a single probe
    is admitted (half-open); its outcome closes or re-opens the circuit.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        window_seconds: float = 30.0,
        reset_seconds: float = 30.0,
        clock: Clock = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._failures: Deque[float] = deque()
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return CLOSED
        if self._clock() - self._opened_at >= self.reset_seconds:
            return HALF_OPEN
        return OPEN

    def retry_after(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.reset_seconds - (self._clock() - self._opened_at))

    def is_blocking(self) -> bool:
        state = self.state
        return state == OPEN or (state == HALF_OPEN and self._probe_in_flight)

    def admit(self) -> bool:
        """Claim permission for one call; False means fail fast."""
        state = self.state
        if state == CLOSED:
            return True
        if state == HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return True
        return False

    def release(self) -> None:
        """Give back a half-open probe whose call never produced an outcome."""
        self._probe_in_flight = False

    def record_success(self) -> None:
        self._failures.clear()
        self._opened_at = None
        self._probe_in_flight = False

    def record_failure(self) -> None:
        now = self._clock()
        if self._opened_at is not None:
            # failed probe
            self._opened_at = now
            self._probe_in_flight = False
            self._failures.clear()
            return
        self._failures.append(now)
        while self._failures and now - self._failures[0] > self.window_seconds:
            self._failures.popleft()
        if len(self._failures) >= self.failure_threshold:
            self._opened_at = now
            self._failures.clear()


@dataclass(slots=True)
class UsageTotals:
    calls: int = 0
    failures: int = 0
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(slots=True)
class ProviderSlot:
    name: str
    client: ProviderClient
    semaphore: asyncio.Semaphore
    bucket: TokenBucket
    breaker: CircuitBreaker
    timeout_seconds: float
    totals: UsageTotals = field(default_factory=UsageTotals)


class ProviderPool:
    """Named provider slots shared by every strategy that needs a provider."""

    def __init__(self, sink: Optional[UsageSink] = None, clock: Clock = time.monotonic):
        self._slots: Dict[str, ProviderSlot] = {}
        self._sink = sink or log_usage
        self._clock = clock

    def register(
        self,
        name: str,
        client: ProviderClient,
        *,
        max_concurrency: int = 8,
        rate_capacity: int = 10,
        rate_refill: float = 5.0,
        timeout_seconds: float = 30.0,
        failure_threshold: int = 5,
        window_seconds: float = 30.0,
        reset_seconds: float = 30.0,
    ) -> ProviderSlot:
        slot = ProviderSlot(
            name=name,
            client=client,
            semaphore=asyncio.Semaphore(max_concurrency),
            bucket=TokenBucket(rate_capacity, rate_refill, self._clock),
            breaker=CircuitBreaker(
                failure_threshold, window_seconds, reset_seconds, self._clock
            ),
            timeout_seconds=timeout_seconds,
        )
        self._slots[name] = slot
        logger.info(
            f"[PROVIDER] Registered | name={name} | model={client.model} | "
            f"concurrency={max_concurrency} | rate={rate_capacity}/{rate_refill}s"
        )
        return slot

    def __contains__(self, name: str) -> bool:
        return name in self._slots

    def names(self) -> list[str]:
        return list(self._slots)

    def slot(self, name: str) -> ProviderSlot:
        try:
            return self._slots[name]
        except KeyError:
            raise ProviderError(
                f"Provider '{name}' is not configured",
                provider=name,
                retryable=False,
                kind="invalid_input",
            ) from None

    def check_available(self, name: str) -> None:
        """Raise ``CircuitOpen`` when calls to ``name`` would currently fail fast."""
        breaker = self.slot(name).breaker
        if breaker.is_blocking():
            raise CircuitOpen(name, breaker.retry_after())

    async def call(
        self,
        name: str,
        prompt: str,
        max_tokens: int,
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        slot = self.slot(name)
        breaker = slot.breaker
        if not breaker.admit():
            logger.warning(f"[PROVIDER] Circuit open | provider={name}")
            raise CircuitOpen(name, breaker.retry_after())

        deadline = timeout or slot.timeout_seconds
        settled = False
        try:
            async with slot.semaphore:
                await slot.bucket.acquire()
                slot.totals.calls += 1
                try:
                    response = await asyncio.wait_for(
                        slot.client.summarize(prompt, max_tokens, deadline), deadline
                    )
                except asyncio.TimeoutError:
                    settled = True
                    self._record_failure(slot, "timeout")
                    raise ProviderError(
                        f"Provider '{name}' timed out after {deadline}s",
                        provider=name,
                        retryable=True,
                        kind="timeout",
                    ) from None
                except ProviderCallError as exc:
                    settled = True
                    self._record_failure(slot, exc.kind)
                    raise ProviderError(
                        f"Provider '{name}' failed: {exc}",
                        provider=name,
                        retryable=exc.retryable,
                        kind=exc.kind,
                    ) from exc
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    settled = True
                    self._record_failure(slot, "upstream_error")
                    raise ProviderError(
                        f"Provider '{name}' failed: {exc.__class__.__name__}",
                        provider=name,
                        retryable=True,
                        kind="upstream_error",
                    ) from exc
        finally:
            if not settled:
                breaker.release()

        breaker.record_success()
        slot.totals.input_tokens += response.input_tokens
        slot.totals.output_tokens += response.output_tokens
        self._sink(
            UsageRecord(
                provider=name,
                model=response.model or slot.client.model,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )
        )
        return response

    def _record_failure(self, slot: ProviderSlot, kind: str) -> None:
        slot.totals.failures += 1
        if kind in BREAKER_KINDS:
            before = slot.breaker.state
            slot.breaker.record_failure()
            if slot.breaker.state == OPEN and before != OPEN:
                logger.warning(
                    f"[PROVIDER] Circuit opened | provider={slot.name} | "
                    f"reset_in={slot.breaker.reset_seconds}s"
                )
        else:
            # the provider answered, so a half-open probe counts as healthy
            slot.breaker.record_success()

    def states(self) -> Dict[str, str]:
        return {name: slot.breaker.state for name, slot in self._slots.items()}

    def usage_totals(self) -> Dict[str, Dict[str, int]]:
        return {
            name: {
                "calls": slot.totals.calls,
                "failures": slot.totals.failures,
                "input_tokens": slot.totals.input_tokens,
                "output_tokens": slot.totals.output_tokens,
            }
            for name, slot in self._slots.items()
        }

    async def close(self) -> None:
        for slot in self._slots.values():
            await slot.client.close()
