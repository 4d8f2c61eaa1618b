import asyncio

import anyio
import pytest

from conftest import FakeProvider, ManualClock, make_pool
from summarize_this.errors import CircuitOpen, ProviderError
from summarize_this.providers.base import ProviderResponse
from summarize_this.providers.pool import (
    CLOSED,
    HALF_OPEN,
    OPEN,
    CircuitBreaker,
    ProviderPool,
    TokenBucket,
)


def test_token_bucket_refills_over_time():
    clock = ManualClock()
    bucket = TokenBucket(capacity=2, refill_rate=1.0, clock=clock)
    assert bucket.try_acquire() == 0
    assert bucket.try_acquire() == 0
    assert bucket.try_acquire() == pytest.approx(1.0)
    clock.advance(0.5)
    assert bucket.try_acquire() == pytest.approx(0.5)
    clock.advance(0.5)
    assert bucket.try_acquire() == 0
    clock.advance(100)
    assert bucket.tokens == 2


def test_breaker_opens_after_consecutive_failures_and_probes():
    clock = ManualClock()
    breaker = CircuitBreaker(failure_threshold=3, window_seconds=30, reset_seconds=10, clock=clock)
    for _ in range(3):
        assert breaker.admit()
        breaker.record_failure()
    assert breaker.state == OPEN
    assert not breaker.admit()
    assert breaker.retry_after() == pytest.approx(10)

    clock.advance(10)
    assert breaker.state == HALF_OPEN
    assert breaker.admit()
    assert not breaker.admit()
    breaker.record_success()
    assert breaker.state == CLOSED


def test_failed_probe_reopens_circuit():
    clock = ManualClock()
    breaker = CircuitBreaker(failure_threshold=1, reset_seconds=5, clock=clock)
    breaker.record_failure()
    clock.advance(5)
    assert breaker.admit()
    breaker.record_failure()
    assert breaker.state == OPEN
    assert breaker.retry_after() == pytest.approx(5)


def test_success_resets_failure_streak():
    breaker = CircuitBreaker(failure_threshold=2, clock=ManualClock())
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state == CLOSED


def test_failures_outside_window_do_not_count():
    clock = ManualClock()
    breaker = CircuitBreaker(failure_threshold=2, window_seconds=10, clock=clock)
    breaker.record_failure()
    clock.advance(11)
    breaker.record_failure()
    assert breaker.state == CLOSED


@pytest.mark.anyio
async def test_open_circuit_fails_fast_without_calling_provider():
    provider = FakeProvider(script=["upstream_error"] * 5)
    pool = make_pool(provider, failure_threshold=5)
    for _ in range(5):
        with pytest.raises(ProviderError) as excinfo:
            await pool.call("default", "prompt", 16)
        assert excinfo.value.retryable
    assert pool.states() == {"default": OPEN}

    with pytest.raises(CircuitOpen):
        await pool.call("default", "prompt", 16)
    with pytest.raises(CircuitOpen):
        pool.check_available("default")
    assert provider.calls == 5


@pytest.mark.anyio
async def test_invalid_input_does_not_trip_breaker():
    provider = FakeProvider(script=["invalid_input"] * 3)
    pool = make_pool(provider, failure_threshold=2)
    for _ in range(3):
        with pytest.raises(ProviderError) as excinfo:
            await pool.call("default", "prompt", 16)
        assert excinfo.value.kind == "invalid_input"
        assert not excinfo.value.retryable
    assert pool.states() == {"default": CLOSED}
    assert pool.usage_totals()["default"]["failures"] == 3


class _SlowProvider(FakeProvider):
    async def summarize(self, prompt, max_tokens, timeout):
        self.calls += 1
        await asyncio.sleep(1)
        return ProviderResponse(text="late")


@pytest.mark.anyio
async def test_timeout_is_a_retryable_provider_error():
    pool = make_pool(_SlowProvider(), timeout_seconds=0.05)
    with pytest.raises(ProviderError) as excinfo:
        await pool.call("default", "prompt", 16)
    assert excinfo.value.kind == "timeout"
    assert excinfo.value.retryable


@pytest.mark.anyio
async def test_usage_is_reported_to_sink():
    records = []
    pool = ProviderPool(sink=records.append)
    pool.register("default", FakeProvider())
    response = await pool.call("default", "prompt", 16)
    assert response.tokens_used == 20
    assert len(records) == 1
    assert records[0].model == "fake-model"
    assert (records[0].input_tokens, records[0].output_tokens) == (12, 8)
    assert pool.usage_totals()["default"]["calls"] == 1


@pytest.mark.anyio
async def test_unknown_provider_is_not_retryable():
    pool = ProviderPool(sink=lambda record: None)
    with pytest.raises(ProviderError) as excinfo:
        await pool.call("missing", "prompt", 16)
    assert not excinfo.value.retryable


@pytest.mark.anyio
async def test_concurrency_is_bounded_per_provider():
    provider = FakeProvider()
    provider.gate = asyncio.Event()
    pool = make_pool(provider, max_concurrency=2, rate_capacity=10)

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(pool.call, "default", "prompt", 16)
        await anyio.sleep(0.05)
        assert provider.in_flight == 2
        provider.gate.set()

    assert provider.calls == 5
    assert provider.peak == 2
