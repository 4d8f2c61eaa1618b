"""Pytest configuration and shared fixtures."""

import asyncio
from typing import List, Optional

import anyio
import pytest

from summarize_this.config import Settings
from summarize_this.pipeline.coordinator import PipelineCoordinator, build_coordinator
from summarize_this.providers.base import (
    ProviderCallError,
    ProviderClient,
    ProviderResponse,
)
from summarize_this.providers.pool import ProviderPool

S1_TEXT = (
    "The quick brown fox jumps over the lazy dog. It was a bright cold day in April."
)

LONG_TEXT = " ".join(
    f"Sentence number {i} explains how the quarterly growth improved the outlook."
    for i in range(80)
)


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use only asyncio backend."""
    return "asyncio"


class FakeProvider(ProviderClient):
    """Scripted provider: each call pops an outcome ("ok" or a failure kind)."""

    model = "fake-model"

    def __init__(self, script: Optional[List[str]] = None, text: str = "A short generated summary."):
        self.script = list(script or [])
        self.text = text
        self.calls = 0
        self.prompts: List[str] = []
        self.max_tokens: List[int] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.in_flight = 0
        self.peak = 0

    async def summarize(self, prompt, max_tokens, timeout):
        self.calls += 1
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            outcome = self.script.pop(0) if self.script else "ok"
            if outcome != "ok":
                raise ProviderCallError(outcome)
            return ProviderResponse(
                text=self.text, input_tokens=12, output_tokens=8, model=self.model
            )
        finally:
            self.in_flight -= 1


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    values = dict(
        llm_provider="none",
        worker_count=2,
        job_backoff_initial=0.01,
        job_backoff_factor=1.0,
        generative_backoff_initial=0.01,
        generative_backoff_max=0.02,
        sweep_interval_seconds=60.0,
    )
    values.update(overrides)
    return Settings(**values)


def make_pool(provider: ProviderClient, **limits) -> ProviderPool:
    pool = ProviderPool(sink=lambda record: None)
    pool.register("default", provider, **limits)
    return pool


async def wait_for_state(
    coordinator: PipelineCoordinator, request_id: str, states, timeout: float = 3.0
):
    with anyio.fail_after(timeout):
        while True:
            status = await coordinator.status(request_id)
            if status.state in states:
                return status
            await anyio.sleep(0.01)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def coordinator(settings, provider):
    return build_coordinator(settings, pool=make_pool(provider))


@pytest.fixture
async def running_coordinator(coordinator):
    await coordinator.start()
    yield coordinator
    await coordinator.stop()


async def wait_for_event(subscription, event_type, timeout: float = 3.0):
    """Consume events until one of ``event_type`` arrives."""
    with anyio.fail_after(timeout):
        async for event in subscription:
            if isinstance(event, event_type):
                return event
