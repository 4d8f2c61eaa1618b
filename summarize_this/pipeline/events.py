"""Pipeline events and the bounded broadcast bus that carries them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineEvent:
    request_id: str
    user_id: str
    at: float


@dataclass(frozen=True, slots=True)
class Submitted(PipelineEvent):
    method: str
    fingerprint: str


@dataclass(frozen=True, slots=True)
class Cached(PipelineEvent):
    fingerprint: str


@dataclass(frozen=True, slots=True)
class Reserved(PipelineEvent):
    reservation_id: str
    amount: int


@dataclass(frozen=True, slots=True)
class Completed(PipelineEvent):
    method_used: str
    credits_charged: int


@dataclass(frozen=True, slots=True)
class Failed(PipelineEvent):
    error_kind: str
    message: str


@dataclass(frozen=True, slots=True)
class Cancelled(PipelineEvent):
    job_id: Optional[str]


class Subscription:
    """One subscriber's bounded buffer; the oldest event is dropped when full."""

    def __init__(self, bus: "EventBus", max_size: int):
        self._bus = bus
        self._queue: asyncio.Queue[PipelineEvent] = asyncio.Queue(maxsize=max_size)
        self.dropped = 0

    def offer(self, event: PipelineEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def get(self) -> PipelineEvent:
        return await self._queue.get()

    def get_nowait(self) -> Optional[PipelineEvent]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> List[PipelineEvent]:
        events = []
        while (event := self.get_nowait()) is not None:
            events.append(event)
        return events

    def close(self) -> None:
        self._bus.unsubscribe(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> PipelineEvent:
        return await self.get()


class EventBus:
    def __init__(self, buffer_size: int = 256):
        self.buffer_size = buffer_size
        self._subscribers: List[Subscription] = []

    def subscribe(self, buffer_size: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, buffer_size or self.buffer_size)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, event: PipelineEvent) -> None:
        """Deliver without blocking the publisher."""
        for subscription in self._subscribers:
            subscription.offer(event)
        logger.debug(f"[EVENTS] {type(event).__name__} | request={event.request_id}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
