import pytest

from summarize_this.pipeline.events import Completed, EventBus, Submitted


def _submitted(i):
    return Submitted(f"req-{i}", "u1", float(i), method="extractive", fingerprint="fp")


def test_full_subscriber_drops_oldest_event():
    bus = EventBus(buffer_size=2)
    subscription = bus.subscribe()
    for i in range(3):
        bus.publish(_submitted(i))

    assert subscription.dropped == 1
    assert [event.request_id for event in subscription.drain()] == ["req-1", "req-2"]
    assert subscription.get_nowait() is None


def test_every_subscriber_gets_its_own_copy():
    bus = EventBus()
    first = bus.subscribe()
    second = bus.subscribe(buffer_size=1)
    bus.publish(Completed("req-1", "u1", 0.0, method_used="extractive", credits_charged=1))

    assert len(first.drain()) == 1
    assert len(second.drain()) == 1
    second.close()
    assert bus.subscriber_count == 1


def test_events_are_immutable():
    event = _submitted(0)
    with pytest.raises(AttributeError):
        event.method = "ranked"


@pytest.mark.anyio
async def test_subscription_is_async_iterable():
    bus = EventBus()
    subscription = bus.subscribe()
    bus.publish(_submitted(7))
    async for event in subscription:
        assert event.request_id == "req-7"
        break
