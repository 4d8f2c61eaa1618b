import anyio
import pytest

from conftest import ManualClock
from summarize_this.cache.fingerprint import fingerprint, normalize_text
from summarize_this.cache.single_flight import SingleFlight
from summarize_this.cache.store import CacheBackend, CacheEntry, MemoryCacheBackend, ResultCache
from summarize_this.summarizer.models import (
    SummarizationOptions,
    SummarizationRequest,
    SummarizationResult,
)


def _request(text="The quick brown fox jumps over the lazy dog.", **options):
    return SummarizationRequest(
        user_id="u1",
        payload=text,
        method="extractive",
        options=SummarizationOptions(**options),
    )


def _result(summary="A cached summary."):
    return SummarizationResult(summary=summary, confidence=0.7, method_used="extractive")


def test_normalize_text_collapses_whitespace_and_composes():
    assert normalize_text("  café   au\tlait \n") == "café au lait"


def test_fingerprint_ignores_whitespace_and_focus_order():
    base = _request(focus_areas=("growth", "risk"))
    noisy = _request(
        text="  The quick   brown fox\njumps over the lazy dog. ",
        focus_areas=("Risk", "growth "),
    )
    assert fingerprint(base) == fingerprint(noisy)


def test_fingerprint_excludes_sync_preference_but_not_length():
    assert fingerprint(_request(sync_preferred=True)) == fingerprint(_request())
    assert fingerprint(_request(max_length=100)) != fingerprint(_request(max_length=200))


def test_fingerprint_depends_on_method():
    other = SummarizationRequest(
        user_id="u1",
        payload="The quick brown fox jumps over the lazy dog.",
        method="ranked",
    )
    assert fingerprint(other) != fingerprint(_request())


@pytest.mark.anyio
async def test_cache_hit_until_ttl_expires():
    clock = ManualClock()
    cache = ResultCache(ttl_seconds=60, clock=clock)
    await cache.store("abc", _result())

    entry = await cache.lookup("abc")
    assert entry is not None
    assert entry.result.summary == "A cached summary."

    clock.advance(60)
    assert await cache.lookup("abc") is None
    assert cache.stats() == (1, 1)


@pytest.mark.anyio
async def test_last_write_wins():
    cache = ResultCache()
    await cache.store("abc", _result("first"))
    await cache.store("abc", _result("second"))
    entry = await cache.lookup("abc")
    assert entry.result.summary == "second"


def test_memory_backend_purges_expired_entries():
    clock = ManualClock()
    backend = MemoryCacheBackend(clock)
    backend._entries["k"] = CacheEntry("k", _result(), stored_at=clock(), ttl_seconds=10)
    clock.advance(11)
    assert backend.purge_expired() == 1
    assert len(backend) == 0


@pytest.mark.anyio
async def test_empty_backend_passed_in_is_used():
    backend = MemoryCacheBackend()
    cache = ResultCache(backend=backend)
    assert cache.backend is backend

    await cache.store("abc", _result())
    assert len(backend) == 1


def test_cache_entry_json_round_trip_keeps_metadata():
    result = _result()
    result.metadata = {"sentences_selected": 1}
    entry = CacheEntry("fp", result, stored_at=5.0, ttl_seconds=30)
    restored = CacheEntry.from_json(entry.to_json())
    assert restored.result.metadata == {"sentences_selected": 1}
    assert restored.ttl_seconds == 30


class _BrokenBackend(CacheBackend):
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, entry):
        raise ConnectionError("redis down")


@pytest.mark.anyio
async def test_backend_failure_is_a_miss():
    cache = ResultCache(backend=_BrokenBackend())
    await cache.store("abc", _result())
    assert await cache.lookup("abc") is None
    assert cache.misses == 1


@pytest.mark.anyio
async def test_single_flight_shares_one_leader():
    flights = SingleFlight()
    flight, leader = await flights.claim("fp", "r1")
    same, follower = await flights.claim("fp", "r2")
    assert leader is True and follower is False
    assert same is flight
    assert flight.followers == 1

    results = []

    async def wait():
        results.append(await flight.wait())

    async with anyio.create_task_group() as tg:
        tg.start_soon(wait)
        tg.start_soon(wait)
        await anyio.sleep(0.01)
        flight.resolve("done")
        flight.resolve("ignored")

    assert results == ["done", "done"]
    await flights.release(flight)
    assert len(flights) == 0


@pytest.mark.anyio
async def test_single_flight_propagates_leader_error():
    flights = SingleFlight()
    flight, _ = await flights.claim("fp", "r1")
    flight.resolve(error=RuntimeError("boom"))
    with pytest.raises(RuntimeError):
        await flight.wait()


@pytest.mark.anyio
async def test_release_of_stale_flight_keeps_newer_one():
    flights = SingleFlight()
    old, _ = await flights.claim("fp", "r1")
    await flights.release(old)
    new, leader = await flights.claim("fp", "r2")
    assert leader
    await flights.release(old)
    assert flights.get("fp") is new
