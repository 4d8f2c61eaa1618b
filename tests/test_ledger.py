import asyncio

import pytest

from conftest import ManualClock
from summarize_this.errors import (
    InsufficientCredits,
    NotFound,
    PipelineError,
    ReservationResolved,
    ValidationFailed,
)
from summarize_this.ledger.ledger import CostPolicy, CreditLedger
from summarize_this.ledger.store import InMemoryLedgerStore


async def _funded(amount=50, **kwargs):
    ledger = CreditLedger(**kwargs)
    await ledger.grant("u1", amount, reason="test")
    return ledger


async def _credits_from_entries(ledger, user_id="u1"):
    return sum(entry.delta for entry in await ledger.entries(user_id))


@pytest.mark.anyio
async def test_reserve_holds_without_touching_credits():
    ledger = await _funded()
    reservation = await ledger.reserve("u1", 10, "req-1")

    view = await ledger.balance("u1")
    assert (view.credits, view.available, view.held) == (50, 40, 10)
    assert view.open_reservations == 1
    assert reservation.is_open

    kinds = [(e.kind, e.delta, e.amount) for e in await ledger.entries("u1")]
    assert kinds == [("grant", 50, 50), ("reserve", 0, 10)]
    assert await _credits_from_entries(ledger) == 50


@pytest.mark.anyio
async def test_commit_charges_and_is_idempotent():
    ledger = await _funded()
    reservation = await ledger.reserve("u1", 10, "req-1")
    await ledger.commit(reservation.reservation_id)
    await ledger.commit(reservation.reservation_id)

    view = await ledger.balance("u1")
    assert (view.credits, view.available, view.held) == (40, 40, 0)
    assert await _credits_from_entries(ledger) == 40
    commits = [e for e in await ledger.entries("u1") if e.kind == "commit"]
    assert len(commits) == 1
    assert commits[0].delta == -10
    assert commits[0].correlates_to == reservation.reservation_id


@pytest.mark.anyio
async def test_refund_restores_balance_once():
    ledger = await _funded()
    reservation = await ledger.reserve("u1", 10, "req-1")
    assert await ledger.refund(reservation.reservation_id, "cancelled") is True
    assert await ledger.refund(reservation.reservation_id, "cancelled") is False

    view = await ledger.balance("u1")
    assert (view.credits, view.available, view.held) == (50, 50, 0)
    refunds = [e for e in await ledger.entries("u1") if e.kind == "refund"]
    assert [(e.delta, e.amount, e.reason) for e in refunds] == [(0, 10, "cancelled")]
    assert await _credits_from_entries(ledger) == 50


@pytest.mark.anyio
async def test_commit_after_refund_raises():
    ledger = await _funded()
    reservation = await ledger.reserve("u1", 10, "req-1")
    await ledger.refund(reservation.reservation_id)
    with pytest.raises(ReservationResolved):
        await ledger.commit(reservation.reservation_id)


@pytest.mark.anyio
async def test_refund_after_commit_is_noop():
    ledger = await _funded()
    reservation = await ledger.reserve("u1", 10, "req-1")
    await ledger.commit(reservation.reservation_id)
    assert await ledger.refund(reservation.reservation_id) is False
    assert (await ledger.balance("u1")).credits == 40


@pytest.mark.anyio
async def test_insufficient_credits_leaves_balance_untouched():
    ledger = await _funded(2)
    with pytest.raises(InsufficientCredits) as excinfo:
        await ledger.reserve("u1", 10, "req-1")
    assert (excinfo.value.required, excinfo.value.available) == (10, 2)
    assert [e.kind for e in await ledger.entries("u1")] == ["grant"]
    assert (await ledger.balance("u1")).available == 2


@pytest.mark.anyio
async def test_reserve_checks_available_not_credits():
    ledger = await _funded(15)
    await ledger.reserve("u1", 10, "req-1")
    with pytest.raises(InsufficientCredits):
        await ledger.reserve("u1", 10, "req-2")


@pytest.mark.anyio
async def test_reserve_is_idempotent_per_correlation():
    ledger = await _funded()
    first = await ledger.reserve("u1", 10, "req-1")
    again = await ledger.reserve("u1", 10, "req-1")
    assert again.reservation_id == first.reservation_id
    assert (await ledger.balance("u1")).held == 10

    await ledger.refund(first.reservation_id)
    fresh = await ledger.reserve("u1", 10, "req-1")
    assert fresh.reservation_id != first.reservation_id


@pytest.mark.anyio
async def test_concurrent_reserves_never_overdraw():
    ledger = await _funded(50)

    async def attempt(i):
        try:
            await ledger.reserve("u1", 10, f"req-{i}")
            return True
        except InsufficientCredits:
            return False

    outcomes = await asyncio.gather(*(attempt(i) for i in range(10)))
    assert outcomes.count(True) == 5
    view = await ledger.balance("u1")
    assert (view.available, view.held) == (0, 50)


class _ContendedStore(InMemoryLedgerStore):
    def __init__(self, conflicts):
        super().__init__()
        self.conflicts = conflicts

    async def compare_and_set(self, balance, expected_version):
        if self.conflicts:
            self.conflicts -= 1
            return False
        return await super().compare_and_set(balance, expected_version)


@pytest.mark.anyio
async def test_cas_conflicts_are_retried():
    ledger = CreditLedger(store=_ContendedStore(conflicts=2))
    view = await ledger.grant("u1", 5)
    assert view.credits == 5


@pytest.mark.anyio
async def test_persistent_cas_conflict_raises():
    ledger = CreditLedger(store=_ContendedStore(conflicts=100))
    with pytest.raises(PipelineError):
        await ledger.grant("u1", 5)


@pytest.mark.anyio
async def test_invalid_amounts_and_unknown_reservations():
    ledger = await _funded()
    with pytest.raises(ValidationFailed):
        await ledger.reserve("u1", 0, "req-1")
    with pytest.raises(ValidationFailed):
        await ledger.grant("u1", -5)
    with pytest.raises(NotFound):
        await ledger.commit("missing")


@pytest.mark.anyio
async def test_sweep_refunds_expired_reservations_except_kept():
    clock = ManualClock()
    ledger = await _funded(reservation_ttl_seconds=60, clock=clock)
    stale = await ledger.reserve("u1", 10, "req-stale")
    live = await ledger.reserve("u1", 10, "req-live")
    clock.advance(30)
    recent = await ledger.reserve("u1", 10, "req-recent")
    clock.advance(31)

    swept = await ledger.sweep_expired(keep=lambda r: r.correlation == "req-live")
    assert swept == 1
    open_ids = {r.reservation_id for r in await ledger.open_reservations()}
    assert open_ids == {live.reservation_id, recent.reservation_id}
    assert stale.reservation_id not in open_ids
    assert (await ledger.balance("u1")).available == 30


def test_cost_policy_scales_per_thousand_characters():
    policy = CostPolicy()
    assert policy.cost("extractive", "x" * 10) == 1
    assert policy.cost("ranked", "x" * 1000) == 3
    assert policy.cost("generative", "x" * 1001) == 20
    assert policy.cost("composite", "x" * 4500) == 30
    assert CostPolicy({"extractive": 2}).cost("extractive", "x" * 10) == 2
    with pytest.raises(ValidationFailed):
        policy.base_cost("abstractive")


@pytest.mark.anyio
async def test_committed_correlation_is_never_charged_twice():
    ledger = await _funded()
    first = await ledger.reserve("u1", 10, "req-1")
    await ledger.commit(first.reservation_id)

    again = await ledger.reserve("u1", 10, "req-1")
    assert again.reservation_id == first.reservation_id
    assert again.state == "committed"
    view = await ledger.balance("u1")
    assert (view.credits, view.available, view.held) == (40, 40, 0)
    assert [e.kind for e in await ledger.entries("u1")] == ["grant", "reserve", "commit"]


@pytest.mark.anyio
async def test_entry_deltas_sum_to_credits():
    ledger = await _funded()
    charged = await ledger.reserve("u1", 10, "req-1")
    await ledger.commit(charged.reservation_id)
    released = await ledger.reserve("u1", 5, "req-2")
    await ledger.refund(released.reservation_id, "failed")
    await ledger.reserve("u1", 3, "req-3")
    await ledger.grant("u1", 7)

    view = await ledger.balance("u1")
    assert view.credits == 47
    assert view.held == 3
    assert await _credits_from_entries(ledger) == view.credits
