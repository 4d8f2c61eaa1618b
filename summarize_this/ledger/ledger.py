"""
Credit ledger: reserve, commit, refund and grant on per-user balances.

Every mutation takes the user's ``asyncio.Lock`` and writes the balance row
with compare-and-set on its version, then appends one immutable entry.
Reserve and refund entries record the hold in ``amount`` with a zero
``delta``, so ``credits`` always equals the sum of every entry's ``delta``.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from summarize_this.errors import (
    InsufficientCredits,
    NotFound,
    PipelineError,
    ReservationResolved,
    ValidationFailed,
)
from summarize_this.ledger.models import (
    BalanceView,
    LedgerEntry,
    Reservation,
    UserBalance,
)
from summarize_this.ledger.store import InMemoryLedgerStore, LedgerStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

MAX_CAS_ATTEMPTS = 5
CHARS_PER_UNIT = 1000

DEFAULT_COSTS: Dict[str, int] = {
    "extractive": 1,
    "ranked": 3,
    "generative": 10,
    "composite": 6,
}


class CostPolicy:
    """``base_cost[method] * max(1, ceil(len(text) / 1000))``."""

    def __init__(self, costs: Optional[Dict[str, int]] = None):
        self.costs = dict(DEFAULT_COSTS)
        if costs:
            self.costs.update(costs)

    def base_cost(self, method: str) -> int:
        try:
            return self.costs[method]
        except KeyError:
            raise ValidationFailed(f"No cost defined for method: {method}", field="method") from None

    def cost(self, method: str, text: str) -> int:
        units = max(1, math.ceil(len(text) / CHARS_PER_UNIT))
        return self.base_cost(method) * units


class CreditLedger:
    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        reservation_ttl_seconds: float = 3600.0,
        clock: Clock = time.time,
    ):
        self.store = store or InMemoryLedgerStore()
        self.reservation_ttl_seconds = reservation_ttl_seconds
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    async def _update_balance(
        self, user_id: str, mutate: Callable[[UserBalance], UserBalance]
    ) -> UserBalance:
        """Apply ``mutate`` with compare-and-set; caller holds the user's lock."""
        for _ in range(MAX_CAS_ATTEMPTS):
            current = await self.store.get_balance(user_id)
            updated = replace(mutate(current), version=current.version + 1)
            if updated.credits < 0:
                raise PipelineError("Ledger update would make credits negative")
            if await self.store.compare_and_set(updated, current.version):
                return updated
            logger.warning(f"[LEDGER] CAS conflict | user={user_id} | version={current.version}")
        raise PipelineError("Ledger update conflicted repeatedly")

    async def _load(self, reservation_id: str) -> Reservation:
        reservation = await self.store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)
        return reservation

    async def reserve(
        self,
        user_id: str,
        amount: int,
        correlation: str,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> Reservation:
        """Place a hold of ``amount`` credits.

        A correlation is charged at most once: a repeated call returns the
        existing reservation unless that one was refunded.
        """
        if amount <= 0:
            raise ValidationFailed("Reservation amount must be positive", field="amount")

        async with self._lock_for(user_id):
            existing = await self.store.find_reservation(correlation)
            if existing is not None and existing.state != "refunded":
                return existing

            current = await self.store.get_balance(user_id)
            if current.available < amount:
                logger.info(
                    f"[LEDGER] Insufficient | user={user_id} | required={amount} | "
                    f"available={current.available}"
                )
                raise InsufficientCredits(amount, current.available)

            def hold(balance: UserBalance) -> UserBalance:
                if balance.available < amount:
                    raise InsufficientCredits(amount, balance.available)
                return replace(balance, held=balance.held + amount)

            await self._update_balance(user_id, hold)
            reservation = Reservation(
                user_id=user_id,
                amount=amount,
                correlation=correlation,
                created_at=self._clock(),
                snapshot=snapshot,
            )
            await self.store.save_reservation(reservation)
            await self.store.append_entry(
                LedgerEntry(
                    user_id=user_id,
                    delta=0,
                    amount=amount,
                    kind="reserve",
                    correlates_to=reservation.reservation_id,
                    reason=correlation,
                )
            )
        logger.info(
            f"[LEDGER] Reserved | user={user_id} | amount={amount} | "
            f"reservation={reservation.reservation_id}"
        )
        return reservation

    async def commit(self, reservation_id: str) -> Reservation:
        """Charge an open reservation. Re-commit is a no-op; commit after refund raises."""
        reservation = await self._load(reservation_id)
        async with self._lock_for(reservation.user_id):
            reservation = await self._load(reservation_id)
            if reservation.state == "committed":
                return reservation
            if reservation.state == "refunded":
                raise ReservationResolved(reservation_id, "refunded")

            amount = reservation.amount
            await self._update_balance(
                reservation.user_id,
                lambda b: replace(b, credits=b.credits - amount, held=b.held - amount),
            )
            reservation.state = "committed"
            await self.store.save_reservation(reservation)
            await self.store.append_entry(
                LedgerEntry(
                    user_id=reservation.user_id,
                    delta=-amount,
                    amount=amount,
                    kind="commit",
                    correlates_to=reservation_id,
                    reason=reservation.correlation,
                )
            )
        logger.info(
            f"[LEDGER] Committed | user={reservation.user_id} | amount={amount} | "
            f"reservation={reservation_id}"
        )
        return reservation

    async def refund(self, reservation_id: str, reason: str = "") -> bool:
        """Release an open hold; False when the reservation was already resolved."""
        reservation = await self._load(reservation_id)
        async with self._lock_for(reservation.user_id):
            reservation = await self._load(reservation_id)
            if not reservation.is_open:
                return False

            amount = reservation.amount
            await self._update_balance(
                reservation.user_id, lambda b: replace(b, held=b.held - amount)
            )
            reservation.state = "refunded"
            await self.store.save_reservation(reservation)
            await self.store.append_entry(
                LedgerEntry(
                    user_id=reservation.user_id,
                    delta=0,
                    amount=amount,
                    kind="refund",
                    correlates_to=reservation_id,
                    reason=reason,
                )
            )
        logger.info(
            f"[LEDGER] Refunded | user={reservation.user_id} | amount={amount} | "
            f"reservation={reservation_id} | reason={reason}"
        )
        return True

    async def grant(self, user_id: str, amount: int, reason: str = "") -> BalanceView:
        if amount <= 0:
            raise ValidationFailed("Grant amount must be positive", field="amount")
        async with self._lock_for(user_id):
            await self._update_balance(
                user_id, lambda b: replace(b, credits=b.credits + amount)
            )
            await self.store.append_entry(
                LedgerEntry(
                    user_id=user_id, delta=amount, amount=amount, kind="grant", reason=reason
                )
            )
        logger.info(f"[LEDGER] Granted | user={user_id} | amount={amount} | reason={reason}")
        return await self.balance(user_id)

    async def balance(self, user_id: str) -> BalanceView:
        current = await self.store.get_balance(user_id)
        open_count = sum(
            1 for r in await self.store.open_reservations() if r.user_id == user_id
        )
        return BalanceView(
            user_id=user_id,
            credits=current.credits,
            available=current.available,
            held=current.held,
            open_reservations=open_count,
        )

    async def entries(self, user_id: Optional[str] = None) -> List[LedgerEntry]:
        return await self.store.entries(user_id)

    async def open_reservations(self) -> List[Reservation]:
        return await self.store.open_reservations()

    async def sweep_expired(
        self,
        now: Optional[float] = None,
        keep: Optional[Callable[[Reservation], bool]] = None,
    ) -> int:
        """Refund open reservations older than the TTL unless ``keep`` claims them."""
        now = self._clock() if now is None else now
        swept = 0
        for reservation in await self.store.open_reservations():
            if now - reservation.created_at < self.reservation_ttl_seconds:
                continue
            if keep is not None and keep(reservation):
                continue
            if await self.refund(reservation.reservation_id, reason="expired"):
                swept += 1
        if swept:
            logger.warning(f"[LEDGER] Swept expired reservations | count={swept}")
        return swept
