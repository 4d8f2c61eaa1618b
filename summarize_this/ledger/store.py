"""Persistence interface for balances, entries and reservations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from summarize_this.ledger.models import LedgerEntry, Reservation, UserBalance


class LedgerStore(ABC):
    """Async storage contract; balance writes are compare-and-set on ``version``."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> UserBalance:
        """Current balance row, or a zero row at version 0 for unknown users."""

    @abstractmethod
    async def compare_and_set(self, balance: UserBalance, expected_version: int) -> bool:
        """Write ``balance`` only if the stored version equals ``expected_version``."""

    @abstractmethod
    async def append_entry(self, entry: LedgerEntry) -> None:
        """Append to the log. Entries are never updated or removed."""

    @abstractmethod
    async def entries(self, user_id: Optional[str] = None) -> List[LedgerEntry]:
        ...

    @abstractmethod
    async def save_reservation(self, reservation: Reservation) -> None:
        ...

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        ...

    @abstractmethod
    async def find_reservation(self, correlation: str) -> Optional[Reservation]:
        """Most recent reservation made for ``correlation``."""

    @abstractmethod
    async def open_reservations(self) -> List[Reservation]:
        ...


class InMemoryLedgerStore(LedgerStore):
    def __init__(self) -> None:
        self._balances: Dict[str, UserBalance] = {}
        self._entries: List[LedgerEntry] = []
        self._reservations: Dict[str, Reservation] = {}
        self._by_correlation: Dict[str, str] = {}

    async def get_balance(self, user_id: str) -> UserBalance:
        return self._balances.get(user_id) or UserBalance(user_id=user_id)

    async def compare_and_set(self, balance: UserBalance, expected_version: int) -> bool:
        current = self._balances.get(balance.user_id)
        current_version = current.version if current else 0
        if current_version != expected_version:
            return False
        self._balances[balance.user_id] = balance
        return True

    async def append_entry(self, entry: LedgerEntry) -> None:
        self._entries.append(entry)

    async def entries(self, user_id: Optional[str] = None) -> List[LedgerEntry]:
        if user_id is None:
            return list(self._entries)
        return [entry for entry in self._entries if entry.user_id == user_id]

    async def save_reservation(self, reservation: Reservation) -> None:
        self._reservations[reservation.reservation_id] = reservation
        self._by_correlation[reservation.correlation] = reservation.reservation_id

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        return self._reservations.get(reservation_id)

    async def find_reservation(self, correlation: str) -> Optional[Reservation]:
        reservation_id = self._by_correlation.get(correlation)
        return self._reservations.get(reservation_id) if reservation_id else None

    async def open_reservations(self) -> List[Reservation]:
        return [r for r in self._reservations.values() if r.is_open]
