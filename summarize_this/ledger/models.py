"""Credit ledger records."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Literal, Optional

EntryKind = Literal["reserve", "commit", "refund", "grant"]
ReservationState = Literal["open", "committed", "refunded"]


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class UserBalance:
    """Per-user balance row; ``held`` is the sum of open reservations."""

    user_id: str
    credits: int = 0
    held: int = 0
    version: int = 0

    @property
    def available(self) -> int:
        return self.credits - self.held


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    user_id: str
    delta: int
    kind: EntryKind
    amount: int = 0
    correlates_to: Optional[str] = None
    reason: str = ""
    entry_id: str = field(default_factory=new_id)
    at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Reservation:
    user_id: str
    amount: int
    correlation: str
    created_at: float
    reservation_id: str = field(default_factory=new_id)
    state: ReservationState = "open"
    snapshot: Optional[Dict[str, Any]] = None

    @property
    def is_open(self) -> bool:
        return self.state == "open"


@dataclass(frozen=True, slots=True)
class BalanceView:
    user_id: str
    credits: int
    available: int
    held: int
    open_reservations: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
