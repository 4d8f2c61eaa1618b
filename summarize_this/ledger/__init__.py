"""Credit ledger."""

from summarize_this.ledger.ledger import CostPolicy, CreditLedger
from summarize_this.ledger.models import (
    BalanceView,
    LedgerEntry,
    Reservation,
    UserBalance,
)
from summarize_this.ledger.store import InMemoryLedgerStore, LedgerStore

__all__ = [
    "BalanceView",
    "CostPolicy",
    "CreditLedger",
    "InMemoryLedgerStore",
    "LedgerEntry",
    "LedgerStore",
    "Reservation",
    "UserBalance",
]
