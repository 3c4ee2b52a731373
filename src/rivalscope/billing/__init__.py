"""Signal balance accounting."""

from .ledger import InMemoryLedger, SignalLedger, SqlSignalLedger
from .types import AccountNotFoundError, BillingError, InsufficientBalanceError, LedgerEntry

__all__ = [
    "InMemoryLedger",
    "SignalLedger",
    "SqlSignalLedger",
    "AccountNotFoundError",
    "BillingError",
    "InsufficientBalanceError",
    "LedgerEntry",
]
