"""Type definitions for the billing ledger."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class BillingError(Exception):
    """Base exception for billing-related errors."""

    pass


class AccountNotFoundError(BillingError):
    """Raised when an account id is unknown to the ledger."""

    pass


class InsufficientBalanceError(BillingError):
    """Raised when a debit exceeds the available balance."""

    pass


@dataclass
class LedgerEntry:
    """One balance movement; negative amounts are debits."""

    account_id: str
    amount: int
    target_id: Optional[str] = None
    mode: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
