"""Signal balance ledgers."""

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import desc, select

from ..storage.sqlite import Account, DatabaseManager, SignalTransaction
from ..utils.logging import get_structured_logger
from .types import AccountNotFoundError, InsufficientBalanceError, LedgerEntry

logger = get_structured_logger(__name__)


class SignalLedger(Protocol):
    """Consumable signal balance per account."""

    async def get_balance(self, account_id: str) -> int:
        ...

    async def debit(
        self,
        account_id: str,
        amount: int,
        target_id: Optional[str] = None,
        mode: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        ...

    async def credit(self, account_id: str, amount: int, description: Optional[str] = None) -> int:
        ...


class InMemoryLedger:
    """Ledger kept in process memory."""

    def __init__(self, balances: Optional[dict[str, int]] = None):
        self.balances: dict[str, int] = dict(balances or {})
        self.entries: list[LedgerEntry] = []

    async def get_balance(self, account_id: str) -> int:
        if account_id not in self.balances:
            raise AccountNotFoundError(f"Account not found: {account_id}")
        return self.balances[account_id]

    async def debit(
        self,
        account_id: str,
        amount: int,
        target_id: Optional[str] = None,
        mode: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        balance = await self.get_balance(account_id)
        if amount > balance:
            raise InsufficientBalanceError(
                f"Insufficient signals. Need {amount} signals but only have {balance}."
            )
        self.balances[account_id] = balance - amount
        self.entries.append(
            LedgerEntry(account_id, -amount, target_id=target_id, mode=mode, description=description)
        )
        return self.balances[account_id]

    async def credit(self, account_id: str, amount: int, description: Optional[str] = None) -> int:
        self.balances[account_id] = self.balances.get(account_id, 0) + amount
        self.entries.append(LedgerEntry(account_id, amount, description=description))
        return self.balances[account_id]


class SqlSignalLedger:
    """Ledger backed by the accounts and signal_transactions tables."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def create_account(
        self, email: str, name: Optional[str] = None, balance: int = 0
    ) -> Account:
        async with self.db_manager.get_session() as session:
            account = Account(email=email, name=name, signal_balance=balance)
            session.add(account)
            await session.flush()
            await session.refresh(account)
            logger.info("Account created", account_id=account.id, email=email)
            return account

    async def get_account(self, account_id: str) -> Optional[Account]:
        async with self.db_manager.get_session() as session:
            return await session.get(Account, account_id)

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        async with self.db_manager.get_session() as session:
            result = await session.execute(select(Account).where(Account.email == email))
            return result.scalar_one_or_none()

    async def get_balance(self, account_id: str) -> int:
        account = await self.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account not found: {account_id}")
        return account.signal_balance

    async def debit(
        self,
        account_id: str,
        amount: int,
        target_id: Optional[str] = None,
        mode: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        """Debit signals and record the transaction atomically."""
        async with self.db_manager.get_session() as session:
            account = await session.get(Account, account_id, with_for_update=True)
            if account is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")
            if amount > account.signal_balance:
                raise InsufficientBalanceError(
                    f"Insufficient signals. Need {amount} signals "
                    f"but only have {account.signal_balance}."
                )

            account.signal_balance -= amount
            session.add(
                SignalTransaction(
                    account_id=account_id,
                    target_id=target_id,
                    mode=mode,
                    signals_used=amount,
                    description=description,
                    created_at=datetime.utcnow(),
                )
            )
            logger.info(
                "Signals debited",
                account_id=account_id,
                amount=amount,
                balance=account.signal_balance,
            )
            return account.signal_balance

    async def credit(self, account_id: str, amount: int, description: Optional[str] = None) -> int:
        async with self.db_manager.get_session() as session:
            account = await session.get(Account, account_id, with_for_update=True)
            if account is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")

            account.signal_balance += amount
            session.add(
                SignalTransaction(
                    account_id=account_id,
                    signals_used=-amount,
                    description=description or "Signals credited",
                    created_at=datetime.utcnow(),
                )
            )
            logger.info("Signals credited", account_id=account_id, amount=amount)
            return account.signal_balance

    async def list_transactions(self, account_id: str, limit: int = 50) -> list[SignalTransaction]:
        async with self.db_manager.get_session() as session:
            result = await session.execute(
                select(SignalTransaction)
                .where(SignalTransaction.account_id == account_id)
                .order_by(desc(SignalTransaction.created_at))
                .limit(limit)
            )
            return list(result.scalars().all())
