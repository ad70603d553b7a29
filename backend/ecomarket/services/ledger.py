"""
Reward ledger service.

Two ledgers share this implementation: seller revenue (integer yen) and
buyer tree points (fractional points). Each exposes add/deduct/refund/get
with its own commit; the purchase engine uses LedgerRepository directly so
its ledger writes join the purchase transaction instead.
"""
from dataclasses import dataclass
from typing import Type, Union

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from ecomarket.core.errors import InvalidInputError
from ecomarket.db.transaction import atomic
from ecomarket.models.ledger import UserRevenue, UserTreePoints
from ecomarket.repositories.ledger_repo import LedgerModel, LedgerRepository

logger = get_logger()

Amount = Union[int, float]


@dataclass(frozen=True)
class LedgerBalance:
    uid: str
    total: Amount
    balance: Amount


class LedgerService:
    """Credits, debits and reads one ledger table."""

    def __init__(self, db: AsyncSession, model: Type[LedgerModel]):
        self.db = db
        self.model = model
        self.repo = LedgerRepository(model, db)

    @property
    def ledger_name(self) -> str:
        return self.model.__tablename__

    async def add(self, uid: str, amount: Amount) -> None:
        """
        Credit amount to total and balance.

        Non-positive amounts are ignored.
        """
        if amount <= 0:
            return
        async with atomic(self.db, ledger=self.ledger_name, uid=uid):
            await self.repo.credit(uid, amount)
        logger.info("ledger_credited", ledger=self.ledger_name, uid=uid, amount=amount)

    async def deduct(self, uid: str, amount: Amount) -> None:
        """
        Spend from the balance.

        Raises:
            InvalidInputError: amount is not positive
            InsufficientBalanceError: balance does not cover amount
        """
        if amount <= 0:
            raise InvalidInputError("amount must be positive", code="invalid_amount")
        async with atomic(self.db, ledger=self.ledger_name, uid=uid):
            await self.repo.debit(uid, amount)
        logger.info("ledger_debited", ledger=self.ledger_name, uid=uid, amount=amount)

    async def refund(self, uid: str, amount: Amount) -> None:
        """Return a previous deduction to the balance (total unchanged)."""
        if amount <= 0:
            return
        async with atomic(self.db, ledger=self.ledger_name, uid=uid):
            await self.repo.restore(uid, amount)
        logger.info("ledger_refunded", ledger=self.ledger_name, uid=uid, amount=amount)

    async def get(self, uid: str) -> LedgerBalance:
        """Current (total, balance); a zero row is created on first read."""
        async with atomic(self.db):
            row = await self.repo.get_or_init(uid)
        return LedgerBalance(uid=uid, total=row.total, balance=row.balance)


def revenue_ledger(db: AsyncSession) -> LedgerService:
    return LedgerService(db, UserRevenue)


def tree_point_ledger(db: AsyncSession) -> LedgerService:
    return LedgerService(db, UserTreePoints)
