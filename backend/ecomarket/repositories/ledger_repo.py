"""
Repository for the per-user reward ledgers.

One class serves both ledger tables; every balance change is a single
atomic statement so concurrent credits and debits never lose updates and a
debit can never drive the balance negative.
"""
from typing import Type, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.core.errors import InsufficientBalanceError
from ecomarket.db.base import utc_now
from ecomarket.db.utils import dialect_insert
from ecomarket.models.ledger import UserRevenue, UserTreePoints
from ecomarket.repositories.base import BaseRepository

LedgerModel = Union[UserRevenue, UserTreePoints]
Amount = Union[int, float]


class LedgerRepository(BaseRepository[LedgerModel]):
    """
    Data access for a ledger table.

    Usage:
        revenue = LedgerRepository(UserRevenue, db)
        await revenue.credit("seller-uid", 4500)
    """

    def __init__(self, model: Type[LedgerModel], db: AsyncSession):
        super().__init__(model, db)

    def _zero(self) -> Amount:
        return 0.0 if self.model is UserTreePoints else 0

    async def credit(self, uid: str, amount: Amount) -> None:
        """Increment total and balance, creating the row on first use."""
        now = utc_now()
        stmt = dialect_insert(self.db, self.model).values(
            uid=uid,
            total=amount,
            balance=amount,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["uid"],
            set_={
                "total": self.model.total + stmt.excluded.total,
                "balance": self.model.balance + stmt.excluded.balance,
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

    async def debit(self, uid: str, amount: Amount) -> None:
        """
        Decrement the balance only if it covers the amount.

        Raises:
            InsufficientBalanceError: No row or balance below amount
        """
        result = await self.db.execute(
            update(self.model)
            .where(self.model.uid == uid, self.model.balance >= amount)
            .values(balance=self.model.balance - amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientBalanceError(
                f"insufficient balance in {self.model.__tablename__}",
            )

    async def restore(self, uid: str, amount: Amount) -> None:
        """Give back a previous debit; total is unchanged."""
        now = utc_now()
        stmt = dialect_insert(self.db, self.model).values(
            uid=uid,
            total=self._zero(),
            balance=amount,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["uid"],
            set_={
                "balance": self.model.balance + stmt.excluded.balance,
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

    async def get_or_init(self, uid: str) -> LedgerModel:
        """Fetch the user's row, inserting a zero row if none exists."""
        now = utc_now()
        zero = self._zero()
        stmt = dialect_insert(self.db, self.model).values(
            uid=uid,
            total=zero,
            balance=zero,
            created_at=now,
            updated_at=now,
        ).on_conflict_do_nothing(index_elements=["uid"])
        await self.db.execute(stmt)

        result = await self.db.execute(
            select(self.model)
            .where(self.model.uid == uid)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
