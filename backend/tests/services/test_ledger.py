"""
Tests for the revenue and tree point ledgers.
"""
import asyncio

import pytest
from sqlalchemy import func, select

from ecomarket.core.errors import InsufficientBalanceError, InvalidInputError
from ecomarket.models import UserRevenue, UserTreePoints
from ecomarket.services.ledger import revenue_ledger, tree_point_ledger


class TestRevenueLedger:

    @pytest.mark.asyncio
    async def test_get_creates_zero_row(self, db_session):
        balance = await revenue_ledger(db_session).get("new-seller")

        assert balance.total == 0
        assert balance.balance == 0
        rows = (
            await db_session.execute(select(func.count()).select_from(UserRevenue))
        ).scalar()
        assert rows == 1

    @pytest.mark.asyncio
    async def test_add_accumulates(self, db_session):
        ledger = revenue_ledger(db_session)

        await ledger.add("seller", 3000)
        await ledger.add("seller", 2000)

        balance = await ledger.get("seller")
        assert balance.total == 5000
        assert balance.balance == 5000

    @pytest.mark.asyncio
    async def test_non_positive_add_is_noop(self, db_session):
        ledger = revenue_ledger(db_session)

        await ledger.add("seller", 0)
        await ledger.add("seller", -100)

        rows = (
            await db_session.execute(select(func.count()).select_from(UserRevenue))
        ).scalar()
        assert rows == 0

    @pytest.mark.asyncio
    async def test_deduct_keeps_total(self, db_session):
        ledger = revenue_ledger(db_session)
        await ledger.add("seller", 5000)

        await ledger.deduct("seller", 1200)

        balance = await ledger.get("seller")
        assert balance.total == 5000
        assert balance.balance == 3800

    @pytest.mark.asyncio
    async def test_deduct_rejects_non_positive(self, db_session):
        ledger = revenue_ledger(db_session)

        with pytest.raises(InvalidInputError) as exc_info:
            await ledger.deduct("seller", 0)
        assert exc_info.value.code == "invalid_amount"

    @pytest.mark.asyncio
    async def test_deduct_more_than_balance(self, db_session):
        ledger = revenue_ledger(db_session)
        await ledger.add("seller", 1000)

        with pytest.raises(InsufficientBalanceError):
            await ledger.deduct("seller", 1001)

        balance = await ledger.get("seller")
        assert balance.balance == 1000

    @pytest.mark.asyncio
    async def test_deduct_without_row(self, db_session):
        with pytest.raises(InsufficientBalanceError):
            await revenue_ledger(db_session).deduct("nobody", 1)


class TestTreePointLedger:

    @pytest.mark.asyncio
    async def test_fractional_points(self, db_session):
        ledger = tree_point_ledger(db_session)

        await ledger.add("buyer", 1.25)
        await ledger.add("buyer", 0.5)

        balance = await ledger.get("buyer")
        assert balance.total == pytest.approx(1.75)

    @pytest.mark.asyncio
    async def test_refund_restores_balance_only(self, db_session):
        ledger = tree_point_ledger(db_session)
        await ledger.add("buyer", 10)
        await ledger.deduct("buyer", 4)

        await ledger.refund("buyer", 4)

        balance = await ledger.get("buyer")
        assert balance.total == pytest.approx(10)
        assert balance.balance == pytest.approx(10)

    @pytest.mark.asyncio
    async def test_ledgers_are_independent(self, db_session):
        await tree_point_ledger(db_session).add("user", 7)

        revenue = await revenue_ledger(db_session).get("user")

        assert revenue.total == 0
        rows = (
            await db_session.execute(select(func.count()).select_from(UserTreePoints))
        ).scalar()
        assert rows == 1


class TestConcurrentLedgerWrites:

    @pytest.mark.asyncio
    async def test_concurrent_deducts_never_overdraw(self, session_maker):
        async with session_maker() as session:
            await tree_point_ledger(session).add("buyer", 100)

        async def spend():
            async with session_maker() as session:
                try:
                    await tree_point_ledger(session).deduct("buyer", 60)
                    return True
                except InsufficientBalanceError:
                    return False

        results = await asyncio.gather(spend(), spend())

        assert sorted(results) == [False, True]
        async with session_maker() as session:
            balance = await tree_point_ledger(session).get("buyer")
        assert balance.balance == pytest.approx(40)

    @pytest.mark.asyncio
    async def test_concurrent_credits_all_land(self, session_maker):
        async def credit():
            async with session_maker() as session:
                await revenue_ledger(session).add("seller", 100)

        await asyncio.gather(*(credit() for _ in range(5)))

        async with session_maker() as session:
            balance = await revenue_ledger(session).get("seller")
        assert balance.total == 500
        assert balance.balance == 500
