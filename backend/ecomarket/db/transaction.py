"""
Transaction boundaries for lifecycle writes.

A purchase transition touches the purchase row, the item row and a ledger
in one go; `atomic` makes that commit all-or-nothing.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

logger = structlog.get_logger()


@asynccontextmanager
async def atomic(db: AsyncSession, **context: Any) -> AsyncGenerator[AsyncSession, None]:
    """
    Commit the enclosed writes together or not at all.

    Usage:
        async with atomic(db, purchase_id=purchase.id, transition="ship"):
            await repo.transition(...)
            await ledger.credit(...)

    Args:
        db: SQLAlchemy async session
        **context: Key/values logged if the block rolls back

    Raises:
        Exception: Re-raises whatever aborted the block, after rollback
    """
    try:
        yield db
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info("transaction_conflict", constraint=str(e.orig), **context)
        raise
    except Exception as e:
        await db.rollback()
        logger.debug("transaction_rolled_back", error_type=type(e).__name__, **context)
        raise
