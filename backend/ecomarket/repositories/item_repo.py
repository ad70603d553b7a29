"""
Repository for items and their availability status.
"""
from typing import Optional, Sequence

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.models.item import Item, ItemStatus
from ecomarket.repositories.base import BaseRepository


class ItemRepository(BaseRepository[Item]):
    """Data access for items."""

    def __init__(self, db: AsyncSession):
        super().__init__(Item, db)

    @staticmethod
    def _filtered(
        stmt: Select,
        category: Optional[str],
        query: Optional[str],
        seller_uid: Optional[str],
        statuses: Sequence[ItemStatus],
    ) -> Select:
        if statuses:
            stmt = stmt.where(Item.status.in_(list(statuses)))
        if category:
            stmt = stmt.where(Item.category == category)
        if seller_uid:
            stmt = stmt.where(Item.seller_uid == seller_uid)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(Item.title.ilike(pattern), Item.description.ilike(pattern)))
        return stmt

    async def search(
        self,
        *,
        limit: int = 20,
        offset: int = 0,
        category: Optional[str] = None,
        query: Optional[str] = None,
        seller_uid: Optional[str] = None,
        statuses: Sequence[ItemStatus] = (),
    ) -> tuple[Sequence[Item], int]:
        """
        List items newest first.

        Args:
            limit: Maximum items to return
            offset: Items to skip
            category: Only this category slug
            query: Case-insensitive substring of title or description
            seller_uid: Only this seller's items
            statuses: Allowed statuses (empty means any)

        Returns:
            The page and the total number of matching items
        """
        stmt = self._filtered(select(Item), category, query, seller_uid, statuses)
        stmt = stmt.order_by(Item.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(stmt)

        count_stmt = self._filtered(
            select(func.count()).select_from(Item), category, query, seller_uid, statuses
        )
        total = (await self.db.execute(count_stmt)).scalar() or 0
        return result.scalars().all(), total

    async def transition(
        self,
        item_id: int,
        from_status: ItemStatus,
        to_status: ItemStatus,
    ) -> bool:
        """
        Move an item between statuses only if it is still in from_status.

        Returns:
            True if this call performed the transition
        """
        changed = await self.update_where(
            item_id,
            Item.status == from_status,
            status=to_status,
        )
        return changed == 1

    async def set_status(self, item_id: int, status: ItemStatus) -> None:
        await self.update_where(item_id, status=status)

    async def update_editable(self, item_id: int, seller_uid: str, **values) -> bool:
        """Apply an owner edit unless a purchase has claimed the item meanwhile."""
        changed = await self.update_where(
            item_id,
            Item.seller_uid == seller_uid,
            Item.status.in_([ItemStatus.LISTED, ItemStatus.PAUSED]),
            **values,
        )
        return changed == 1

    async def delete_unclaimed(self, item_id: int, seller_uid: str) -> bool:
        result = await self.db.execute(
            delete(Item).where(
                Item.id == item_id,
                Item.seller_uid == seller_uid,
                Item.status.in_([ItemStatus.LISTED, ItemStatus.PAUSED]),
            )
        )
        return result.rowcount == 1

    async def set_co2(self, item_id: int, co2_kg: float) -> None:
        await self.update_where(item_id, co2_kg=co2_kg)

    async def set_co2_if_unset(self, item_id: int, co2_kg: float) -> bool:
        """Store a background estimate unless one was recorded meanwhile."""
        changed = await self.update_where(
            item_id,
            Item.co2_kg.is_(None),
            co2_kg=co2_kg,
        )
        return changed == 1
