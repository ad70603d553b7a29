"""
Repository for purchases.
"""
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.models.item import Item
from ecomarket.models.purchase import Purchase, PurchaseStatus
from ecomarket.repositories.base import BaseRepository


class PurchaseRepository(BaseRepository[Purchase]):
    """Data access for purchases."""

    def __init__(self, db: AsyncSession):
        super().__init__(Purchase, db)

    async def get_active_by_item(self, item_id: int) -> Optional[Purchase]:
        """The non-canceled purchase of an item, if any."""
        result = await self.db.execute(
            select(Purchase)
            .where(
                Purchase.item_id == item_id,
                Purchase.status != PurchaseStatus.CANCELED,
            )
            .order_by(Purchase.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_latest_by_item(self, item_id: int) -> Optional[Purchase]:
        """Most recent purchase of an item, canceled ones included."""
        result = await self.db.execute(
            select(Purchase)
            .where(Purchase.item_id == item_id)
            .order_by(Purchase.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        purchase_id: int,
        from_status: PurchaseStatus,
        to_status: PurchaseStatus,
        *,
        shipped_at: Optional[datetime] = None,
        delivered_at: Optional[datetime] = None,
        clear_timestamps: bool = False,
    ) -> bool:
        """
        Advance a purchase only if it is still in from_status.

        Returns:
            True if this call performed the transition
        """
        values: dict = {"status": to_status}
        if shipped_at is not None:
            values["shipped_at"] = shipped_at
        if delivered_at is not None:
            values["delivered_at"] = delivered_at
        if clear_timestamps:
            values["shipped_at"] = None
            values["delivered_at"] = None

        changed = await self.update_where(
            purchase_id,
            Purchase.status == from_status,
            **values,
        )
        return changed == 1

    async def list_with_items(
        self,
        *,
        buyer_uid: Optional[str] = None,
        seller_uid: Optional[str] = None,
    ) -> Sequence[tuple[Purchase, Item]]:
        """Purchases joined with their items, newest first."""
        stmt = select(Purchase, Item).join(Item, Item.id == Purchase.item_id)
        if buyer_uid is not None:
            stmt = stmt.where(Purchase.buyer_uid == buyer_uid)
        if seller_uid is not None:
            stmt = stmt.where(Purchase.seller_uid == seller_uid)
        stmt = stmt.order_by(Purchase.id.desc())
        result = await self.db.execute(stmt)
        return [(purchase, item) for purchase, item in result.all()]
