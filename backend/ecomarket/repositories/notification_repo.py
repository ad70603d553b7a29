"""
Repository for user notifications.
"""
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.db.base import utc_now
from ecomarket.models.notification import Notification
from ecomarket.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Data access for notifications."""

    def __init__(self, db: AsyncSession):
        super().__init__(Notification, db)

    async def list_for_user(
        self,
        uid: str,
        *,
        unread_only: bool = False,
        limit: int = 20,
    ) -> Sequence[Notification]:
        query = select(Notification).where(Notification.user_uid == uid)
        if unread_only:
            query = query.where(Notification.read_at.is_(None))
        query = query.order_by(Notification.id.desc()).limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def count_unread(self, uid: str) -> int:
        return await self.count(
            Notification.user_uid == uid,
            Notification.read_at.is_(None),
        )

    async def mark_read(
        self,
        uid: str,
        *,
        conversation_id: Optional[int] = None,
        purchase_id: Optional[int] = None,
    ) -> int:
        """
        Mark the user's unread notifications as read.

        Optionally restricted to one conversation or one purchase.

        Returns:
            Number of notifications updated
        """
        stmt = update(Notification).where(
            Notification.user_uid == uid,
            Notification.read_at.is_(None),
        )
        if conversation_id is not None:
            stmt = stmt.where(Notification.conversation_id == conversation_id)
        if purchase_id is not None:
            stmt = stmt.where(Notification.purchase_id == purchase_id)
        now = utc_now()
        result = await self.db.execute(
            stmt.values(read_at=now, updated_at=now).execution_options(synchronize_session=False)
        )
        return result.rowcount
