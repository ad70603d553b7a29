"""
Notification sink.

NotificationService reads and writes notification rows inside the caller's
session. Notifier is the fire-and-forget front door used by lifecycle
transitions: it hands the write to the side-effect dispatcher, which runs it
in a fresh session under its own short timeout, so a slow or failing
notification store can never delay or undo the transition that triggered it.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecomarket.core.side_effects import SideEffectDispatcher
from ecomarket.db.transaction import atomic
from ecomarket.models.notification import Notification
from ecomarket.repositories.notification_repo import NotificationRepository

logger = structlog.get_logger()

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 50


@dataclass
class NotificationPage:
    items: Sequence[Notification]
    unread_count: int


def truncate_preview(body: str, length: int) -> str:
    """Shorten a message body for a notification preview."""
    if len(body) <= length:
        return body
    return body[:length] + "..."


class NotificationService:
    """Create, list and acknowledge notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = NotificationRepository(db)

    async def create(
        self,
        user_uid: str,
        type: str,
        title: str,
        body: str = "",
        item_id: Optional[int] = None,
        conversation_id: Optional[int] = None,
        purchase_id: Optional[int] = None,
    ) -> Notification:
        async with atomic(self.db):
            notification = await self.repo.create(
                user_uid=user_uid,
                type=type,
                title=title,
                body=body,
                item_id=item_id,
                conversation_id=conversation_id,
                purchase_id=purchase_id,
            )
        logger.info(
            "notification_created",
            notification_id=notification.id,
            user_uid=user_uid,
            type=type,
        )
        return notification

    async def list(
        self,
        uid: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> NotificationPage:
        """
        List a user's notifications, newest first.

        Args:
            uid: Recipient
            unread_only: Only unread notifications
            limit: Page size (default 20, capped at 50)

        Returns:
            The page plus the user's total unread count
        """
        if not limit or limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        limit = min(limit, MAX_LIST_LIMIT)

        items = await self.repo.list_for_user(uid, unread_only=unread_only, limit=limit)
        unread_count = await self.repo.count_unread(uid)
        return NotificationPage(items=items, unread_count=unread_count)

    async def mark_all_read(self, uid: str) -> int:
        async with atomic(self.db):
            return await self.repo.mark_read(uid)

    async def mark_by_conversation(self, uid: str, conversation_id: int) -> int:
        async with atomic(self.db):
            return await self.repo.mark_read(uid, conversation_id=conversation_id)

    async def mark_by_purchase(self, uid: str, purchase_id: int) -> int:
        async with atomic(self.db):
            return await self.repo.mark_read(uid, purchase_id=purchase_id)


class Notifier:
    """
    Best-effort notification delivery.

    notify() never raises and never waits for the write.

    Usage:
        notifier = Notifier(dispatcher, session_maker, timeout=2.0)
        notifier.notify(seller_uid, "purchase_created", "Your item was purchased")
    """

    def __init__(
        self,
        dispatcher: SideEffectDispatcher,
        session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 2.0,
    ):
        self.dispatcher = dispatcher
        self.session_maker = session_maker
        self.timeout = timeout

    def notify(
        self,
        recipient_uid: Optional[str],
        type: str,
        title: str,
        body: str = "",
        item_id: Optional[int] = None,
        conversation_id: Optional[int] = None,
        purchase_id: Optional[int] = None,
    ) -> bool:
        """
        Queue a notification for recipient_uid.

        Returns:
            True if queued, False if skipped or dropped
        """
        if not recipient_uid:
            return False

        async def deliver() -> None:
            async with self.session_maker() as session:
                await NotificationService(session).create(
                    recipient_uid,
                    type,
                    title,
                    body,
                    item_id=item_id,
                    conversation_id=conversation_id,
                    purchase_id=purchase_id,
                )

        try:
            return self.dispatcher.submit(f"notify:{type}", deliver, timeout=self.timeout)
        except Exception as e:
            logger.warning(
                "notification_enqueue_failed",
                recipient_uid=recipient_uid,
                type=type,
                error=str(e),
            )
            return False
