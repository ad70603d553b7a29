"""
Repository for conversations, messages and read state.
"""
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.db.base import utc_now
from ecomarket.db.utils import dialect_insert
from ecomarket.models.conversation import (
    Conversation,
    ConversationMode,
    ConversationReadState,
    Message,
)
from ecomarket.repositories.base import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """Data access for conversations and their messages."""

    def __init__(self, db: AsyncSession):
        super().__init__(Conversation, db)

    async def get_direct(self, item_id: int, buyer_uid: str) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.item_id == item_id,
                Conversation.buyer_uid == buyer_uid,
                Conversation.mode == ConversationMode.DIRECT,
            )
        )
        return result.scalar_one_or_none()

    async def get_thread(self, item_id: int) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.item_id == item_id,
                Conversation.mode == ConversationMode.THREAD,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, uid: str) -> Sequence[tuple[Conversation, Optional[int], Optional[int], bool]]:
        """
        Conversations the user takes part in, most recently active first.

        Returns:
            Tuples of (conversation, last message id, last read message id,
            whether a read-state row exists)
        """
        last_message = (
            select(
                Message.conversation_id.label("conversation_id"),
                func.max(Message.id).label("last_message_id"),
            )
            .group_by(Message.conversation_id)
            .subquery()
        )
        read_state = (
            select(
                ConversationReadState.conversation_id.label("conversation_id"),
                ConversationReadState.id.label("state_id"),
                ConversationReadState.last_read_message_id.label("last_read_message_id"),
            )
            .where(ConversationReadState.uid == uid)
            .subquery()
        )
        stmt = (
            select(
                Conversation,
                last_message.c.last_message_id,
                read_state.c.last_read_message_id,
                read_state.c.state_id,
            )
            .outerjoin(last_message, last_message.c.conversation_id == Conversation.id)
            .outerjoin(read_state, read_state.c.conversation_id == Conversation.id)
            .where(or_(Conversation.seller_uid == uid, Conversation.buyer_uid == uid))
            .order_by(
                func.coalesce(last_message.c.last_message_id, 0).desc(),
                Conversation.id.desc(),
            )
        )
        result = await self.db.execute(stmt)
        return [
            (conversation, last_id, last_read_id, state_id is not None)
            for conversation, last_id, last_read_id, state_id in result.all()
        ]

    # Messages

    async def get_message(self, message_id: int) -> Optional[Message]:
        result = await self.db.execute(select(Message).where(Message.id == message_id))
        return result.scalar_one_or_none()

    async def add_message(self, **values) -> Message:
        message = Message(**values)
        self.db.add(message)
        await self.db.flush()
        return message

    async def list_messages(self, conversation_id: int) -> Sequence[Message]:
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.id)
        )
        return result.scalars().all()

    async def last_message_id(self, conversation_id: int) -> Optional[int]:
        result = await self.db.execute(
            select(func.max(Message.id)).where(Message.conversation_id == conversation_id)
        )
        return result.scalar()

    async def delete_message(self, conversation_id: int, message_id: int, sender_uid: str) -> int:
        """Delete a message only if it belongs to the conversation and the sender."""
        result = await self.db.execute(
            delete(Message).where(
                Message.id == message_id,
                Message.conversation_id == conversation_id,
                Message.sender_uid == sender_uid,
            )
        )
        return result.rowcount

    # Read state

    async def upsert_read_state(
        self,
        conversation_id: int,
        uid: str,
        last_read_message_id: Optional[int],
        read_at: Optional[datetime] = None,
    ) -> None:
        """Record that uid has read the conversation up to a message."""
        now = read_at or utc_now()
        stmt = dialect_insert(self.db, ConversationReadState).values(
            conversation_id=conversation_id,
            uid=uid,
            last_read_at=now,
            last_read_message_id=last_read_message_id,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["conversation_id", "uid"],
            set_={
                "last_read_at": now,
                "last_read_message_id": last_read_message_id,
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

    async def get_read_state(self, conversation_id: int, uid: str) -> Optional[ConversationReadState]:
        result = await self.db.execute(
            select(ConversationReadState).where(
                ConversationReadState.conversation_id == conversation_id,
                ConversationReadState.uid == uid,
            )
        )
        return result.scalar_one_or_none()
