"""
Conversations, messages and per-user read state.

Two kinds of conversation exist for an item:
- direct: a private channel between the seller and one buyer
- thread: the item's public comment thread (one per item, no buyer)
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ecomarket.db.base import Base
from ecomarket.models.item import enum_values

MAX_MESSAGE_DEPTH = 3


class ConversationMode(str, Enum):
    DIRECT = "direct"
    THREAD = "thread"


class Conversation(Base):
    """A message channel attached to an item."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("item_id", "buyer_uid", name="uq_conversations_item_buyer"),
        Index(
            "uq_conversations_item_thread",
            "item_id",
            unique=True,
            postgresql_where=text("mode = 'thread'"),
            sqlite_where=text("mode = 'thread'"),
        ),
    )

    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seller_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    buyer_uid: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        index=True,
    )
    mode: Mapped[ConversationMode] = mapped_column(
        SQLEnum(ConversationMode, native_enum=False, length=10, values_callable=enum_values),
        default=ConversationMode.DIRECT,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Conversation id={self.id} item={self.item_id} mode={self.mode}>"

    def is_participant(self, uid: str) -> bool:
        return uid in (self.seller_uid, self.buyer_uid)

    def other_party(self, uid: str) -> Optional[str]:
        """The participant who is not uid (None for a thread)."""
        if uid == self.seller_uid:
            return self.buyer_uid
        return self.seller_uid


class Message(Base):
    """A message in a conversation, optionally replying to another."""

    __tablename__ = "messages"

    conversation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sender_icon_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    parent_message_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=True,
    )
    depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    body: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Message id={self.id} conv={self.conversation_id} depth={self.depth}>"


class ConversationReadState(Base):
    """How far a user has read a conversation."""

    __tablename__ = "conversation_read_states"
    __table_args__ = (
        UniqueConstraint("conversation_id", "uid", name="uq_read_states_conversation_uid"),
    )

    conversation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_read_message_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<ConversationReadState conv={self.conversation_id} uid={self.uid}>"
