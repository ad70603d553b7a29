"""Notification model for in-app alerts."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ecomarket.db.base import Base


class NotificationType(str, Enum):
    """Types of notifications that can be sent to users."""

    PURCHASE_CREATED = "purchase_created"      # Seller: your item was bought
    PURCHASE_SHIPPED = "purchase_shipped"      # Buyer: item is on its way
    PURCHASE_DELIVERED = "purchase_delivered"  # Seller: buyer confirmed receipt
    PURCHASE_CANCELED = "purchase_canceled"    # Seller: buyer canceled
    DM_RECEIVED = "dm_received"                # New message in a conversation


class Notification(Base):
    """A notification delivered to a single user."""

    __tablename__ = "notifications"

    user_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")

    item_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
    )
    conversation_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
    )
    purchase_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("purchases.id", ondelete="SET NULL"),
        nullable=True,
    )

    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_notifications_user_unread", "user_uid", "read_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_uid} type={self.type}>"

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
