"""
Purchase records.

A purchase walks a fixed state machine:

    pending_shipment -> shipped -> delivered
    pending_shipment -> canceled

At most one non-canceled purchase may exist per item; the partial unique
index below enforces it at the storage level.
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
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ecomarket.db.base import Base
from ecomarket.models.item import enum_values


class PurchaseStatus(str, Enum):
    """Lifecycle state of a purchase."""
    PENDING_SHIPMENT = "pending_shipment"  # Paid, waiting for the seller
    SHIPPED = "shipped"                    # Seller handed it to the carrier
    DELIVERED = "delivered"                # Buyer confirmed receipt (terminal)
    CANCELED = "canceled"                  # Buyer canceled before shipment (terminal)


ACTIVE_PURCHASE_CLAUSE = "status <> 'canceled'"


class Purchase(Base):
    """A buyer's claim on a single item."""

    __tablename__ = "purchases"
    __table_args__ = (
        Index(
            "uq_purchases_active_item",
            "item_id",
            unique=True,
            postgresql_where=text(ACTIVE_PURCHASE_CLAUSE),
            sqlite_where=text(ACTIVE_PURCHASE_CLAUSE),
        ),
    )

    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    buyer_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    seller_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    conversation_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[PurchaseStatus] = mapped_column(
        SQLEnum(PurchaseStatus, native_enum=False, length=20, values_callable=enum_values),
        default=PurchaseStatus.PENDING_SHIPMENT,
        nullable=False,
        index=True,
    )

    # Shipping instructions shown to the seller
    shipping_qr_url: Mapped[str] = mapped_column(Text, nullable=False)
    shipping_note: Mapped[str] = mapped_column(Text, nullable=False)

    # Payment
    points_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    amount_paid: Mapped[int] = mapped_column(Integer, nullable=False)

    shipped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} item={self.item_id} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status != PurchaseStatus.CANCELED

    def is_party(self, uid: str) -> bool:
        return uid in (self.buyer_uid, self.seller_uid)
