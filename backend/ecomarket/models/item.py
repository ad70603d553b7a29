"""
Listed items.

An item's status is the availability gate every purchase goes through:
only a listed item can be claimed, and the purchase engine is the only
writer of the in_transaction and sold states.
"""
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Enum as SQLEnum,
    Float,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ecomarket.db.base import Base


class ItemStatus(str, Enum):
    """Availability of an item."""
    LISTED = "listed"                  # Purchasable
    PAUSED = "paused"                  # Hidden by the seller
    IN_TRANSACTION = "in_transaction"  # Claimed by an active purchase
    SOLD = "sold"                      # Delivered


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Persist enum members by value rather than by name."""
    return [member.value for member in enum_cls]


class Item(Base):
    """A second-hand item offered by a seller."""

    __tablename__ = "items"

    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    seller_uid: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )

    status: Mapped[ItemStatus] = mapped_column(
        SQLEnum(ItemStatus, native_enum=False, length=20, values_callable=enum_values),
        default=ItemStatus.LISTED,
        nullable=False,
        index=True,
    )

    # Estimated kg of CO2 saved by buying second-hand
    co2_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<Item id={self.id} seller={self.seller_uid} status={self.status}>"

    @property
    def is_purchasable(self) -> bool:
        return self.status == ItemStatus.LISTED
