"""
Purchase-related Pydantic schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ecomarket.models.purchase import PurchaseStatus
from ecomarket.schemas.item import ItemResponse


class PurchaseCreate(BaseModel):
    """Request body for buying an item."""

    points_used: int = 0


class PurchaseResponse(BaseModel):
    """Full purchase response for API."""

    id: int
    item_id: int
    buyer_uid: str
    seller_uid: str
    conversation_id: Optional[int] = None
    status: PurchaseStatus
    shipping_qr_url: str
    shipping_note: str
    points_used: int
    amount_paid: int
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PurchaseWithItemResponse(BaseModel):
    purchase: PurchaseResponse
    item: ItemResponse

    model_config = ConfigDict(from_attributes=True)
