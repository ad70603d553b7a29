"""
Item-related Pydantic schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ecomarket.models.item import ItemStatus


class ItemCreate(BaseModel):
    """Schema for listing a new item."""

    title: str
    description: str
    price: int
    category: str
    image_url: Optional[str] = None


class ItemUpdate(BaseModel):
    """Owner edit; omitted fields are left unchanged."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    status: Optional[str] = None  # listed or paused


class ItemResponse(BaseModel):
    """Full item response for API."""

    id: int
    title: str
    description: str
    price: int
    category: str
    image_url: Optional[str] = None
    seller_uid: str
    status: ItemStatus
    co2_kg: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ItemList(BaseModel):
    """Paginated item list response."""

    items: list[ItemResponse]
    total: int
    limit: int
    offset: int


class CO2EstimateResponse(BaseModel):
    item_id: int
    co2_kg: float = Field(ge=0)
