"""
Item listing endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query, status

from ecomarket.api.deps import CurrentUid, ItemServiceDep
from ecomarket.schemas.item import (
    CO2EstimateResponse,
    ItemCreate,
    ItemList,
    ItemResponse,
    ItemUpdate,
)

router = APIRouter()


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(body: ItemCreate, uid: CurrentUid, items: ItemServiceDep):
    """List a new item for sale."""
    return await items.create(
        uid,
        title=body.title,
        description=body.description,
        price=body.price,
        category=body.category,
        image_url=body.image_url,
    )


@router.get("", response_model=ItemList)
async def list_items(
    items: ItemServiceDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    category: Optional[str] = None,
    q: Optional[str] = None,
    seller: Optional[str] = None,
):
    """Browse items, newest first."""
    page, total = await items.list(
        limit=limit,
        offset=offset,
        category=category,
        query=q,
        seller_uid=seller,
    )
    return ItemList(
        items=[ItemResponse.model_validate(i) for i in page],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(item_id: int, items: ItemServiceDep):
    return await items.get(item_id)


@router.patch("/{item_id}", response_model=ItemResponse)
async def update_item(item_id: int, body: ItemUpdate, uid: CurrentUid, items: ItemServiceDep):
    """Edit one of your own items."""
    return await items.update_owned(
        item_id,
        uid,
        title=body.title,
        description=body.description,
        price=body.price,
        category=body.category,
        image_url=body.image_url,
        status=body.status,
    )


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: int, uid: CurrentUid, items: ItemServiceDep):
    await items.delete_owned(item_id, uid)


@router.post("/{item_id}/estimate-co2", response_model=CO2EstimateResponse)
async def estimate_co2(item_id: int, uid: CurrentUid, items: ItemServiceDep):
    """Estimate the CO2 saved by buying this item second-hand."""
    value = await items.estimate_co2(item_id, uid)
    return CO2EstimateResponse(item_id=item_id, co2_kg=value)
