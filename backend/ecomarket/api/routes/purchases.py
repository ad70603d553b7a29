"""
Purchase lifecycle endpoints.
"""
from typing import Optional

from fastapi import APIRouter, status

from ecomarket.api.deps import (
    ConversationServiceDep,
    CurrentUid,
    NotificationServiceDep,
    PurchaseServiceDep,
)
from ecomarket.schemas.item import ItemResponse
from ecomarket.schemas.purchase import (
    PurchaseCreate,
    PurchaseResponse,
    PurchaseWithItemResponse,
)
from ecomarket.services.purchases import PurchaseWithItem

router = APIRouter()


def _with_item(row: PurchaseWithItem) -> PurchaseWithItemResponse:
    return PurchaseWithItemResponse(
        purchase=PurchaseResponse.model_validate(row.purchase),
        item=ItemResponse.model_validate(row.item),
    )


@router.post(
    "/items/{item_id}/purchase",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def purchase_item(
    item_id: int,
    uid: CurrentUid,
    purchases: PurchaseServiceDep,
    body: Optional[PurchaseCreate] = None,
):
    """Buy an item. 409 with the existing purchase if someone got there first."""
    points_used = body.points_used if body else 0
    return await purchases.purchase_item(item_id, uid, points_used=points_used)


@router.get("/items/{item_id}/purchase", response_model=PurchaseResponse)
async def get_item_purchase(
    item_id: int,
    uid: CurrentUid,
    purchases: PurchaseServiceDep,
    notifications: NotificationServiceDep,
    conversations: ConversationServiceDep,
):
    """
    Latest purchase of an item, for its buyer or seller.

    Viewing it acknowledges the related notifications and conversation.
    """
    purchase = await purchases.get_by_item(item_id, uid)
    purchase_id, conversation_id = purchase.id, purchase.conversation_id
    await notifications.mark_by_purchase(uid, purchase_id)
    if conversation_id is not None:
        await notifications.mark_by_conversation(uid, conversation_id)
        await conversations.mark_read(conversation_id, uid)
    return purchase


@router.post("/purchases/{purchase_id}/ship", response_model=PurchaseResponse)
async def mark_shipped(purchase_id: int, uid: CurrentUid, purchases: PurchaseServiceDep):
    return await purchases.mark_shipped(purchase_id, uid)


@router.post("/purchases/{purchase_id}/receive", response_model=PurchaseResponse)
async def mark_delivered(purchase_id: int, uid: CurrentUid, purchases: PurchaseServiceDep):
    return await purchases.mark_delivered(purchase_id, uid)


@router.post("/purchases/{purchase_id}/cancel", response_model=PurchaseResponse)
async def cancel_purchase(purchase_id: int, uid: CurrentUid, purchases: PurchaseServiceDep):
    return await purchases.cancel(purchase_id, uid)


@router.get("/me/purchases", response_model=list[PurchaseWithItemResponse])
async def my_purchases(uid: CurrentUid, purchases: PurchaseServiceDep):
    """Items I bought, newest first."""
    rows = await purchases.list_by_buyer(uid)
    return [_with_item(row) for row in rows]


@router.get("/me/sales", response_model=list[PurchaseWithItemResponse])
async def my_sales(uid: CurrentUid, purchases: PurchaseServiceDep):
    """Items I sold (or am selling), newest first."""
    rows = await purchases.list_by_seller(uid)
    return [_with_item(row) for row in rows]
