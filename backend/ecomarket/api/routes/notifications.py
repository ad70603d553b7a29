"""
Notification endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query

from ecomarket.api.deps import CurrentUid, NotificationServiceDep
from ecomarket.schemas.notification import (
    MarkReadResponse,
    NotificationList,
    NotificationResponse,
)

router = APIRouter()


@router.get("", response_model=NotificationList)
async def list_notifications(
    uid: CurrentUid,
    notifications: NotificationServiceDep,
    unread_only: bool = False,
    limit: Optional[int] = Query(None, ge=1),
):
    """Newest notifications plus the total unread count (limit capped at 50)."""
    page = await notifications.list(uid, unread_only=unread_only, limit=limit)
    return NotificationList(
        items=[NotificationResponse.model_validate(n) for n in page.items],
        unread_count=page.unread_count,
    )


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(uid: CurrentUid, notifications: NotificationServiceDep):
    updated = await notifications.mark_all_read(uid)
    return MarkReadResponse(updated=updated)


@router.post("/read/conversations/{conversation_id}", response_model=MarkReadResponse)
async def mark_conversation_notifications_read(
    conversation_id: int,
    uid: CurrentUid,
    notifications: NotificationServiceDep,
):
    updated = await notifications.mark_by_conversation(uid, conversation_id)
    return MarkReadResponse(updated=updated)


@router.post("/read/purchases/{purchase_id}", response_model=MarkReadResponse)
async def mark_purchase_notifications_read(
    purchase_id: int,
    uid: CurrentUid,
    notifications: NotificationServiceDep,
):
    updated = await notifications.mark_by_purchase(uid, purchase_id)
    return MarkReadResponse(updated=updated)
