"""
Conversation, message and item thread endpoints.
"""
from fastapi import APIRouter, status

from ecomarket.api.deps import ConversationServiceDep, CurrentUid, NotificationServiceDep
from ecomarket.schemas.conversation import (
    ConversationResponse,
    ConversationSummaryResponse,
    MessageCreate,
    MessageResponse,
    ThreadPostCreate,
    ThreadPostResponse,
    ThreadResponse,
)

router = APIRouter()


@router.post(
    "/items/{item_id}/conversations",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_conversation(item_id: int, uid: CurrentUid, conversations: ConversationServiceDep):
    """Open (or reopen) a private conversation with the item's seller."""
    return await conversations.create_or_get(item_id, uid)


@router.get("/conversations", response_model=list[ConversationSummaryResponse])
async def list_conversations(uid: CurrentUid, conversations: ConversationServiceDep):
    summaries = await conversations.list_by_user(uid)
    return [
        ConversationSummaryResponse(
            conversation=ConversationResponse.model_validate(s.conversation),
            has_unread=s.has_unread,
            last_message_id=s.last_message_id,
        )
        for s in summaries
    ]


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: int, uid: CurrentUid, conversations: ConversationServiceDep):
    return await conversations.get(conversation_id, uid)


@router.post("/conversations/{conversation_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_conversation_read(
    conversation_id: int,
    uid: CurrentUid,
    conversations: ConversationServiceDep,
    notifications: NotificationServiceDep,
):
    await conversations.mark_read(conversation_id, uid)
    await notifications.mark_by_conversation(uid, conversation_id)


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(conversation_id: int, uid: CurrentUid, conversations: ConversationServiceDep):
    return await conversations.list_messages(conversation_id, uid)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: int,
    body: MessageCreate,
    uid: CurrentUid,
    conversations: ConversationServiceDep,
):
    return await conversations.create_message(
        conversation_id,
        uid,
        body.body,
        sender_name=body.sender_name,
        sender_icon_url=body.sender_icon_url,
    )


@router.delete(
    "/conversations/{conversation_id}/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_message(
    conversation_id: int,
    message_id: int,
    uid: CurrentUid,
    conversations: ConversationServiceDep,
):
    await conversations.delete_message(conversation_id, message_id, uid)


@router.get("/items/{item_id}/thread", response_model=ThreadResponse)
async def get_thread(item_id: int, conversations: ConversationServiceDep):
    """Public comment thread of an item."""
    thread = await conversations.thread_by_item(item_id)
    return ThreadResponse(
        conversation_id=thread.conversation.id if thread.conversation else None,
        messages=[MessageResponse.model_validate(m) for m in thread.messages],
    )


@router.post(
    "/items/{item_id}/thread",
    response_model=ThreadPostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_to_thread(
    item_id: int,
    body: ThreadPostCreate,
    uid: CurrentUid,
    conversations: ConversationServiceDep,
):
    message, conversation = await conversations.post_message_to_item(
        item_id,
        uid,
        body.text,
        sender_name=body.sender_name,
        sender_icon_url=body.sender_icon_url,
        parent_id=body.parent_message_id,
    )
    return ThreadPostResponse(
        conversation_id=conversation.id,
        message=MessageResponse.model_validate(message),
    )
