"""
Conversation and message Pydantic schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ecomarket.models.conversation import ConversationMode


class ConversationResponse(BaseModel):
    """Schema for conversation response."""
    id: int
    item_id: int
    seller_uid: str
    buyer_uid: Optional[str] = None
    mode: ConversationMode
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationSummaryResponse(BaseModel):
    """Conversation with the caller's unread flag."""
    conversation: ConversationResponse
    has_unread: bool
    last_message_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    """Schema for message response."""
    id: int
    conversation_id: int
    sender_uid: str
    sender_name: Optional[str] = None
    sender_icon_url: Optional[str] = None
    parent_message_id: Optional[int] = None
    depth: int
    body: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageCreate(BaseModel):
    """Schema for sending a message in a conversation."""
    body: str
    sender_name: Optional[str] = None
    sender_icon_url: Optional[str] = None


class ThreadPostCreate(BaseModel):
    """Schema for posting to an item's public thread."""
    text: str
    parent_message_id: Optional[int] = None
    sender_name: Optional[str] = None
    sender_icon_url: Optional[str] = None


class ThreadResponse(BaseModel):
    conversation_id: Optional[int] = None
    messages: list[MessageResponse]


class ThreadPostResponse(BaseModel):
    conversation_id: int
    message: MessageResponse
