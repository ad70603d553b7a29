"""
Conversation service.

Handles:
- Direct buyer/seller conversations (one per item and buyer)
- The public comment thread of an item, with nested replies
- Per-user read state and unread flags
- New-message notifications (best effort)
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from ecomarket.core.config import Settings
from ecomarket.core.errors import (
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ecomarket.db.transaction import atomic
from ecomarket.models.conversation import (
    Conversation,
    ConversationMode,
    MAX_MESSAGE_DEPTH,
    Message,
)
from ecomarket.models.item import Item
from ecomarket.models.notification import NotificationType
from ecomarket.repositories.conversation_repo import ConversationRepository
from ecomarket.repositories.item_repo import ItemRepository
from ecomarket.services.notifications import Notifier, truncate_preview

logger = get_logger()

NEW_MESSAGE_TITLE = "New message"


@dataclass
class ConversationSummary:
    conversation: Conversation
    has_unread: bool
    last_message_id: Optional[int]


@dataclass
class ThreadView:
    conversation: Optional[Conversation]
    messages: Sequence[Message]


class ConversationService:
    """Service for conversations and messages."""

    def __init__(self, db: AsyncSession, settings: Settings, notifier: Optional[Notifier] = None):
        self.db = db
        self.settings = settings
        self.notifier = notifier
        self.repo = ConversationRepository(db)
        self.items = ItemRepository(db)

    async def _get_item(self, item_id: int) -> Item:
        item = await self.items.get_by_id(item_id)
        if item is None:
            raise NotFoundError("item not found", code="item_not_found")
        return item

    async def _get_for_participant(self, conversation_id: int, uid: str) -> Conversation:
        conversation = await self.repo.get_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError("conversation not found", code="conversation_not_found")
        if not conversation.is_participant(uid):
            raise ForbiddenError("not a participant of this conversation")
        return conversation

    async def get_or_create_direct(self, item: Item, buyer_uid: str) -> Conversation:
        """
        Find the (item, buyer) conversation, creating it if needed.

        Commits on creation. A concurrent creator losing the unique-constraint
        race re-reads the winner's row.
        """
        item_id, seller_uid = item.id, item.seller_uid
        existing = await self.repo.get_direct(item_id, buyer_uid)
        if existing is not None:
            return existing
        try:
            async with atomic(self.db):
                conversation = await self.repo.create(
                    item_id=item_id,
                    seller_uid=seller_uid,
                    buyer_uid=buyer_uid,
                    mode=ConversationMode.DIRECT,
                )
        except IntegrityError:
            conversation = await self.repo.get_direct(item_id, buyer_uid)
            if conversation is None:
                raise
            return conversation
        logger.info(
            "conversation_created",
            conversation_id=conversation.id,
            item_id=item_id,
            mode=ConversationMode.DIRECT.value,
        )
        return conversation

    async def _get_or_create_thread(self, item: Item) -> Conversation:
        item_id, seller_uid = item.id, item.seller_uid
        existing = await self.repo.get_thread(item_id)
        if existing is not None:
            return existing
        try:
            async with atomic(self.db):
                conversation = await self.repo.create(
                    item_id=item_id,
                    seller_uid=seller_uid,
                    buyer_uid=None,
                    mode=ConversationMode.THREAD,
                )
        except IntegrityError:
            conversation = await self.repo.get_thread(item_id)
            if conversation is None:
                raise
            return conversation
        logger.info(
            "conversation_created",
            conversation_id=conversation.id,
            item_id=item_id,
            mode=ConversationMode.THREAD.value,
        )
        return conversation

    async def create_or_get(self, item_id: int, buyer_uid: str) -> Conversation:
        """Open (or reopen) the private conversation between a buyer and the seller."""
        item = await self._get_item(item_id)
        if not item.seller_uid:
            raise InvalidStateError("item has no seller", code="item_without_seller")
        if item.seller_uid == buyer_uid:
            raise InvalidInputError("cannot chat with yourself", code="own_item")
        return await self.get_or_create_direct(item, buyer_uid)

    async def list_by_user(self, uid: str) -> list[ConversationSummary]:
        """
        Conversations the user participates in, with unread flags.

        A conversation is unread when its newest message is past the user's
        read marker, or when there is no marker and at least one message.
        """
        rows = await self.repo.list_for_user(uid)
        summaries = []
        for conversation, last_id, last_read_id, has_state in rows:
            if last_id is None:
                has_unread = False
            elif not has_state or last_read_id is None:
                has_unread = True
            else:
                has_unread = last_id > last_read_id
            summaries.append(
                ConversationSummary(
                    conversation=conversation,
                    has_unread=has_unread,
                    last_message_id=last_id,
                )
            )
        return summaries

    async def get(self, conversation_id: int, uid: str) -> Conversation:
        return await self._get_for_participant(conversation_id, uid)

    async def list_messages(self, conversation_id: int, uid: str) -> Sequence[Message]:
        await self._get_for_participant(conversation_id, uid)
        return await self.repo.list_messages(conversation_id)

    async def create_message(
        self,
        conversation_id: int,
        uid: str,
        body: str,
        sender_name: Optional[str] = None,
        sender_icon_url: Optional[str] = None,
    ) -> Message:
        """
        Append a root message to a conversation the sender takes part in.

        Item threads accept roots only from non-sellers; the seller answers
        through post_message_to_item with a parent.
        """
        if not body or not body.strip():
            raise InvalidInputError("body is required", code="body_required")
        conversation = await self._get_for_participant(conversation_id, uid)
        if conversation.mode == ConversationMode.THREAD and uid == conversation.seller_uid:
            raise ForbiddenError(
                "seller cannot create a root message",
                code="seller_root_message",
            )

        async with atomic(self.db):
            message = await self.repo.add_message(
                conversation_id=conversation.id,
                sender_uid=uid,
                sender_name=sender_name or uid,
                sender_icon_url=sender_icon_url,
                depth=0,
                body=body,
            )
        logger.info("message_created", conversation_id=conversation.id, message_id=message.id)

        self._notify_new_message(conversation, uid, message.body)
        return message

    async def mark_read(self, conversation_id: int, uid: str) -> None:
        """Move the user's read marker to the newest message."""
        conversation = await self._get_for_participant(conversation_id, uid)
        async with atomic(self.db):
            last_id = await self.repo.last_message_id(conversation.id)
            await self.repo.upsert_read_state(conversation.id, uid, last_id)

    async def delete_message(self, conversation_id: int, message_id: int, uid: str) -> None:
        """
        Delete one of the sender's own messages.

        A message that exists but belongs to another conversation is
        reported as not found.
        """
        message = await self.repo.get_message(message_id)
        if message is None or message.conversation_id != conversation_id:
            raise NotFoundError("message not found", code="message_not_found")
        if message.sender_uid != uid:
            raise ForbiddenError("only the sender can delete a message")

        async with atomic(self.db):
            deleted = await self.repo.delete_message(conversation_id, message_id, uid)
        if deleted == 0:
            raise NotFoundError("message not found", code="message_not_found")
        logger.info("message_deleted", conversation_id=conversation_id, message_id=message_id)

    async def thread_by_item(self, item_id: int) -> ThreadView:
        """Public read of an item's comment thread (empty if none yet)."""
        conversation = await self.repo.get_thread(item_id)
        if conversation is None:
            return ThreadView(conversation=None, messages=[])
        messages = await self.repo.list_messages(conversation.id)
        return ThreadView(conversation=conversation, messages=messages)

    async def post_message_to_item(
        self,
        item_id: int,
        uid: str,
        text: str,
        sender_name: Optional[str] = None,
        sender_icon_url: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> tuple[Message, Conversation]:
        """
        Post to an item's public thread.

        Roots are reserved for non-sellers; replies nest at most
        MAX_MESSAGE_DEPTH levels deep.

        Raises:
            InvalidInputError: empty text, unknown parent, parent elsewhere
            InvalidStateError: reply would exceed the maximum depth
            ForbiddenError: seller posting a root message
            NotFoundError: item does not exist
        """
        if not text or not text.strip():
            raise InvalidInputError("text is required", code="text_required")
        item = await self._get_item(item_id)
        thread = await self.repo.get_thread(item_id)

        depth = 0
        reply_to_uid: Optional[str] = None
        if parent_id is not None:
            parent = await self.repo.get_message(parent_id)
            if parent is None:
                raise InvalidInputError("parent not found", code="parent_not_found")
            if thread is None or parent.conversation_id != thread.id:
                raise InvalidInputError(
                    "parent not in conversation",
                    code="parent_not_in_conversation",
                )
            depth = parent.depth + 1
            reply_to_uid = parent.sender_uid
            if depth > MAX_MESSAGE_DEPTH:
                raise InvalidStateError("reply depth exceeded", code="depth_exceeded")
        elif uid == item.seller_uid:
            raise ForbiddenError(
                "seller cannot create a root message",
                code="seller_root_message",
            )

        # created only once the post is known to be valid
        conversation = thread if thread is not None else await self._get_or_create_thread(item)

        async with atomic(self.db):
            message = await self.repo.add_message(
                conversation_id=conversation.id,
                sender_uid=uid,
                sender_name=sender_name or uid,
                sender_icon_url=sender_icon_url,
                parent_message_id=parent_id,
                depth=depth,
                body=text,
            )
        logger.info(
            "thread_message_posted",
            item_id=item_id,
            conversation_id=conversation.id,
            message_id=message.id,
            depth=depth,
        )

        self._notify_new_message(conversation, uid, message.body, reply_to_uid=reply_to_uid)
        return message, conversation

    async def append_system_message(
        self,
        conversation_id: int,
        sender_uid: str,
        body: str,
        sender_name: str = "System",
    ) -> Message:
        """Record a lifecycle event in a conversation (used by purchases)."""
        async with atomic(self.db):
            return await self.repo.add_message(
                conversation_id=conversation_id,
                sender_uid=sender_uid,
                sender_name=sender_name,
                depth=0,
                body=body,
            )

    def _notify_new_message(
        self,
        conversation: Conversation,
        sender_uid: str,
        body: str,
        reply_to_uid: Optional[str] = None,
    ) -> None:
        if self.notifier is None:
            return

        if conversation.mode == ConversationMode.THREAD:
            if sender_uid != conversation.seller_uid:
                target = conversation.seller_uid
            else:
                target = reply_to_uid
        else:
            target = conversation.other_party(sender_uid)

        if not target or target == sender_uid:
            return

        self.notifier.notify(
            target,
            NotificationType.DM_RECEIVED.value,
            NEW_MESSAGE_TITLE,
            truncate_preview(body, self.settings.notification_preview_length),
            item_id=conversation.item_id,
            conversation_id=conversation.id,
        )
