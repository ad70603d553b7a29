"""
SQLAlchemy models for the EcoMarket transaction core.
"""
from ecomarket.models.item import Item, ItemStatus
from ecomarket.models.conversation import (
    Conversation,
    ConversationMode,
    ConversationReadState,
    Message,
    MAX_MESSAGE_DEPTH,
)
from ecomarket.models.purchase import Purchase, PurchaseStatus
from ecomarket.models.notification import Notification, NotificationType
from ecomarket.models.ledger import UserRevenue, UserTreePoints

__all__ = [
    "Item",
    "ItemStatus",
    "Conversation",
    "ConversationMode",
    "ConversationReadState",
    "Message",
    "MAX_MESSAGE_DEPTH",
    "Purchase",
    "PurchaseStatus",
    "Notification",
    "NotificationType",
    "UserRevenue",
    "UserTreePoints",
]
