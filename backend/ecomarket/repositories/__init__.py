"""
Repository layer for data access.

Repositories provide a clean abstraction over the database,
hiding the details of SQL queries and ORM operations from
the service layer.
"""
from ecomarket.repositories.base import BaseRepository
from ecomarket.repositories.item_repo import ItemRepository
from ecomarket.repositories.purchase_repo import PurchaseRepository
from ecomarket.repositories.conversation_repo import ConversationRepository
from ecomarket.repositories.notification_repo import NotificationRepository
from ecomarket.repositories.ledger_repo import LedgerRepository

__all__ = [
    "BaseRepository",
    "ItemRepository",
    "PurchaseRepository",
    "ConversationRepository",
    "NotificationRepository",
    "LedgerRepository",
]
