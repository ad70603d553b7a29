"""
Purchase engine.

Drives a purchase through its fixed lifecycle:

    pending_shipment -> shipped -> delivered
    pending_shipment -> canceled

Each transition is one committed write (purchase row, item availability and
any ledger movement together). The conversation message and the
notification that follow are best effort: they run after the commit and
their failure is logged, never surfaced.

Concurrency relies on single atomic statements rather than locks: the
partial unique index on purchases.item_id admits one active purchase per
item, and every status change is a conditional UPDATE whose row count tells
whether this caller won.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence
from urllib.parse import quote

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from ecomarket.core.config import Settings
from ecomarket.core.errors import (
    AlreadyPurchasedError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ecomarket.db.transaction import atomic
from ecomarket.models.item import Item, ItemStatus
from ecomarket.models.ledger import UserRevenue, UserTreePoints
from ecomarket.models.notification import NotificationType
from ecomarket.models.purchase import Purchase, PurchaseStatus
from ecomarket.repositories.item_repo import ItemRepository
from ecomarket.repositories.ledger_repo import LedgerRepository
from ecomarket.repositories.purchase_repo import PurchaseRepository
from ecomarket.services import rewards
from ecomarket.services.conversations import ConversationService
from ecomarket.services.notifications import Notifier

logger = get_logger()

BUYER_NAME = "Buyer"
SELLER_NAME = "Seller"


class _ItemNoLongerListed(Exception):
    """The listed -> in_transaction claim matched no row."""


@dataclass
class PurchaseWithItem:
    purchase: Purchase
    item: Item


class PurchaseService:
    """Service for purchases and their lifecycle transitions."""

    def __init__(self, db: AsyncSession, settings: Settings, notifier: Optional[Notifier] = None):
        self.db = db
        self.settings = settings
        self.notifier = notifier
        self.purchases = PurchaseRepository(db)
        self.items = ItemRepository(db)
        self.revenue = LedgerRepository(UserRevenue, db)
        self.tree_points = LedgerRepository(UserTreePoints, db)
        self.conversations = ConversationService(db, settings)

    def _shipping_qr_url(self, item_id: int, buyer_uid: str) -> str:
        data = f"item-{item_id}-buyer-{quote(buyer_uid, safe='')}"
        return f"{self.settings.shipping_qr_base_url}?size=240x240&data={data}"

    async def _get(self, purchase_id: int) -> Purchase:
        purchase = await self.purchases.get_by_id(purchase_id)
        if purchase is None:
            raise NotFoundError("purchase not found", code="purchase_not_found")
        return purchase

    async def _raise_if_active(self, item_id: int, code: Optional[str] = None) -> None:
        existing = await self.purchases.get_active_by_item(item_id)
        if existing is not None:
            # The error outlives this session's rollback; keep its loaded state.
            self.db.expunge(existing)
            raise AlreadyPurchasedError(existing, code=code)

    async def purchase_item(self, item_id: int, buyer_uid: str, points_used: int = 0) -> Purchase:
        """
        Buy an item.

        Args:
            item_id: Item to buy
            buyer_uid: Buyer identity
            points_used: Tree points redeemed against the price

        Returns:
            The new purchase in pending_shipment

        Raises:
            InvalidInputError: empty buyer, own item, bad points
            NotFoundError: item does not exist
            InvalidStateError: item has no seller or is paused
            AlreadyPurchasedError: an active purchase exists (carries it)
            InsufficientBalanceError: not enough tree points
        """
        if not buyer_uid:
            raise InvalidInputError("buyer is required", code="buyer_required")
        if points_used < 0:
            raise InvalidInputError("points_used must not be negative", code="invalid_points")

        item = await self.items.get_by_id(item_id)
        if item is None:
            raise NotFoundError("item not found", code="item_not_found")
        if not item.seller_uid:
            raise InvalidStateError("item has no seller", code="item_without_seller")
        if item.seller_uid == buyer_uid:
            raise InvalidInputError("cannot buy your own item", code="own_item")
        if item.status == ItemStatus.PAUSED:
            raise InvalidStateError("item is paused", code="item_paused")
        if item.status in (ItemStatus.IN_TRANSACTION, ItemStatus.SOLD):
            await self._raise_if_active(item_id, code=f"item_{item.status.value}")
            raise InvalidStateError("item is not available", code="item_unavailable")
        await self._raise_if_active(item_id)

        seller_uid, title = item.seller_uid, item.title
        amount_paid = rewards.amount_due(item.price, points_used, self.settings)

        conversation = await self.conversations.get_or_create_direct(item, buyer_uid)
        conversation_id = conversation.id

        try:
            async with atomic(self.db, item_id=item_id, buyer_uid=buyer_uid, transition="purchase"):
                purchase = await self.purchases.create(
                    item_id=item_id,
                    buyer_uid=buyer_uid,
                    seller_uid=seller_uid,
                    conversation_id=conversation_id,
                    status=PurchaseStatus.PENDING_SHIPMENT,
                    shipping_qr_url=self._shipping_qr_url(item_id, buyer_uid),
                    shipping_note=self.settings.shipping_note,
                    points_used=points_used,
                    amount_paid=amount_paid,
                )
                if not await self.items.transition(item_id, ItemStatus.LISTED, ItemStatus.IN_TRANSACTION):
                    raise _ItemNoLongerListed()
                if points_used > 0:
                    await self.tree_points.debit(buyer_uid, points_used)
        except IntegrityError:
            logger.info("purchase_conflict", item_id=item_id, buyer_uid=buyer_uid)
            await self._raise_if_active(item_id)
            raise
        except _ItemNoLongerListed:
            await self._raise_if_active(item_id)
            raise InvalidStateError("item is not available", code="item_unavailable")

        logger.info(
            "purchase_created",
            purchase_id=purchase.id,
            item_id=item_id,
            buyer_uid=buyer_uid,
            points_used=points_used,
            amount_paid=amount_paid,
        )

        await self._post_system_message(
            purchase,
            buyer_uid,
            BUYER_NAME,
            "Purchase completed. Please ship the item using the shipping QR code at a convenience store.",
        )
        self._notify(
            seller_uid,
            NotificationType.PURCHASE_CREATED,
            "Your item was purchased",
            f'"{title}" was purchased. Please ship it.',
            purchase,
        )
        return purchase

    async def get_by_item(self, item_id: int, requester_uid: str = "") -> Purchase:
        """
        Latest purchase of an item.

        A non-empty requester must be the buyer or the seller.
        """
        purchase = await self.purchases.get_latest_by_item(item_id)
        if purchase is None:
            raise NotFoundError("purchase not found", code="purchase_not_found")
        if requester_uid and not purchase.is_party(requester_uid):
            raise ForbiddenError("not a party to this purchase")
        return purchase

    async def mark_shipped(self, purchase_id: int, seller_uid: str) -> Purchase:
        """
        Seller hands the item to the carrier.

        Repeating the call on a shipped purchase returns it unchanged.
        """
        purchase = await self._get(purchase_id)
        if purchase.seller_uid != seller_uid:
            raise ForbiddenError("only the seller can mark a purchase shipped")
        if purchase.status == PurchaseStatus.SHIPPED:
            return purchase
        if purchase.status != PurchaseStatus.PENDING_SHIPMENT:
            raise InvalidStateError(
                f"cannot ship a {purchase.status.value} purchase",
                code="invalid_transition",
            )

        async with atomic(self.db, purchase_id=purchase_id, transition="ship"):
            moved = await self.purchases.transition(
                purchase_id,
                PurchaseStatus.PENDING_SHIPMENT,
                PurchaseStatus.SHIPPED,
                shipped_at=datetime.now(timezone.utc),
            )
        await self.db.refresh(purchase)
        if not moved:
            if purchase.status == PurchaseStatus.SHIPPED:
                return purchase
            raise InvalidStateError(
                f"cannot ship a {purchase.status.value} purchase",
                code="invalid_transition",
            )

        logger.info("purchase_shipped", purchase_id=purchase_id, item_id=purchase.item_id)

        await self._post_system_message(
            purchase,
            seller_uid,
            SELLER_NAME,
            "The item has been shipped. Check the convenience store receipt for tracking.",
        )
        self._notify(
            purchase.buyer_uid,
            NotificationType.PURCHASE_SHIPPED,
            "Your item has been shipped",
            "The seller marked the item as shipped. Please wait for delivery.",
            purchase,
        )
        return purchase

    async def mark_delivered(self, purchase_id: int, buyer_uid: str) -> Purchase:
        """
        Buyer confirms receipt; completes the sale.

        In the same transaction the item becomes sold, the seller's revenue
        is credited and the buyer earns tree points for the CO2 saved.
        Repeating the call on a delivered purchase returns it unchanged and
        credits nothing.
        """
        purchase = await self._get(purchase_id)
        if purchase.buyer_uid != buyer_uid:
            raise ForbiddenError("only the buyer can confirm delivery")
        if purchase.status == PurchaseStatus.DELIVERED:
            return purchase
        if purchase.status != PurchaseStatus.SHIPPED:
            raise InvalidStateError(
                f"cannot deliver a {purchase.status.value} purchase",
                code="invalid_transition",
            )

        item = await self.items.get_by_id(purchase.item_id)
        if item is None:
            raise NotFoundError("item not found", code="item_not_found")
        revenue = rewards.seller_revenue(item.price, self.settings)
        points = rewards.buyer_tree_points(item.co2_kg, self.settings)
        seller_uid, item_id = purchase.seller_uid, purchase.item_id

        async with atomic(self.db, purchase_id=purchase_id, transition="deliver"):
            moved = await self.purchases.transition(
                purchase_id,
                PurchaseStatus.SHIPPED,
                PurchaseStatus.DELIVERED,
                delivered_at=datetime.now(timezone.utc),
            )
            if moved:
                await self.items.set_status(item_id, ItemStatus.SOLD)
                if revenue > 0:
                    await self.revenue.credit(seller_uid, revenue)
                if points > 0:
                    await self.tree_points.credit(buyer_uid, points)
        await self.db.refresh(purchase)
        if not moved:
            if purchase.status == PurchaseStatus.DELIVERED:
                return purchase
            raise InvalidStateError(
                f"cannot deliver a {purchase.status.value} purchase",
                code="invalid_transition",
            )

        logger.info(
            "purchase_delivered",
            purchase_id=purchase_id,
            item_id=item_id,
            revenue=revenue,
            tree_points=points,
        )

        await self._post_system_message(
            purchase,
            buyer_uid,
            BUYER_NAME,
            "I received the item. Thank you!",
        )
        self._notify(
            seller_uid,
            NotificationType.PURCHASE_DELIVERED,
            "Delivery confirmed",
            "The buyer confirmed receipt. The transaction is complete.",
            purchase,
        )
        return purchase

    async def cancel(self, purchase_id: int, buyer_uid: str) -> Purchase:
        """
        Buyer cancels before shipment.

        The item is listed again and redeemed tree points are refunded.
        """
        purchase = await self._get(purchase_id)
        if purchase.buyer_uid != buyer_uid:
            raise ForbiddenError("only the buyer can cancel a purchase")
        if purchase.status != PurchaseStatus.PENDING_SHIPMENT:
            raise InvalidStateError("cannot cancel after shipment", code="cancel_after_shipment")

        item_id, seller_uid, points_used = purchase.item_id, purchase.seller_uid, purchase.points_used

        async with atomic(self.db, purchase_id=purchase_id, transition="cancel"):
            moved = await self.purchases.transition(
                purchase_id,
                PurchaseStatus.PENDING_SHIPMENT,
                PurchaseStatus.CANCELED,
                clear_timestamps=True,
            )
            if moved:
                await self.items.transition(item_id, ItemStatus.IN_TRANSACTION, ItemStatus.LISTED)
                if points_used > 0:
                    await self.tree_points.restore(buyer_uid, points_used)
        await self.db.refresh(purchase)
        if not moved:
            raise InvalidStateError("cannot cancel after shipment", code="cancel_after_shipment")

        logger.info(
            "purchase_canceled",
            purchase_id=purchase_id,
            item_id=item_id,
            points_refunded=points_used,
        )

        await self._post_system_message(
            purchase,
            buyer_uid,
            BUYER_NAME,
            "I canceled the purchase.",
        )
        self._notify(
            seller_uid,
            NotificationType.PURCHASE_CANCELED,
            "Purchase canceled",
            "The buyer canceled. The item is available for purchase again.",
            purchase,
        )
        return purchase

    async def list_by_buyer(self, buyer_uid: str) -> Sequence[PurchaseWithItem]:
        if not buyer_uid:
            raise InvalidInputError("buyer is required", code="buyer_required")
        rows = await self.purchases.list_with_items(buyer_uid=buyer_uid)
        return [PurchaseWithItem(purchase=p, item=i) for p, i in rows]

    async def list_by_seller(self, seller_uid: str) -> Sequence[PurchaseWithItem]:
        if not seller_uid:
            raise InvalidInputError("seller is required", code="seller_required")
        rows = await self.purchases.list_with_items(seller_uid=seller_uid)
        return [PurchaseWithItem(purchase=p, item=i) for p, i in rows]

    async def _post_system_message(
        self,
        purchase: Purchase,
        sender_uid: str,
        sender_name: str,
        body: str,
    ) -> None:
        """Record the transition in the purchase conversation (best effort)."""
        if purchase.conversation_id is None:
            return
        purchase_id, conversation_id = purchase.id, purchase.conversation_id
        try:
            await self.conversations.append_system_message(
                conversation_id,
                sender_uid,
                body,
                sender_name=sender_name,
            )
        except Exception as e:
            logger.warning(
                "purchase_message_failed",
                purchase_id=purchase_id,
                conversation_id=conversation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            # the failed write expired the session; reload the committed row
            await self.db.refresh(purchase)

    def _notify(
        self,
        recipient_uid: str,
        type: NotificationType,
        title: str,
        body: str,
        purchase: Purchase,
    ) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(
            recipient_uid,
            type.value,
            title,
            body,
            item_id=purchase.item_id,
            conversation_id=purchase.conversation_id,
            purchase_id=purchase.id,
        )
