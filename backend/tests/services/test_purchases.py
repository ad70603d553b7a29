"""
Tests for the purchase engine.

Covers the purchase state machine, the item availability gate, ledger
movements tied to transitions and the best-effort side effects.
"""
import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, update

from ecomarket.core.errors import (
    AlreadyPurchasedError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ecomarket.models import (
    Item,
    ItemStatus,
    Message,
    Notification,
    Purchase,
    PurchaseStatus,
    UserRevenue,
    UserTreePoints,
)
from ecomarket.repositories.purchase_repo import PurchaseRepository
from ecomarket.services.conversations import ConversationService
from ecomarket.services.ledger import revenue_ledger, tree_point_ledger
from ecomarket.services.purchases import PurchaseService

from tests.conftest import BUYER, OTHER_BUYER, SELLER


async def _count(db_session, model, *criteria) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    return (await db_session.execute(query)).scalar()


class TestPurchaseItem:
    """purchase_item preconditions and effects."""

    @pytest.mark.asyncio
    async def test_purchase_claims_item(self, db_session, purchase_service, make_item):
        item = await make_item(price=5000)

        purchase = await purchase_service.purchase_item(item.id, BUYER)

        assert purchase.status == PurchaseStatus.PENDING_SHIPMENT
        assert purchase.buyer_uid == BUYER
        assert purchase.seller_uid == SELLER
        assert purchase.amount_paid == 5000
        assert purchase.conversation_id is not None
        assert f"data=item-{item.id}-buyer-{BUYER}" in purchase.shipping_qr_url
        assert "size=240x240" in purchase.shipping_qr_url
        assert purchase.shipping_note

        await db_session.refresh(item)
        assert item.status == ItemStatus.IN_TRANSACTION

    @pytest.mark.asyncio
    async def test_second_buyer_gets_existing_purchase(self, purchase_service, make_item):
        item = await make_item()
        first = await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(AlreadyPurchasedError) as exc_info:
            await purchase_service.purchase_item(item.id, OTHER_BUYER)

        assert exc_info.value.purchase.id == first.id
        assert exc_info.value.code == "item_in_transaction"

    @pytest.mark.asyncio
    async def test_own_item_rejected(self, purchase_service, make_item):
        item = await make_item()

        with pytest.raises(InvalidInputError) as exc_info:
            await purchase_service.purchase_item(item.id, SELLER)
        assert exc_info.value.code == "own_item"

    @pytest.mark.asyncio
    async def test_empty_buyer_rejected(self, purchase_service, make_item):
        item = await make_item()

        with pytest.raises(InvalidInputError):
            await purchase_service.purchase_item(item.id, "")

    @pytest.mark.asyncio
    async def test_missing_item(self, purchase_service):
        with pytest.raises(NotFoundError):
            await purchase_service.purchase_item(999, BUYER)

    @pytest.mark.asyncio
    async def test_item_without_seller(self, purchase_service, make_item):
        item = await make_item(seller_uid="")

        with pytest.raises(InvalidStateError):
            await purchase_service.purchase_item(item.id, BUYER)

    @pytest.mark.asyncio
    async def test_paused_item_rejected(self, db_session, purchase_service, make_item):
        item = await make_item(status=ItemStatus.PAUSED)

        with pytest.raises(InvalidStateError) as exc_info:
            await purchase_service.purchase_item(item.id, BUYER)

        assert exc_info.value.code == "item_paused"
        assert await _count(db_session, Purchase) == 0

    @pytest.mark.asyncio
    async def test_sold_item_reports_purchase(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)
        await purchase_service.mark_delivered(purchase.id, BUYER)

        with pytest.raises(AlreadyPurchasedError) as exc_info:
            await purchase_service.purchase_item(item.id, OTHER_BUYER)

        assert exc_info.value.purchase.id == purchase.id
        assert exc_info.value.code == "item_sold"

    @pytest.mark.asyncio
    async def test_repurchase_reuses_conversation(self, db_session, purchase_service, make_item):
        item = await make_item()
        first = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.cancel(first.id, BUYER)

        second = await purchase_service.purchase_item(item.id, BUYER)

        assert second.id != first.id
        assert second.conversation_id == first.conversation_id

    @pytest.mark.asyncio
    async def test_purchase_posts_system_message(self, db_session, purchase_service, make_item):
        item = await make_item()

        purchase = await purchase_service.purchase_item(item.id, BUYER)

        messages = (
            await db_session.execute(
                select(Message).where(Message.conversation_id == purchase.conversation_id)
            )
        ).scalars().all()
        assert len(messages) == 1
        assert messages[0].sender_uid == BUYER


class TestConcurrentPurchases:
    """Two buyers racing for the same item."""

    @pytest.mark.asyncio
    async def test_exactly_one_purchase_wins(self, session_maker, settings, make_item):
        item = await make_item()

        async def attempt(buyer_uid: str):
            async with session_maker() as session:
                service = PurchaseService(session, settings)
                try:
                    purchase = await service.purchase_item(item.id, buyer_uid)
                    return ("ok", purchase.id)
                except AlreadyPurchasedError as e:
                    return ("conflict", e.purchase.id)

        results = await asyncio.gather(attempt(BUYER), attempt(OTHER_BUYER))

        outcomes = sorted(r[0] for r in results)
        assert outcomes == ["conflict", "ok"]
        winner_id = next(r[1] for r in results if r[0] == "ok")
        loser_sees = next(r[1] for r in results if r[0] == "conflict")
        assert loser_sees == winner_id

        async with session_maker() as session:
            active = await _count(
                session,
                Purchase,
                Purchase.item_id == item.id,
                Purchase.status != PurchaseStatus.CANCELED,
            )
        assert active == 1

    @pytest.mark.asyncio
    async def test_storage_rejects_second_active_purchase(self, db_session, purchase_service, make_item):
        """The partial unique index holds even if the pre-checks are bypassed."""
        item = await make_item()
        item_id = item.id
        first = await purchase_service.purchase_item(item_id, BUYER)
        first_id = first.id

        # a stale reader: the item looks listed and the first lookup misses
        await db_session.execute(
            update(Item).where(Item.id == item_id).values(status=ItemStatus.LISTED)
        )
        await db_session.commit()

        real_lookup = PurchaseRepository.get_active_by_item
        lookups = []

        async def stale_first_lookup(self, item_id):
            lookups.append(item_id)
            if len(lookups) == 1:
                return None
            return await real_lookup(self, item_id)

        with patch.object(PurchaseRepository, "get_active_by_item", stale_first_lookup):
            with pytest.raises(AlreadyPurchasedError) as exc_info:
                await purchase_service.purchase_item(item_id, OTHER_BUYER)

        assert exc_info.value.purchase.id == first_id
        assert await _count(db_session, Purchase, Purchase.item_id == item_id) == 1


class TestMarkShipped:

    @pytest.mark.asyncio
    async def test_seller_ships(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        shipped = await purchase_service.mark_shipped(purchase.id, SELLER)

        assert shipped.status == PurchaseStatus.SHIPPED
        assert shipped.shipped_at is not None

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(ForbiddenError):
            await purchase_service.mark_shipped(purchase.id, "someone-else")
        with pytest.raises(ForbiddenError):
            await purchase_service.mark_shipped(purchase.id, BUYER)

    @pytest.mark.asyncio
    async def test_unknown_purchase(self, purchase_service):
        with pytest.raises(NotFoundError):
            await purchase_service.mark_shipped(12345, SELLER)

    @pytest.mark.asyncio
    async def test_repeat_ship_is_noop(self, db_session, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        first = await purchase_service.mark_shipped(purchase.id, SELLER)
        shipped_at = first.shipped_at

        again = await purchase_service.mark_shipped(purchase.id, SELLER)

        assert again.status == PurchaseStatus.SHIPPED
        assert again.shipped_at == shipped_at
        messages = await _count(
            db_session, Message, Message.conversation_id == purchase.conversation_id
        )
        # purchase message + one shipping message
        assert messages == 2

    @pytest.mark.asyncio
    async def test_cannot_ship_canceled(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.cancel(purchase.id, BUYER)

        with pytest.raises(InvalidStateError):
            await purchase_service.mark_shipped(purchase.id, SELLER)


class TestMarkDelivered:

    @pytest.mark.asyncio
    async def test_delivery_completes_sale(self, db_session, settings, purchase_service, make_item):
        item = await make_item(price=5000, co2_kg=12.5)
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)

        delivered = await purchase_service.mark_delivered(purchase.id, BUYER)

        assert delivered.status == PurchaseStatus.DELIVERED
        assert delivered.delivered_at is not None
        await db_session.refresh(item)
        assert item.status == ItemStatus.SOLD

        revenue = await revenue_ledger(db_session).get(SELLER)
        assert revenue.total == 5000
        assert revenue.balance == 5000
        points = await tree_point_ledger(db_session).get(BUYER)
        assert points.total == pytest.approx(12.5 * settings.tree_points_per_kg)

    @pytest.mark.asyncio
    async def test_repeat_delivery_credits_once(self, db_session, purchase_service, make_item):
        item = await make_item(price=5000, co2_kg=2.0)
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)
        await purchase_service.mark_delivered(purchase.id, BUYER)

        again = await purchase_service.mark_delivered(purchase.id, BUYER)

        assert again.status == PurchaseStatus.DELIVERED
        revenue = await revenue_ledger(db_session).get(SELLER)
        assert revenue.total == 5000
        points = await tree_point_ledger(db_session).get(BUYER)
        assert points.total == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_concurrent_delivery_credits_once(self, session_maker, settings, purchase_service, make_item):
        item = await make_item(price=3000)
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)

        async def deliver():
            async with session_maker() as session:
                result = await PurchaseService(session, settings).mark_delivered(purchase.id, BUYER)
                return result.status

        statuses = await asyncio.gather(deliver(), deliver())

        assert statuses == [PurchaseStatus.DELIVERED, PurchaseStatus.DELIVERED]
        async with session_maker() as session:
            revenue = await revenue_ledger(session).get(SELLER)
        assert revenue.total == 3000

    @pytest.mark.asyncio
    async def test_no_estimate_means_no_points(self, db_session, purchase_service, make_item):
        item = await make_item(co2_kg=None)
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)
        await purchase_service.mark_delivered(purchase.id, BUYER)

        assert await _count(db_session, UserTreePoints, UserTreePoints.uid == BUYER) == 0

    @pytest.mark.asyncio
    async def test_seller_cannot_confirm_delivery(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)

        with pytest.raises(ForbiddenError):
            await purchase_service.mark_delivered(purchase.id, SELLER)

    @pytest.mark.asyncio
    async def test_cannot_deliver_before_shipment(self, db_session, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(InvalidStateError):
            await purchase_service.mark_delivered(purchase.id, BUYER)
        assert await _count(db_session, UserRevenue) == 0


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_relists_item(self, db_session, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        canceled = await purchase_service.cancel(purchase.id, BUYER)

        assert canceled.status == PurchaseStatus.CANCELED
        assert canceled.shipped_at is None
        assert canceled.delivered_at is None
        await db_session.refresh(item)
        assert item.status == ItemStatus.LISTED

    @pytest.mark.asyncio
    async def test_canceled_item_can_be_bought_again(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.cancel(purchase.id, BUYER)

        second = await purchase_service.purchase_item(item.id, OTHER_BUYER)

        assert second.status == PurchaseStatus.PENDING_SHIPMENT
        assert second.buyer_uid == OTHER_BUYER

    @pytest.mark.asyncio
    async def test_cancel_after_shipment_rejected(self, db_session, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.mark_shipped(purchase.id, SELLER)

        with pytest.raises(InvalidStateError) as exc_info:
            await purchase_service.cancel(purchase.id, BUYER)

        assert "cannot cancel after shipment" in exc_info.value.message
        await db_session.refresh(item)
        assert item.status == ItemStatus.IN_TRANSACTION

    @pytest.mark.asyncio
    async def test_only_buyer_cancels(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(ForbiddenError):
            await purchase_service.cancel(purchase.id, SELLER)


class TestTreePointPayment:
    """Paying part of the price with tree points."""

    @pytest.mark.asyncio
    async def test_points_reduce_amount_and_balance(self, db_session, purchase_service, make_item, give_tree_points):
        await give_tree_points(BUYER, 500)
        item = await make_item(price=5000)

        purchase = await purchase_service.purchase_item(item.id, BUYER, points_used=300)

        assert purchase.points_used == 300
        assert purchase.amount_paid == 4700
        balance = await tree_point_ledger(db_session).get(BUYER)
        assert balance.balance == pytest.approx(200)
        assert balance.total == pytest.approx(500)

    @pytest.mark.asyncio
    async def test_insufficient_points_abort_purchase(self, db_session, purchase_service, make_item, give_tree_points):
        await give_tree_points(BUYER, 100)
        item = await make_item(price=5000)

        with pytest.raises(InsufficientBalanceError):
            await purchase_service.purchase_item(item.id, BUYER, points_used=300)

        assert await _count(db_session, Purchase) == 0
        await db_session.refresh(item)
        assert item.status == ItemStatus.LISTED
        balance = await tree_point_ledger(db_session).get(BUYER)
        assert balance.balance == pytest.approx(100)

    @pytest.mark.asyncio
    async def test_cancel_refunds_points(self, db_session, purchase_service, make_item, give_tree_points):
        await give_tree_points(BUYER, 500)
        item = await make_item(price=5000)
        purchase = await purchase_service.purchase_item(item.id, BUYER, points_used=300)

        await purchase_service.cancel(purchase.id, BUYER)

        balance = await tree_point_ledger(db_session).get(BUYER)
        assert balance.balance == pytest.approx(500)
        assert balance.total == pytest.approx(500)

    @pytest.mark.asyncio
    async def test_points_above_price_rejected(self, purchase_service, make_item, give_tree_points):
        await give_tree_points(BUYER, 10000)
        item = await make_item(price=1000)

        with pytest.raises(InvalidInputError):
            await purchase_service.purchase_item(item.id, BUYER, points_used=1500)

    @pytest.mark.asyncio
    async def test_negative_points_rejected(self, purchase_service, make_item):
        item = await make_item()

        with pytest.raises(InvalidInputError):
            await purchase_service.purchase_item(item.id, BUYER, points_used=-1)


class TestGetByItem:

    @pytest.mark.asyncio
    async def test_parties_can_read(self, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        assert (await purchase_service.get_by_item(item.id, BUYER)).id == purchase.id
        assert (await purchase_service.get_by_item(item.id, SELLER)).id == purchase.id
        assert (await purchase_service.get_by_item(item.id, "")).id == purchase.id

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, purchase_service, make_item):
        item = await make_item()
        await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(ForbiddenError):
            await purchase_service.get_by_item(item.id, "stranger")

    @pytest.mark.asyncio
    async def test_no_purchase(self, purchase_service, make_item):
        item = await make_item()

        with pytest.raises(NotFoundError):
            await purchase_service.get_by_item(item.id, BUYER)

    @pytest.mark.asyncio
    async def test_returns_latest(self, purchase_service, make_item):
        item = await make_item()
        first = await purchase_service.purchase_item(item.id, BUYER)
        await purchase_service.cancel(first.id, BUYER)
        second = await purchase_service.purchase_item(item.id, OTHER_BUYER)

        assert (await purchase_service.get_by_item(item.id)).id == second.id


class TestListings:

    @pytest.mark.asyncio
    async def test_list_by_buyer_and_seller(self, purchase_service, make_item):
        first_item = await make_item(title="Lamp")
        second_item = await make_item(title="Desk")
        await purchase_service.purchase_item(first_item.id, BUYER)
        await purchase_service.purchase_item(second_item.id, BUYER)

        bought = await purchase_service.list_by_buyer(BUYER)
        sold = await purchase_service.list_by_seller(SELLER)

        assert [row.item.title for row in bought] == ["Desk", "Lamp"]
        assert len(sold) == 2
        assert await purchase_service.list_by_buyer(OTHER_BUYER) == []


class TestSideEffects:
    """Messages and notifications never undo a committed transition."""

    @pytest.mark.asyncio
    async def test_seller_notified_of_purchase(self, db_session, dispatcher, purchase_service, make_item):
        item = await make_item()

        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await dispatcher.drain()

        notifications = (
            await db_session.execute(select(Notification).where(Notification.user_uid == SELLER))
        ).scalars().all()
        assert [n.type for n in notifications] == ["purchase_created"]
        assert notifications[0].purchase_id == purchase.id

    @pytest.mark.asyncio
    async def test_lifecycle_notifications(self, db_session, dispatcher, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)
        await dispatcher.drain()
        await purchase_service.mark_shipped(purchase.id, SELLER)
        await dispatcher.drain()
        await purchase_service.mark_delivered(purchase.id, BUYER)
        await dispatcher.drain()

        rows = (
            await db_session.execute(select(Notification).order_by(Notification.id))
        ).scalars().all()
        assert [(n.user_uid, n.type) for n in rows] == [
            (SELLER, "purchase_created"),
            (BUYER, "purchase_shipped"),
            (SELLER, "purchase_delivered"),
        ]

    @pytest.mark.asyncio
    async def test_failing_notification_does_not_break_purchase(self, db_session, dispatcher, purchase_service, make_item):
        item = await make_item()

        with patch(
            "ecomarket.services.notifications.NotificationService.create",
            side_effect=RuntimeError("notification store down"),
        ):
            purchase = await purchase_service.purchase_item(item.id, BUYER)
            await dispatcher.drain()

        assert purchase.status == PurchaseStatus.PENDING_SHIPMENT
        assert dispatcher.stats.failed == 1
        await db_session.refresh(item)
        assert item.status == ItemStatus.IN_TRANSACTION

    @pytest.mark.asyncio
    async def test_failing_system_message_does_not_break_shipping(self, db_session, purchase_service, make_item):
        item = await make_item()
        purchase = await purchase_service.purchase_item(item.id, BUYER)

        with patch.object(
            ConversationService,
            "append_system_message",
            side_effect=RuntimeError("message store down"),
        ):
            shipped = await purchase_service.mark_shipped(purchase.id, SELLER)

        assert shipped.status == PurchaseStatus.SHIPPED
        stored = await db_session.get(Purchase, purchase.id)
        assert stored.status == PurchaseStatus.SHIPPED

    @pytest.mark.asyncio
    async def test_without_notifier(self, db_session, settings, make_item):
        item = await make_item()
        service = PurchaseService(db_session, settings)

        purchase = await service.purchase_item(item.id, BUYER)

        assert purchase.status == PurchaseStatus.PENDING_SHIPMENT
        assert await _count(db_session, Notification) == 0
