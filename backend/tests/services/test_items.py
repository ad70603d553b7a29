"""
Tests for item listing, owner edits and CO2 estimates.
"""
import asyncio

import pytest

from ecomarket.core.errors import (
    EstimationTimeoutError,
    ForbiddenError,
    InsufficientDataError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ecomarket.models import Item, ItemStatus, Purchase
from ecomarket.services.estimation import MockEstimationClient
from ecomarket.services.items import ItemService

from tests.conftest import BUYER, SELLER

PHOTO = "https://images.example.com/coat.jpg"


class SlowEstimator(MockEstimationClient):
    async def estimate(self, title, description, image_url):
        await asyncio.sleep(5)
        return 1.0


@pytest.fixture
def item_service(db_session, settings, dispatcher, session_maker, estimator):
    return ItemService(db_session, settings, estimator, dispatcher, session_maker)


async def _create(item_service, **overrides):
    fields = dict(
        seller_uid=SELLER,
        title="Wool coat",
        description="Lightly worn, size M",
        price=5000,
        category="fashion",
        image_url=None,
    )
    fields.update(overrides)
    return await item_service.create(**fields)


class TestCreateItem:

    @pytest.mark.asyncio
    async def test_create_lists_item(self, item_service):
        item = await _create(item_service, title="  Wool coat  ")

        assert item.id is not None
        assert item.title == "Wool coat"
        assert item.status == ItemStatus.LISTED
        assert item.co2_kg is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,code",
        [
            ({"title": ""}, "invalid_title"),
            ({"title": "x" * 121}, "invalid_title"),
            ({"description": "  "}, "invalid_description"),
            ({"price": 99}, "invalid_price"),
            ({"category": ""}, "category_required"),
            ({"seller_uid": ""}, "seller_required"),
            ({"image_url": "data:image/png;base64,AAAA"}, "data_uri"),
        ],
    )
    async def test_validation(self, item_service, overrides, code):
        with pytest.raises(InvalidInputError) as exc_info:
            await _create(item_service, **overrides)
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_background_estimate_with_photo(self, db_session, dispatcher, item_service, estimator):
        item = await _create(item_service, image_url=PHOTO)

        await dispatcher.drain()

        await db_session.refresh(item)
        assert item.co2_kg == pytest.approx(3.0)
        assert estimator.calls == [("Wool coat", "Lightly worn, size M", PHOTO)]

    @pytest.mark.asyncio
    async def test_no_estimate_without_photo(self, dispatcher, item_service, estimator):
        await _create(item_service)

        await dispatcher.drain()

        assert estimator.calls == []

    @pytest.mark.asyncio
    async def test_background_estimate_is_capped(self, db_session, settings, dispatcher, session_maker):
        service = ItemService(
            db_session, settings, MockEstimationClient(value=500.0), dispatcher, session_maker
        )

        item = await _create(service, price=1000, image_url=PHOTO)
        await dispatcher.drain()

        await db_session.refresh(item)
        assert item.co2_kg == pytest.approx(1000 * settings.co2_cap_ratio)

    @pytest.mark.asyncio
    async def test_failed_estimate_leaves_item_listed(self, db_session, settings, dispatcher, session_maker):
        service = ItemService(db_session, settings, SlowEstimator(), dispatcher, session_maker)

        item = await _create(service, image_url=PHOTO)
        await dispatcher.drain()

        await db_session.refresh(item)
        assert item.co2_kg is None
        assert item.status == ItemStatus.LISTED
        assert dispatcher.stats.timed_out == 1


class TestBrowseItems:

    @pytest.mark.asyncio
    async def test_list_filters_and_counts(self, item_service):
        await _create(item_service, title="Wool coat", category="fashion")
        await _create(item_service, title="Desk lamp", category="home")
        await _create(item_service, title="Rain coat", category="fashion")

        items, total = await item_service.list(category="fashion")
        assert total == 2
        assert [i.title for i in items] == ["Rain coat", "Wool coat"]

        items, total = await item_service.list(query="LAMP")
        assert total == 1

    @pytest.mark.asyncio
    async def test_limit_out_of_range_uses_default(self, item_service):
        for n in range(3):
            await _create(item_service, title=f"Item {n}")

        items, total = await item_service.list(limit=1000)
        assert len(items) == 3
        assert total == 3

        items, _ = await item_service.list(limit=2, offset=2)
        assert [i.title for i in items] == ["Item 0"]

    @pytest.mark.asyncio
    async def test_get_missing(self, item_service):
        with pytest.raises(NotFoundError):
            await item_service.get(31337)

    @pytest.mark.asyncio
    async def test_list_by_seller(self, item_service):
        await _create(item_service)
        await _create(item_service, seller_uid="someone-else")

        items = await item_service.list_by_seller(SELLER)

        assert [i.seller_uid for i in items] == [SELLER]


class TestUpdateItem:

    @pytest.mark.asyncio
    async def test_owner_edits(self, item_service, make_item):
        item = await make_item(price=5000)

        updated = await item_service.update_owned(item.id, SELLER, price=4000, status="paused")

        assert updated.price == 4000
        assert updated.status == ItemStatus.PAUSED

    @pytest.mark.asyncio
    async def test_text_edit_clears_estimate(self, item_service, make_item):
        item = await make_item(co2_kg=4.0)

        updated = await item_service.update_owned(item.id, SELLER, title="Wool coat, navy")

        assert updated.co2_kg is None

    @pytest.mark.asyncio
    async def test_price_edit_keeps_estimate(self, item_service, make_item):
        item = await make_item(co2_kg=4.0)

        updated = await item_service.update_owned(item.id, SELLER, price=6000)

        assert updated.co2_kg == pytest.approx(4.0)

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, item_service, make_item):
        item = await make_item()

        with pytest.raises(ForbiddenError):
            await item_service.update_owned(item.id, BUYER, price=100)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["sold", "in_transaction", "bogus"])
    async def test_owner_cannot_set_reserved_status(self, item_service, make_item, status):
        item = await make_item()

        with pytest.raises(InvalidInputError) as exc_info:
            await item_service.update_owned(item.id, SELLER, status=status)
        assert exc_info.value.code == "invalid_status"

    @pytest.mark.asyncio
    async def test_locked_while_purchased(self, item_service, purchase_service, make_item):
        item = await make_item()
        await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(InvalidStateError) as exc_info:
            await item_service.update_owned(item.id, SELLER, price=100)
        assert exc_info.value.code == "item_locked"

    @pytest.mark.asyncio
    async def test_no_fields(self, item_service, make_item):
        item = await make_item()

        with pytest.raises(InvalidInputError):
            await item_service.update_owned(item.id, SELLER)


class TestDeleteItem:

    @pytest.mark.asyncio
    async def test_owner_deletes(self, db_session, item_service, make_item):
        item = await make_item()
        item_id = item.id

        await item_service.delete_owned(item_id, SELLER)

        assert await db_session.get(Item, item_id) is None

    @pytest.mark.asyncio
    async def test_cannot_delete_in_transaction(self, item_service, purchase_service, make_item):
        item = await make_item()
        await purchase_service.purchase_item(item.id, BUYER)

        with pytest.raises(InvalidStateError):
            await item_service.delete_owned(item.id, SELLER)

    @pytest.mark.asyncio
    async def test_cannot_delete_sold(self, db_session, item_service, purchase_service, make_item):
        item = await make_item()
        item_id = item.id
        purchase = await purchase_service.purchase_item(item_id, BUYER)
        purchase_id = purchase.id
        await purchase_service.mark_shipped(purchase_id, SELLER)
        await purchase_service.mark_delivered(purchase_id, BUYER)

        with pytest.raises(InvalidStateError) as exc_info:
            await item_service.delete_owned(item_id, SELLER)

        assert exc_info.value.code == "item_sold"
        assert await db_session.get(Purchase, purchase_id) is not None

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, item_service, make_item):
        item = await make_item()

        with pytest.raises(ForbiddenError):
            await item_service.delete_owned(item.id, BUYER)


class TestEstimateOnDemand:

    @pytest.mark.asyncio
    async def test_estimate_persists(self, item_service, make_item):
        item = await make_item(image_url=PHOTO)

        value = await item_service.estimate_co2(item.id, SELLER)

        assert value == pytest.approx(3.0)
        assert item.co2_kg == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_estimate_capped_by_price(self, db_session, settings, make_item):
        item = await make_item(price=100, image_url=PHOTO)
        service = ItemService(db_session, settings, MockEstimationClient(value=50.0))

        value = await service.estimate_co2(item.id, SELLER)

        assert value == pytest.approx(100 * settings.co2_cap_ratio)

    @pytest.mark.asyncio
    async def test_requires_photo(self, item_service, make_item):
        item = await make_item(image_url=None)

        with pytest.raises(InsufficientDataError):
            await item_service.estimate_co2(item.id, SELLER)

    @pytest.mark.asyncio
    async def test_requires_estimator(self, db_session, settings, make_item):
        item = await make_item(image_url=PHOTO)

        with pytest.raises(InsufficientDataError):
            await ItemService(db_session, settings).estimate_co2(item.id, SELLER)

    @pytest.mark.asyncio
    async def test_timeout(self, db_session, settings, make_item):
        item = await make_item(image_url=PHOTO)
        service = ItemService(db_session, settings, SlowEstimator())

        with pytest.raises(EstimationTimeoutError):
            await service.estimate_co2(item.id, SELLER)

        await db_session.refresh(item)
        assert item.co2_kg is None
