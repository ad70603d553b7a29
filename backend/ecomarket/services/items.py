"""
Item listing service.

Handles:
- Listing creation and validation
- Owner edits and deletion (never while a purchase holds the item)
- CO2 savings estimates, in the background after creation and on demand
"""
import asyncio
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from ecomarket.core.config import Settings
from ecomarket.core.errors import (
    EstimationTimeoutError,
    ForbiddenError,
    InsufficientDataError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ecomarket.core.side_effects import SideEffectDispatcher
from ecomarket.db.transaction import atomic
from ecomarket.models.item import Item, ItemStatus
from ecomarket.repositories.item_repo import ItemRepository
from ecomarket.services.estimation.base import EstimationClient

logger = get_logger()

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

OWNER_SETTABLE_STATUSES = (ItemStatus.LISTED, ItemStatus.PAUSED)
LOCKED_STATUSES = (ItemStatus.IN_TRANSACTION, ItemStatus.SOLD)


def _is_data_uri(value: Optional[str]) -> bool:
    return value is not None and value.strip().startswith("data:")


class ItemService:
    """Service for listing and managing items."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        estimator: Optional[EstimationClient] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.db = db
        self.settings = settings
        self.estimator = estimator
        self.dispatcher = dispatcher
        self.session_maker = session_maker
        self.repo = ItemRepository(db)

    def _cap(self, value: float, price: int) -> float:
        limit = price * self.settings.co2_cap_ratio
        return min(max(value, 0.0), limit)

    def _validate_title(self, title: str) -> str:
        title = title.strip()
        if not title or len(title) > self.settings.max_title_length:
            raise InvalidInputError("invalid title", code="invalid_title")
        return title

    def _validate_price(self, price: int) -> int:
        if price < self.settings.min_item_price:
            raise InvalidInputError(
                f"price must be at least {self.settings.min_item_price}",
                code="invalid_price",
            )
        return price

    async def create(
        self,
        seller_uid: str,
        title: str,
        description: str,
        price: int,
        category: str,
        image_url: Optional[str] = None,
    ) -> Item:
        """
        List a new item.

        The item is purchasable immediately; a CO2 estimate is computed in
        the background when an estimator is configured.
        """
        title = self._validate_title(title or "")
        description = (description or "").strip()
        if not description:
            raise InvalidInputError("invalid description", code="invalid_description")
        self._validate_price(price)
        category = (category or "").strip()
        if not category:
            raise InvalidInputError("category is required", code="category_required")
        if not seller_uid:
            raise InvalidInputError("seller is required", code="seller_required")
        if _is_data_uri(image_url):
            raise InvalidInputError("image_url must be a URL, not a data URI", code="data_uri")

        async with atomic(self.db):
            item = await self.repo.create(
                title=title,
                description=description,
                price=price,
                category=category,
                image_url=image_url,
                seller_uid=seller_uid,
                status=ItemStatus.LISTED,
            )
        logger.info("item_created", item_id=item.id, seller_uid=seller_uid, price=price)

        self._schedule_estimate(item)
        return item

    def _schedule_estimate(self, item: Item) -> None:
        if self.estimator is None or self.dispatcher is None or self.session_maker is None:
            return
        if not item.image_url:
            return

        item_id, price = item.id, item.price
        title, description, image_url = item.title, item.description, item.image_url
        estimator = self.estimator
        session_maker = self.session_maker

        async def estimate_in_background() -> None:
            raw = await estimator.estimate(title, description, image_url)
            value = self._cap(raw, price)
            async with session_maker() as session:
                async with atomic(session):
                    stored = await ItemRepository(session).set_co2_if_unset(item_id, value)
            logger.info("co2_estimate_stored", item_id=item_id, raw=raw, value=value, stored=stored)

        self.dispatcher.submit(
            "estimate_co2",
            estimate_in_background,
            timeout=self.settings.estimation_timeout_seconds,
        )

    async def get(self, item_id: int) -> Item:
        item = await self.repo.get_by_id(item_id)
        if item is None:
            raise NotFoundError("item not found", code="item_not_found")
        return item

    async def list(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        category: Optional[str] = None,
        query: Optional[str] = None,
        seller_uid: Optional[str] = None,
    ) -> tuple[Sequence[Item], int]:
        """Browse items, newest first; returns the page and the total count."""
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            limit = DEFAULT_PAGE_SIZE
        offset = max(offset, 0)
        return await self.repo.search(
            limit=limit,
            offset=offset,
            category=(category or "").strip() or None,
            query=(query or "").strip() or None,
            seller_uid=(seller_uid or "").strip() or None,
        )

    async def list_by_seller(self, seller_uid: str) -> Sequence[Item]:
        if not seller_uid:
            raise InvalidInputError("seller is required", code="seller_required")
        items, _ = await self.repo.search(limit=1000, seller_uid=seller_uid)
        return items

    async def _get_owned(self, item_id: int, seller_uid: str) -> Item:
        if not seller_uid:
            raise InvalidInputError("seller is required", code="seller_required")
        item = await self.get(item_id)
        if item.seller_uid != seller_uid:
            raise ForbiddenError("not the owner of this item")
        return item

    async def update_owned(
        self,
        item_id: int,
        seller_uid: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        price: Optional[int] = None,
        category: Optional[str] = None,
        image_url: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Item:
        """
        Apply an owner's edit.

        Status may only be set to listed or paused, and nothing can be edited
        while a purchase holds the item or after it sold. Changing the text or
        the photo clears the CO2 estimate.
        """
        item = await self._get_owned(item_id, seller_uid)
        if _is_data_uri(image_url):
            raise InvalidInputError("image_url must be a URL, not a data URI", code="data_uri")

        values: dict = {}
        if status:
            try:
                new_status = ItemStatus(status)
            except ValueError:
                raise InvalidInputError("invalid status", code="invalid_status")
            if new_status not in OWNER_SETTABLE_STATUSES:
                raise InvalidInputError("invalid status", code="invalid_status")
            values["status"] = new_status
        if title:
            values["title"] = self._validate_title(title)
        if description and description.strip():
            values["description"] = description.strip()
        if price:
            values["price"] = self._validate_price(price)
        if category and category.strip():
            values["category"] = category.strip()
        if image_url is not None:
            values["image_url"] = image_url
        if "title" in values or "description" in values or "image_url" in values:
            values["co2_kg"] = None
        if not values:
            raise InvalidInputError("no fields to update", code="no_fields")

        if item.status in LOCKED_STATUSES:
            raise InvalidStateError("item is in a transaction or sold", code="item_locked")

        async with atomic(self.db):
            updated = await self.repo.update_editable(item_id, seller_uid, **values)
        if not updated:
            raise InvalidStateError("item is in a transaction or sold", code="item_locked")

        logger.info("item_updated", item_id=item_id, fields=sorted(values))
        await self.db.refresh(item)
        return item

    async def delete_owned(self, item_id: int, seller_uid: str) -> None:
        item = await self._get_owned(item_id, seller_uid)
        if item.status == ItemStatus.IN_TRANSACTION:
            raise InvalidStateError("item is in a transaction", code="item_in_transaction")
        if item.status == ItemStatus.SOLD:
            # the delivered purchase keeps referencing it
            raise InvalidStateError("item is sold", code="item_sold")
        async with atomic(self.db):
            deleted = await self.repo.delete_unclaimed(item_id, seller_uid)
        if not deleted:
            raise InvalidStateError("item was claimed", code="item_unavailable")
        self.db.expunge(item)
        logger.info("item_deleted", item_id=item_id)

    async def estimate_co2(self, item_id: int, seller_uid: str) -> float:
        """
        Estimate, cap and persist the item's CO2 savings on the owner's request.

        Raises:
            InsufficientDataError: The item has no photo or no estimator is configured
            EstimationTimeoutError: The estimator took too long
        """
        item = await self._get_owned(item_id, seller_uid)
        if self.estimator is None:
            raise InsufficientDataError("co2 estimator not configured", code="estimator_unavailable")
        if not item.image_url:
            raise InsufficientDataError("item has no image", code="image_required")

        try:
            raw = await asyncio.wait_for(
                self.estimator.estimate(item.title, item.description, item.image_url),
                timeout=self.settings.estimation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("co2_estimate_timeout", item_id=item_id)
            raise EstimationTimeoutError("co2 estimation timed out")

        value = self._cap(raw, item.price)
        if value != raw:
            logger.info("co2_estimate_capped", item_id=item_id, raw=raw, cap=value)

        async with atomic(self.db):
            await self.repo.set_co2(item_id, value)
        await self.db.refresh(item)
        logger.info("co2_estimate_stored", item_id=item_id, value=value)
        return value
