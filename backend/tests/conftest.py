"""
Pytest configuration and fixtures.

Provides fixtures for:
- A file-backed SQLite database per test (several sessions can share it)
- A running side-effect dispatcher and notifier
- Services bound to the test session
- Item factories and an HTTP client with bearer-token auth
"""
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ecomarket.core.config import Settings
from ecomarket.core.side_effects import SideEffectDispatcher
from ecomarket.db.base import Base
from ecomarket.db.session import create_engine_from_settings, create_session_maker
from ecomarket.main import create_app
from ecomarket.models import Item, ItemStatus, UserTreePoints
from ecomarket.services.auth import create_access_token
from ecomarket.services.conversations import ConversationService
from ecomarket.services.estimation.mock_client import MockEstimationClient
from ecomarket.services.notifications import NotificationService, Notifier
from ecomarket.services.purchases import PurchaseService

SELLER = "seller-uid"
BUYER = "buyer-uid"
OTHER_BUYER = "other-buyer-uid"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a fresh SQLite file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ecomarket.db'}",
        api_debug=False,
        secret_key="test-secret-key",
        estimation_provider="mock",
        notify_timeout_seconds=2.0,
        estimation_timeout_seconds=1.0,
    )


@pytest_asyncio.fixture
async def test_engine(settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine and schema."""
    engine = create_engine_from_settings(settings)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(test_engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def dispatcher() -> AsyncGenerator[SideEffectDispatcher, None]:
    dispatcher = SideEffectDispatcher(workers=2, max_queue=100, default_timeout=2.0)
    await dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def notifier(dispatcher, session_maker) -> Notifier:
    return Notifier(dispatcher, session_maker, timeout=2.0)


@pytest.fixture
def purchase_service(db_session, settings, notifier) -> PurchaseService:
    return PurchaseService(db_session, settings, notifier)


@pytest.fixture
def conversation_service(db_session, settings, notifier) -> ConversationService:
    return ConversationService(db_session, settings, notifier)


@pytest.fixture
def notification_service(db_session) -> NotificationService:
    return NotificationService(db_session)


@pytest.fixture
def make_item(db_session):
    """Factory inserting an item directly."""

    async def _make_item(
        seller_uid: str = SELLER,
        price: int = 5000,
        status: ItemStatus = ItemStatus.LISTED,
        co2_kg: Optional[float] = None,
        image_url: Optional[str] = None,
        title: str = "Wool coat",
    ) -> Item:
        item = Item(
            title=title,
            description="Lightly worn, size M",
            price=price,
            category="fashion",
            image_url=image_url,
            seller_uid=seller_uid,
            status=status,
            co2_kg=co2_kg,
        )
        db_session.add(item)
        await db_session.commit()
        return item

    return _make_item


@pytest.fixture
def give_tree_points(db_session):
    """Seed a user's tree point balance."""

    async def _give(uid: str, amount: float) -> None:
        db_session.add(UserTreePoints(uid=uid, total=amount, balance=amount))
        await db_session.commit()

    return _give


@pytest.fixture
def estimator() -> MockEstimationClient:
    return MockEstimationClient(value=3.0)


@pytest_asyncio.fixture
async def app(settings, test_engine, estimator):
    """Application wired to the test database with its dispatcher running."""
    application = create_app(settings, estimator=estimator)
    await application.state.dispatcher.start()
    yield application
    await application.state.dispatcher.stop()
    await application.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(settings):
    """Bearer headers for a uid."""

    def _headers(uid: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(uid, settings)}"}

    return _headers
