"""
API dependencies for authentication and service wiring.
"""
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ecomarket.core.config import Settings
from ecomarket.db.session import get_db
from ecomarket.models.ledger import UserRevenue, UserTreePoints
from ecomarket.services.auth import decode_access_token
from ecomarket.services.conversations import ConversationService
from ecomarket.services.items import ItemService
from ecomarket.services.ledger import LedgerService
from ecomarket.services.notifications import NotificationService, Notifier
from ecomarket.services.purchases import PurchaseService

# Security scheme for JWT bearer tokens
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


SettingsDep = Annotated[Settings, Depends(get_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]


async def get_current_uid(
    settings: SettingsDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> str:
    """
    Get the caller's uid from the bearer token.

    Raises HTTPException 401 if the token is missing or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials, settings)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload.sub


async def get_optional_uid(
    settings: SettingsDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[str]:
    """Caller's uid if a valid token was sent, None otherwise."""
    if not credentials:
        return None
    payload = decode_access_token(credentials.credentials, settings)
    return payload.sub if payload else None


CurrentUid = Annotated[str, Depends(get_current_uid)]
OptionalUid = Annotated[Optional[str], Depends(get_optional_uid)]


def get_item_service(request: Request, db: DbSession, settings: SettingsDep) -> ItemService:
    return ItemService(
        db,
        settings,
        estimator=request.app.state.estimator,
        dispatcher=request.app.state.dispatcher,
        session_maker=request.app.state.session_maker,
    )


def get_purchase_service(db: DbSession, settings: SettingsDep, notifier: NotifierDep) -> PurchaseService:
    return PurchaseService(db, settings, notifier)


def get_conversation_service(
    db: DbSession,
    settings: SettingsDep,
    notifier: NotifierDep,
) -> ConversationService:
    return ConversationService(db, settings, notifier)


def get_notification_service(db: DbSession) -> NotificationService:
    return NotificationService(db)


def get_revenue_ledger(db: DbSession) -> LedgerService:
    return LedgerService(db, UserRevenue)


def get_tree_point_ledger(db: DbSession) -> LedgerService:
    return LedgerService(db, UserTreePoints)


ItemServiceDep = Annotated[ItemService, Depends(get_item_service)]
PurchaseServiceDep = Annotated[PurchaseService, Depends(get_purchase_service)]
ConversationServiceDep = Annotated[ConversationService, Depends(get_conversation_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
RevenueLedgerDep = Annotated[LedgerService, Depends(get_revenue_ledger)]
TreePointLedgerDep = Annotated[LedgerService, Depends(get_tree_point_ledger)]
