"""
API module for FastAPI routes.
"""
from fastapi import APIRouter

from ecomarket.api.routes import (
    conversations,
    health,
    items,
    ledger,
    notifications,
    purchases,
)

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(items.router, prefix="/items", tags=["Items"])
api_router.include_router(purchases.router, tags=["Purchases"])
api_router.include_router(conversations.router, tags=["Conversations"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(ledger.router, prefix="/me", tags=["Ledger"])
