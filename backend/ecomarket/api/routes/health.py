"""
Health check endpoints.
"""
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request
from sqlalchemy import text

from ecomarket.api.deps import DbSession

router = APIRouter()
logger = structlog.get_logger()


@router.get("/health")
async def health_check(request: Request, db: DbSession):
    """
    Health check endpoint.

    Returns service status, database connectivity and side-effect queue state.
    """
    db_ok = False
    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.warning("Health check: database connection failed", error=str(e))

    dispatcher = request.app.state.dispatcher
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            "database": "ok" if db_ok else "error",
            "side_effects": "ok" if dispatcher.running else "stopped",
        },
    }
