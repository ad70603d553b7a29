"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecomarket.api import api_router
from ecomarket.api.errors import register_error_handlers
from ecomarket.core.config import Settings, get_settings
from ecomarket.core.logging import setup_logging
from ecomarket.core.side_effects import SideEffectDispatcher
from ecomarket.db.session import create_engine_from_settings, create_session_maker
from ecomarket.middleware.request_id import RequestIdMiddleware
from ecomarket.services.estimation.base import EstimationClient
from ecomarket.services.estimation.factory import get_estimation_client
from ecomarket.services.notifications import Notifier

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    estimator: Optional[EstimationClient] = None,
) -> FastAPI:
    """
    Build the application.

    The engine, session factory, side-effect dispatcher and notifier are
    created here and kept on app.state; the dispatcher's workers start and
    stop with the application lifespan.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    engine = create_engine_from_settings(settings)
    session_maker = create_session_maker(engine)
    dispatcher = SideEffectDispatcher(
        workers=settings.side_effect_workers,
        max_queue=settings.side_effect_queue_size,
        default_timeout=settings.notify_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting EcoMarket API", debug=settings.api_debug)
        await dispatcher.start()

        yield

        logger.info("Shutting down EcoMarket API")
        await dispatcher.stop()
        await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="EcoMarket - second-hand marketplace purchases, conversations and rewards",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.dispatcher = dispatcher
    app.state.notifier = Notifier(dispatcher, session_maker, timeout=settings.notify_timeout_seconds)
    app.state.estimator = estimator or get_estimation_client(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    register_error_handlers(app)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    app.include_router(api_router, prefix="/api")
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
    )
