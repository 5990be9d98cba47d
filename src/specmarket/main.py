"""FastAPI application factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from specmarket.admin.router import router as admin_router
from specmarket.auth.router import router as auth_router
from specmarket.catalog.me_router import router as me_router
from specmarket.catalog.router import router as catalog_router
from specmarket.chat.router import router as chat_router
from specmarket.config import get_settings
from specmarket.database import close_db, get_session_factory, init_db
from specmarket.health.router import router as health_router
from specmarket.matching.router import applications_router, requests_router
from specmarket.middleware import setup_middleware
from specmarket.realtime.bridge import PubSubBridge
from specmarket.realtime.manager import manager
from specmarket.realtime.router import router as ws_router
from specmarket.redis_client import close_redis, get_optional_redis, init_redis
from specmarket.seed import seed_reference_data
from specmarket.uploads.router import router as uploads_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)

    # Categories and the admin account (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_reference_data(db, settings)
    except SQLAlchemyError:
        logger.warning("seeding_failed", exc_info=True)

    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    manager.max_connections_per_user = settings.ws_max_connections_per_user

    # Redis pub/sub -> WebSocket bridge, only when Redis is configured
    bridge: PubSubBridge | None = None
    bridge_task: asyncio.Task | None = None
    redis = get_optional_redis()
    if redis is not None:
        bridge = PubSubBridge(redis)
        bridge_task = asyncio.create_task(bridge.start())

    yield

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        try:
            await bridge_task
        except asyncio.CancelledError:
            pass

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Specialist Marketplace API",
        description="Backend API for a marketplace connecting clients with wellness specialists",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(catalog_router)
    app.include_router(me_router)
    app.include_router(requests_router)
    app.include_router(applications_router)
    app.include_router(chat_router)
    app.include_router(admin_router)
    app.include_router(uploads_router)
    app.include_router(ws_router)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

    return app


app = create_app()
