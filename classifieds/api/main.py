"""FastAPI application entry point."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classifieds.api.container import ServiceContainer
from classifieds.api.error_handlers import setup_error_handlers
from classifieds.api.routes import admin, health, listings, notifications, users
from classifieds.config import settings
from classifieds.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def create_app(
    container: ServiceContainer | None = None,
    *,
    start_scheduler: bool = settings.sweep_scheduler_enabled,
) -> FastAPI:
    """Build the app. A preset container is used as-is and left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owned = container is None
        services = container or ServiceContainer.build()
        app.state.container = services
        if owned:
            await services.prepare()
        if start_scheduler:
            services.scheduler.start()
        logger.info("classifieds_starting", scheduler=start_scheduler)
        yield
        logger.info("classifieds_stopping")
        services.scheduler.stop()
        if owned:
            await services.aclose()

    setup_logging(settings)

    app = FastAPI(
        title="Classifieds",
        description="Listing lifecycle and moderation service.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if container is not None:
        # Available even when the client does not run the lifespan.
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_error_handlers(app)

    app.include_router(health.router)
    app.include_router(listings.router)
    app.include_router(admin.router)
    app.include_router(notifications.router)
    app.include_router(users.router)

    return app


app = create_app()
