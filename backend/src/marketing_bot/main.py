"""FastAPI application entry-point.

Assembles routers, middleware, exception handlers, and lifecycle hooks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from marketing_bot import __version__
from marketing_bot.adapters.inbound.rest.routers import (
    analysis_router,
    chat_router,
    health_router,
    models_router,
)
from marketing_bot.config import Settings, get_settings
from marketing_bot.dependencies import shutdown
from marketing_bot.shared.errors import register_exception_handlers
from marketing_bot.shared.middleware import (
    LoggingMiddleware,
    MetricsMiddleware,
    RequestIdMiddleware,
)
from marketing_bot.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.is_production,
    )
    logger.info(
        "application_starting",
        env=settings.app_env.value,
        provider_priority=settings.provider_priority,
        max_attempts=settings.llm_max_attempts,
        cooldown_s=settings.llm_cooldown_seconds,
    )

    yield

    # Shutdown: close model and connector HTTP clients
    await shutdown()
    logger.info("application_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory — creates a fully configured FastAPI instance."""
    settings = settings or get_settings()

    app = FastAPI(
        title="WhatsApp Marketing Bot",
        description=(
            "AI replies for inbound WhatsApp messages, generated through a "
            "rotating pool of language-model providers with automatic failover."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Store settings in app state for lifecycle and dependency access
    app.state.settings = settings

    # ── Middleware (order matters: last added = outermost) ───
    allow_all_origins = "*" in settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if allow_all_origins else settings.cors_origins,
        allow_origin_regex=".*" if allow_all_origins else None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Exception handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── REST routers (versioned) ─────────────────────────────
    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(chat_router, prefix=api_v1)
    app.include_router(analysis_router, prefix=api_v1)
    app.include_router(models_router, prefix=api_v1)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "message": f"{settings.app_name} is running",
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    return app


def run() -> None:
    """Console entry-point: serve with uvicorn using configured host/port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "marketing_bot.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )
