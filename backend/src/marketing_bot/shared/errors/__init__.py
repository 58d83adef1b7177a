"""Global exception handlers — map domain and provider errors to HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from marketing_bot.domain.exceptions import (
    DomainError,
    MessagingError,
    ValidationError,
)
from marketing_bot.shared.providers.errors import (
    NoProvidersConfiguredError,
    PoolExhaustedError,
)

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all error→HTTP exception mappings."""

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=422,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(MessagingError)
    async def handle_messaging(request: Request, exc: MessagingError) -> ORJSONResponse:
        logger.error("messaging_error_http", message=exc.message)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(PoolExhaustedError)
    async def handle_pool_exhausted(
        request: Request, exc: PoolExhaustedError
    ) -> ORJSONResponse:
        logger.error("pool_exhausted_http", last_error=exc.last_error, attempts=exc.attempts)
        return ORJSONResponse(
            status_code=503,
            content={"code": "MODELS_UNAVAILABLE", "message": str(exc)},
        )

    @app.exception_handler(NoProvidersConfiguredError)
    async def handle_no_providers(
        request: Request, exc: NoProvidersConfiguredError
    ) -> ORJSONResponse:
        logger.critical("no_providers_configured_http")
        return ORJSONResponse(
            status_code=503,
            content={"code": "NO_PROVIDERS_CONFIGURED", "message": str(exc)},
        )

    @app.exception_handler(DomainError)
    async def handle_domain(request: Request, exc: DomainError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return ORJSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
