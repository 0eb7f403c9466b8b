"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement_engine.api.routes import (
    health_router,
    pay_plans_router,
    payables_router,
    settlements_router,
)
from settlement_engine.calculators.holidays import holiday_calendar_named
from settlement_engine.config import get_settings
from settlement_engine.database import dispose_db, init_db
from settlement_engine.errors import (
    ReferenceNotFoundError,
    SettlementEngineError,
    StateConflictError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    # Unknown calendar names fail startup rather than every request
    holiday_calendar_named(settings.holiday_calendar)
    logger.info("Holiday calendar for pay dates: %s", settings.holiday_calendar)
    init_db()
    yield
    await dispose_db()


def error_status(exc: SettlementEngineError) -> int:
    """HTTP status for an engine error."""
    if isinstance(exc, ReferenceNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, StateConflictError):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Settlement Engine API",
        description="Pay period settlements for driver and carrier pay",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(get_settings().cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(SettlementEngineError)
    async def engine_exception_handler(
        request: Request, exc: SettlementEngineError
    ) -> JSONResponse:
        """Map engine errors to 400 / 404 / 409 bodies."""
        return JSONResponse(
            status_code=error_status(exc),
            content={
                "detail": str(exc),
                "code": exc.code,
                "context": exc.context() or None,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(pay_plans_router, prefix="/api/v1")
    app.include_router(settlements_router, prefix="/api/v1")
    app.include_router(payables_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
