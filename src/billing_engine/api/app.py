"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing_engine import __version__
from billing_engine.api.routes import (
    analytics_router,
    billing_periods_router,
    charges_router,
    exports_router,
    health_router,
)
from billing_engine.database import dispose_db, init_db
from billing_engine.errors import (
    AlreadyExportedError,
    BillingError,
    CapacityOrSourceMissingError,
    LockedPeriodError,
    NotFoundError,
    OverlapError,
    PartialGenerationError,
    PeriodBusyError,
    ValidationError,
)
from billing_engine.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[Exception], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    CapacityOrSourceMissingError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    OverlapError: status.HTTP_409_CONFLICT,
    AlreadyExportedError: status.HTTP_409_CONFLICT,
    PeriodBusyError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    LockedPeriodError: status.HTTP_423_LOCKED,
    PartialGenerationError: status.HTTP_207_MULTI_STATUS,
}


def status_for(exc: Exception) -> int:
    """HTTP status for a billing error, most specific class first."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Billing Engine API",
        description="Staff housing and transport billing periods",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(BillingError)
    @app.exception_handler(InvalidTransitionError)
    async def billing_exception_handler(
        request: Request, exc: BillingError | InvalidTransitionError
    ) -> JSONResponse:
        """Translate domain errors into JSON error responses."""
        code = status_for(exc)
        if code >= status.HTTP_409_CONFLICT or code == status.HTTP_207_MULTI_STATUS:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content=exc.to_dict())

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
    app.include_router(billing_periods_router, prefix="/api/v1")
    app.include_router(charges_router, prefix="/api/v1")
    app.include_router(exports_router, prefix="/api/v1")
    app.include_router(analytics_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
