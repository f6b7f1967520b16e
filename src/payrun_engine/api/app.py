"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payrun_engine.api.routes import (
    adjustments_router,
    closed_periods_router,
    compensation_router,
    health_router,
    pay_periods_router,
    pay_runs_router,
)
from payrun_engine.config import get_settings
from payrun_engine.database import dispose_db, init_db
from payrun_engine.errors import (
    EmptySelectionError,
    ExternalServiceError,
    ImmutableRunError,
    NotFoundError,
    NotManualItemError,
    PayrollError,
    ValidationError,
)
from payrun_engine.populators.base import PayRunItemPopulator, SourceReconciler
from payrun_engine.populators.stub import StubPopulator, StubReconciler
from payrun_engine.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

# Most specific first; the first match wins
ERROR_STATUS_CODES: list[tuple[type[PayrollError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (EmptySelectionError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ImmutableRunError, status.HTTP_409_CONFLICT),
    (NotManualItemError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


def status_code_for(exc: PayrollError) -> int:
    """HTTP status for an engine error."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app(
    populator: PayRunItemPopulator | None = None,
    reconciler: SourceReconciler | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without explicit adapters the in-process stubs are used, which is only
    suitable for local development.
    """
    settings = get_settings()
    app = FastAPI(
        title="Pay-Run Engine API",
        description="Pay periods, pay runs, adjustments, summaries and payments",
        version=settings.engine_version,
        lifespan=lifespan,
    )
    if populator is None:
        logger.warning("No populator configured; pay runs will be filled by an empty stub")
        populator = StubPopulator()
    if reconciler is None:
        logger.warning("No reconciler configured; source records will only be marked in memory")
        reconciler = StubReconciler()
    app.state.populator = populator
    app.state.reconciler = reconciler

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map engine errors to HTTP responses."""
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code, "context": exc.context},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
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
    app.include_router(pay_periods_router, prefix="/api/v1")
    app.include_router(pay_runs_router, prefix="/api/v1")
    app.include_router(adjustments_router, prefix="/api/v1")
    app.include_router(compensation_router, prefix="/api/v1")
    app.include_router(closed_periods_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
