"""
SealedBallot Backend Application

Encrypted ballot casting with verifiable receipts and on-demand tallying.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.v1 import router as api_v1_router
from core.config import settings
from core.events import create_start_app_handler, create_stop_app_handler
from core.exceptions import BallotError, BallotRejected, RejectionReason
from core.middleware import REQUEST_ID_HEADER, RequestContextMiddleware, SecurityHeadersMiddleware

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES: dict[RejectionReason, int] = {
    RejectionReason.POLL_NOT_FOUND_OR_INACTIVE: status.HTTP_404_NOT_FOUND,
    RejectionReason.POLL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.RECEIPT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.OUTSIDE_VOTING_WINDOW: status.HTTP_400_BAD_REQUEST,
    RejectionReason.INVALID_OPTION: status.HTTP_400_BAD_REQUEST,
    RejectionReason.TOO_MANY_SELECTIONS: status.HTTP_400_BAD_REQUEST,
    RejectionReason.ALREADY_VOTED: status.HTTP_409_CONFLICT,
    RejectionReason.DUPLICATE_ACTIVE_BALLOT: status.HTTP_409_CONFLICT,
    RejectionReason.RECEIPT_COLLISION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    RejectionReason.CAST_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    await create_start_app_handler(app)()
    yield
    await create_stop_app_handler(app)()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.APP_NAME,
        description="Encrypted ballot casting with verifiable receipts",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - processed in reverse)
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestContextMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    application.add_middleware(GZipMiddleware, minimum_size=1000)

    application.include_router(api_v1_router, prefix="/api/v1")

    @application.exception_handler(BallotError)
    async def ballot_error_handler(request: Request, exc: BallotError) -> JSONResponse:
        """Map typed ballot failures to a stable reason code."""
        status_code = ERROR_STATUS_CODES.get(exc.reason, status.HTTP_400_BAD_REQUEST)
        if not isinstance(exc, BallotRejected) and status_code >= 500:
            logger.error("ballot_request_failed", code=exc.reason.value, path=request.url.path)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.reason.value},
        )

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch anything unhandled and answer without leaking internals."""
        logger.exception(
            "Unhandled exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An internal server error occurred. Please try again later.",
                "code": "internal_error",
            },
        )

    return application


app = create_application()


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "service": "sealedballot-api"}


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }
