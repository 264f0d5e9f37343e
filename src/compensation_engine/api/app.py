"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from compensation_engine import __version__
from compensation_engine.api.routes import (
    assessments_router,
    directory_router,
    health_router,
    periods_router,
    statements_router,
)
from compensation_engine.config import Settings, get_settings
from compensation_engine.database import init_db
from compensation_engine.errors import (
    ConflictError,
    EngineError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamDegradedError,
    ValidationError,
)
from compensation_engine.services.delivery import DeliveryChannel
from compensation_engine.services.generation_service import KeyedLock
from compensation_engine.sources.session_source import SessionSource

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    UpstreamDegradedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: EngineError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    if app.state.session_factory is None:
        _, app.state.session_factory = init_db()
    yield


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    session_source: SessionSource | None = None,
    channels: Sequence[DeliveryChannel] = (),
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Compensation Engine API",
        description="Staff compensation statements and quarterly bonus lifecycle",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.session_source = session_source
    app.state.channels = list(channels)
    app.state.settings = settings or get_settings()
    app.state.locks = KeyedLock()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
        """Map engine errors to HTTP status codes."""
        context = {k: v for k, v in exc.details.items() if v is not None}
        return JSONResponse(
            status_code=status_for(exc),
            content={"detail": exc.message, "code": exc.code, "context": context or None},
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
    app.include_router(assessments_router, prefix="/api/v1")
    app.include_router(statements_router, prefix="/api/v1")
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(directory_router, prefix="/api/v1")

    return app
