# coffeevibes/main.py
# Application factory: wires the data-service clients, per-user sessions,
# request logging and error translation.

from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

# Local imports
from coffeevibes.core.config import settings
from coffeevibes.core.errors import (
    AlreadyFavoritedError,
    CoffeeVibesError,
    DataServiceError,
    NotFoundError,
)
from coffeevibes.api.routes import router as api_router
from coffeevibes.logging import configure_logging
from coffeevibes.middleware.logging import LoggingMiddleware
from coffeevibes.models.dto import ErrorResponse
from coffeevibes.services.data_service import DataServiceClient
from coffeevibes.services.profile_service import ProfileService
from coffeevibes.services.review_service import ReviewService
from coffeevibes.services.session_registry import SessionRegistry
from coffeevibes.services.shop_directory import ShopDirectoryClient
from coffeevibes.services.storage_service import StorageService

logger = logging.getLogger(__name__)


def error_status(exc: CoffeeVibesError) -> int:
    """HTTP status used to report a data-layer failure to the client."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, AlreadyFavoritedError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, DataServiceError) and exc.status_code is not None and 400 <= exc.status_code < 500:
        # Client-side problems (bad filter, expired key, RLS denial) pass through
        return exc.status_code
    return status.HTTP_502_BAD_GATEWAY


def create_app(
    data_service: Optional[DataServiceClient] = None,
    storage: Optional[StorageService] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Application startup: v{settings.VERSION}")
        service = data_service or DataServiceClient()
        store = storage or StorageService()

        app.state.data_service = service
        app.state.storage = store
        app.state.directory = ShopDirectoryClient(service)
        app.state.reviews = ReviewService(service)
        app.state.profiles = ProfileService(service, store)
        app.state.sessions = SessionRegistry(app.state.directory)
        logger.info(f"Data service configured at {settings.rest_url}")

        yield

        logger.info("Application shutdown: closing data service connections.")
        await service.aclose()
        await store.aclose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=settings.BRIEF_DESCRIPTION,
        lifespan=lifespan,
    )
    app.add_middleware(LoggingMiddleware)
    app.include_router(api_router, prefix="/api")

    @app.get("/health", status_code=status.HTTP_200_OK)
    async def health_check(request: Request):
        sessions = getattr(request.app.state, "sessions", None)
        return {
            "status": "ok",
            "version": settings.VERSION,
            "active_sessions": len(sessions) if sessions is not None else 0,
        }

    @app.exception_handler(CoffeeVibesError)
    async def coffeevibes_exception_handler(request: Request, exc: CoffeeVibesError):
        upstream_status = exc.status_code if isinstance(exc, DataServiceError) else None
        return JSONResponse(
            status_code=error_status(exc),
            content={
                "detail": ErrorResponse(
                    error=exc.error_code,
                    detail=exc.message,
                    status_code=upstream_status,
                ).model_dump()
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_id = str(uuid.uuid4())
        logger.error(f"Unhandled exception (ID: {error_id}): {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": {
                    "error": "INTERNAL_SERVER_ERROR",
                    "detail": "An unexpected error occurred. Please report this error ID.",
                    "error_id": error_id
                }
            }
        )

    return app


configure_logging()
app = create_app()
