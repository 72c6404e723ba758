"""
HTTP entry point for the license disk service.

``create_app`` wires the scan routes, request correlation, repository
error mapping and the /health and /ready checks. ``run`` starts uvicorn
with the configured bind address.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from licensedisk.api import api_router
from licensedisk.core.config import get_settings
from licensedisk.core.logging import (
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)
from licensedisk.infrastructure.db.cache import QueryCache
from licensedisk.infrastructure.db.repository import RepositoryError
from licensedisk.infrastructure.db.session import close_db, init_db, ping_db

setup_logging()
logger = get_logger(__name__)

REPOSITORY_ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "missing_business_id": status.HTTP_400_BAD_REQUEST,
    "invalid_field": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_license_number": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "database_error": status.HTTP_503_SERVICE_UNAVAILABLE,
}


class HealthResponse(BaseModel):
    """Liveness payload."""

    status: str
    version: str = "1.0.0"


class ReadinessResponse(BaseModel):
    """Readiness payload; database_connected mirrors the ping result."""

    status: str
    database_connected: bool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the scan table on startup and release the pool on shutdown."""
    try:
        await init_db()
    except Exception as e:
        logger.error("scan_store_init_failed", error=str(e))
        raise
    logger.info("license_disk_service_started")

    yield

    await close_db()
    logger.info("license_disk_service_stopped")


def create_app() -> FastAPI:
    """Build a fresh application; tests call this to get isolated state."""
    settings = get_settings()

    app = FastAPI(
        title="License Disk Scanner",
        description="Scanning, parsing and record keeping for South African vehicle license disks",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Read cache shared by all requests of this application
    app.state.query_cache = (
        QueryCache(ttl_seconds=settings.cache_ttl_seconds) if settings.cache_enabled else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Reuse the caller X-Correlation-ID or mint one, and echo it back."""
        set_correlation_id(request.headers.get("X-Correlation-ID"))

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = get_correlation_id()
        return response

    @app.exception_handler(RepositoryError)
    async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
        """Map structured repository rejections to HTTP responses."""
        status_code = REPOSITORY_ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        log = logger.error if status_code >= 500 else logger.info
        log("repository_error", code=exc.code, path=request.url.path)
        return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
    )
    async def health_check() -> HealthResponse:
        """Report that the process is up."""
        return HealthResponse(status="healthy")

    @app.get(
        "/ready",
        response_model=ReadinessResponse,
        tags=["health"],
    )
    async def readiness_check() -> ReadinessResponse:
        """Answers 503 until the scan store responds to a ping."""
        database_connected = True
        try:
            await ping_db()
        except Exception as e:
            logger.warning("readiness_database_unreachable", error=str(e))
            database_connected = False

        readiness = ReadinessResponse(
            status="ready" if database_connected else "not_ready",
            database_connected=database_connected,
        )
        if database_connected:
            return readiness
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=readiness.model_dump(),
        )

    app.include_router(api_router)

    return app


app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "licensedisk.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
