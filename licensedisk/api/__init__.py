"""API routes package."""

from fastapi import APIRouter

from licensedisk.api.routes import scans

# Main API router
api_router = APIRouter(prefix="/api/v1")

# Include route modules
api_router.include_router(scans.router)
