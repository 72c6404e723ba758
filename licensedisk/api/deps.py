"""
FastAPI dependencies for dependency injection.

Provides database sessions, the scan repository, services, and
authentication dependencies for route handlers.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from licensedisk.application.scan_service import VehicleScanService
from licensedisk.core.security import Operator, check_rate_limit, resolve_operator, verify_api_key
from licensedisk.infrastructure.db.cache import CachedScanRepository, QueryCache, invalidate_on_commit
from licensedisk.infrastructure.db.repository import ScanRepository, SqlScanRepository
from licensedisk.infrastructure.db.session import get_session


# Type aliases for cleaner route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
ApiKeyAuth = Annotated[None, Depends(verify_api_key)]
RateLimited = Annotated[None, Depends(check_rate_limit)]
CurrentOperator = Annotated[Operator, Depends(resolve_operator)]


async def get_scan_repository(request: Request, session: Session) -> ScanRepository:
    """
    Dependency to get the scan repository for this request.

    Reads go through the application's query cache when one is configured.
    Writes invalidate the business again once the session commits.

    Args:
        request: The incoming HTTP request.
        session: Database session.

    Returns:
        ScanRepository: Repository bound to the request session.
    """
    repository: ScanRepository = SqlScanRepository(session)
    cache: QueryCache | None = getattr(request.app.state, "query_cache", None)
    if cache is not None:
        cached = CachedScanRepository(repository, cache)
        invalidate_on_commit(cached, session)
        repository = cached
    return repository


Repository = Annotated[ScanRepository, Depends(get_scan_repository)]


async def get_scan_service(
    repository: Repository,
    operator: CurrentOperator,
) -> VehicleScanService:
    """
    Dependency to get the scan management service.

    Returns:
        VehicleScanService: Service scoped to the operator's business.
    """
    return VehicleScanService(repository, operator)


ScanSvc = Annotated[VehicleScanService, Depends(get_scan_service)]
