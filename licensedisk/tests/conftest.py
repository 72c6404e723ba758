"""
Pytest configuration and fixtures.

Provides shared fixtures for testing including:
- In-memory database sessions
- Scan repository and operator
- Async API client bound to the test session
"""

import os

# Settings are read on first use; set them before the app is imported.
os.environ.setdefault("API_KEY", "test-api-key-123")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "10000")
os.environ.setdefault("LOG_FORMAT", "text")

from datetime import datetime
from typing import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from licensedisk.core.security import Operator
from licensedisk.domain.models import NewVehicleScan, VehicleScan
from licensedisk.infrastructure.db.models import Base
from licensedisk.infrastructure.db.repository import SqlScanRepository
from licensedisk.infrastructure.db.session import create_test_engine, get_session

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_API_KEY = os.environ["API_KEY"]
BUSINESS_ID = "biz-001"
OTHER_BUSINESS_ID = "biz-002"


@pytest.fixture(scope="function")
async def db_session() -> AsyncIterator[AsyncSession]:
    """Create a test database session."""
    engine = create_test_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def repository(db_session: AsyncSession) -> SqlScanRepository:
    """Create scan repository bound to the test session."""
    return SqlScanRepository(db_session)


@pytest.fixture
def operator() -> Operator:
    """Operator scanning for the primary test business."""
    return Operator(business_id=BUSINESS_ID, user_id="user-001", email="guard@example.com")


@pytest.fixture
def save_scan(repository: SqlScanRepository):
    """Factory that stores a scan directly through the repository."""

    async def _save(
        license_number: str = "ABC123GP",
        business_id: str = BUSINESS_ID,
        scanned_by: str = "user-001",
        scanned_at: datetime | None = None,
        **fields,
    ) -> VehicleScan:
        data = NewVehicleScan(
            license_number=license_number,
            scanned_by=scanned_by,
            scanned_by_email=f"{scanned_by}@example.com",
            scanned_at=scanned_at,
            **fields,
        )
        return await repository.create_scan(data, business_id)

    return _save


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Create async test client sharing the test database session."""
    from licensedisk.main import create_app

    app = create_app()

    async def override_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = override_session

    headers = {
        "X-API-Key": TEST_API_KEY,
        "X-Business-ID": BUSINESS_ID,
        "X-User-ID": "user-001",
        "X-User-Email": "guard@example.com",
    }
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=headers,
    ) as client:
        yield client
