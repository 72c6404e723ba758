"""Database infrastructure package."""

from licensedisk.infrastructure.db.cache import (
    CachedScanRepository,
    QueryCache,
    invalidate_on_commit,
)
from licensedisk.infrastructure.db.models import Base, VehicleScanDB
from licensedisk.infrastructure.db.repository import (
    RepositoryError,
    ScanRepository,
    SqlScanRepository,
)
from licensedisk.infrastructure.db.session import (
    close_db,
    get_session,
    init_db,
    ping_db,
)

__all__ = [
    # Models
    "Base",
    "VehicleScanDB",
    # Repositories
    "RepositoryError",
    "ScanRepository",
    "SqlScanRepository",
    "CachedScanRepository",
    "QueryCache",
    "invalidate_on_commit",
    # Session
    "get_session",
    "init_db",
    "close_db",
    "ping_db",
]
