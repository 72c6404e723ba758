"""Infrastructure layer package."""

from licensedisk.infrastructure.db import (
    CachedScanRepository,
    QueryCache,
    RepositoryError,
    ScanRepository,
    SqlScanRepository,
    close_db,
    get_session,
    init_db,
    ping_db,
)

__all__ = [
    "get_session",
    "init_db",
    "close_db",
    "ping_db",
    "RepositoryError",
    "ScanRepository",
    "SqlScanRepository",
    "CachedScanRepository",
    "QueryCache",
]
