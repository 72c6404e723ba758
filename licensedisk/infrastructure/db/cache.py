"""
Short-lived read cache for scan queries.

Repeated list, detail and statistics reads for the same business are
served from memory for a few minutes. A committed write for a business
drops every cached entry of that business. Duplicate lookups always go
to the database.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from licensedisk.core.logging import get_logger
from licensedisk.domain.models import (
    DuplicateMatch,
    NewVehicleScan,
    ScanFilters,
    ScanStatistics,
    VehicleScan,
)
from licensedisk.infrastructure.db.repository import (
    DEFAULT_PAGE_SIZE,
    ScanRepository,
    require_business_id,
)

logger = get_logger(__name__)

CacheKey = tuple[str, str, str]


@dataclass
class QueryCache:
    """
    Time-window cache keyed by (resource, business_id, query shape).

    Example:
        cache = QueryCache(ttl_seconds=300)
        key = ("scans", "biz-1", "limit=50")
        if (hit := cache.get(key)) is not None:
            return hit
        cache.set(key, rows)
    """

    ttl_seconds: float = 300
    clock: Callable[[], float] = time.time
    _entries: dict[CacheKey, tuple[float, Any]] = field(default_factory=dict)

    def get(self, key: CacheKey) -> Any:
        """
        Get a cached value.

        Args:
            key: Cache key.

        Returns:
            The cached value, or None if absent or expired.
        """
        self._cleanup_expired()

        entry = self._entries.get(key)
        if entry is None:
            return None

        _, value = entry
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        """Store a value for the configured time window."""
        self._entries[key] = (self.clock(), value)

    def invalidate_business(self, business_id: str) -> int:
        """
        Drop every entry of a business.

        Returns:
            int: Number of entries removed.
        """
        keys = [key for key in self._entries if key[1] == business_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._cleanup_expired()
        return len(self._entries)

    def _cleanup_expired(self) -> None:
        """Remove expired entries from cache."""
        cutoff = self.clock() - self.ttl_seconds

        expired_keys = [
            key for key, (stored_at, _) in self._entries.items()
            if stored_at <= cutoff
        ]

        for key in expired_keys:
            del self._entries[key]

class CachedScanRepository(ScanRepository):
    """
    Scan repository that serves reads from a QueryCache.

    A successful write drops the business's entries at once and again
    when its transaction commits, since a concurrent reader may have
    cached the pre-commit state in between. Until then the business is
    pending: its reads bypass the cache, so nothing seen inside an
    uncommitted transaction is ever stored. Failed writes leave the
    cache untouched.

    Callers hand back instances they may freely mutate; cached entries
    are copies.
    """

    def __init__(self, inner: ScanRepository, cache: QueryCache):
        self._inner = inner
        self._cache = cache
        self._pending: set[str] = set()

    async def create_scan(self, data: NewVehicleScan, business_id: str) -> VehicleScan:
        scan = await self._inner.create_scan(data, business_id)
        self._written(business_id)
        return scan

    async def get_scans(
        self,
        business_id: str,
        filters: ScanFilters | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[VehicleScan]:
        business_id = require_business_id(business_id)
        if business_id in self._pending:
            return await self._inner.get_scans(business_id, filters, limit, offset)

        shape = f"{(filters or ScanFilters()).cache_shape()}&limit={limit}&offset={offset}"
        key = ("scans", business_id, shape)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("scan_cache_hit", resource="scans", business_id=business_id)
            return [replace(scan) for scan in cached]

        scans = await self._inner.get_scans(business_id, filters, limit, offset)
        self._cache.set(key, [replace(scan) for scan in scans])
        return scans

    async def get_scan_by_id(self, scan_id: str, business_id: str) -> VehicleScan | None:
        business_id = require_business_id(business_id)
        if business_id in self._pending:
            return await self._inner.get_scan_by_id(scan_id, business_id)

        key = ("scan", business_id, scan_id)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("scan_cache_hit", resource="scan", business_id=business_id)
            return replace(cached)

        scan = await self._inner.get_scan_by_id(scan_id, business_id)
        if scan is not None:
            self._cache.set(key, replace(scan))
        return scan

    async def get_scan_statistics(
        self,
        business_id: str,
        now: datetime | None = None,
    ) -> ScanStatistics:
        business_id = require_business_id(business_id)

        # Explicit reference times are reporting queries, not cacheable.
        if now is not None or business_id in self._pending:
            return await self._inner.get_scan_statistics(business_id, now)

        key = ("statistics", business_id, "")
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("scan_cache_hit", resource="statistics", business_id=business_id)
            return replace(cached)

        stats = await self._inner.get_scan_statistics(business_id)
        self._cache.set(key, replace(stats))
        return stats

    async def find_scans_by_license(
        self,
        license_number: str,
        business_id: str,
        exclude_scan_id: str | None = None,
    ) -> list[DuplicateMatch]:
        return await self._inner.find_scans_by_license(license_number, business_id, exclude_scan_id)

    async def update_scan(
        self,
        scan_id: str,
        business_id: str,
        updates: dict[str, Any],
    ) -> VehicleScan:
        scan = await self._inner.update_scan(scan_id, business_id, updates)
        self._written(business_id)
        return scan

    async def verify_scan(self, scan_id: str, business_id: str, verified_by: str) -> VehicleScan:
        scan = await self._inner.verify_scan(scan_id, business_id, verified_by)
        self._written(business_id)
        return scan

    async def delete_scan(self, scan_id: str, business_id: str) -> None:
        await self._inner.delete_scan(scan_id, business_id)
        self._written(business_id)

    def on_commit(self, session: Session | None = None) -> None:
        """Drop entries of every business written in the committed transaction."""
        pending, self._pending = self._pending, set()
        for business_id in pending:
            self._invalidate(business_id)

    def on_rollback(self, session: Session | None = None) -> None:
        self._pending.clear()

    def _written(self, business_id: str) -> None:
        business_id = business_id.strip()
        self._pending.add(business_id)
        self._invalidate(business_id)

    def _invalidate(self, business_id: str) -> None:
        removed = self._cache.invalidate_business(business_id)
        if removed:
            logger.debug("scan_cache_invalidated", business_id=business_id, entries=removed)


def invalidate_on_commit(repository: CachedScanRepository, session: AsyncSession) -> None:
    """Tie a cached repository's pending invalidations to the session's transactions."""
    event.listen(session.sync_session, "after_commit", repository.on_commit)
    event.listen(session.sync_session, "after_rollback", repository.on_rollback)
