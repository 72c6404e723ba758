"""
Scan management service.

Handles listing, editing, verification and removal of saved scans
for the scan history screens.
"""

from typing import Any

from licensedisk.application.duplicate_detector import DuplicateDetector
from licensedisk.core.logging import get_logger
from licensedisk.core.security import Operator
from licensedisk.domain.models import (
    DuplicateMatch,
    ScanFilters,
    ScanStatistics,
    VehicleScan,
)
from licensedisk.infrastructure.db.repository import (
    DEFAULT_PAGE_SIZE,
    RepositoryError,
    ScanRepository,
)

logger = get_logger(__name__)


class VehicleScanService:
    """
    Service for managing saved scans of one business.

    Example:
        service = VehicleScanService(repository, operator)
        scans = await service.list_scans(ScanFilters(make="toyota"))
        await service.verify(scans[0].id)
    """

    def __init__(self, repository: ScanRepository, operator: Operator):
        """
        Initialize scan service.

        Args:
            repository: Scan store.
            operator: Who is acting, and for which business.
        """
        self._repository = repository
        self._operator = operator
        self._detector = DuplicateDetector(repository)

    @property
    def business_id(self) -> str:
        return self._operator.business_id

    async def list_scans(
        self,
        filters: ScanFilters | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[VehicleScan]:
        """
        Get scans of the business, newest first.

        Args:
            filters: Optional filters.
            limit: Maximum scans to return.
            offset: Pagination offset.

        Returns:
            list: Matching scans.
        """
        return await self._repository.get_scans(self.business_id, filters, limit, offset)

    async def get_scan(self, scan_id: str) -> VehicleScan:
        """
        Get one scan.

        Raises:
            RepositoryError: If the scan does not exist in this business.
        """
        scan = await self._repository.get_scan_by_id(scan_id, self.business_id)
        if scan is None:
            raise RepositoryError("not_found", f"Vehicle scan {scan_id} not found")
        return scan

    async def get_statistics(self) -> ScanStatistics:
        return await self._repository.get_scan_statistics(self.business_id)

    async def check_duplicates(
        self,
        license_number: str,
        exclude_scan_id: str | None = None,
    ) -> list[DuplicateMatch]:
        return await self._detector.check_duplicate_license(
            license_number,
            self.business_id,
            exclude_scan_id=exclude_scan_id,
        )

    async def update(self, scan_id: str, updates: dict[str, Any]) -> VehicleScan:
        """
        Edit a scan.

        Args:
            scan_id: Scan to edit.
            updates: Field values to change.

        Returns:
            VehicleScan: The edited scan.
        """
        if not updates:
            return await self.get_scan(scan_id)

        scan = await self._repository.update_scan(scan_id, self.business_id, updates)

        logger.info(
            "scan_updated",
            scan_id=scan_id,
            fields=sorted(updates),
            updated_by=self._operator.user_id,
        )

        return scan

    async def verify(self, scan_id: str) -> VehicleScan:
        """
        Mark a scan verified by the current operator.

        Verifying twice keeps the first verifier and time.
        """
        scan = await self._repository.verify_scan(scan_id, self.business_id, self._operator.user_id)

        logger.info(
            "scan_verified",
            scan_id=scan_id,
            verified_by=scan.verified_by,
        )

        return scan

    async def delete(self, scan_id: str) -> None:
        """Delete a scan permanently."""
        await self._repository.delete_scan(scan_id, self.business_id)

        logger.info(
            "scan_deleted",
            scan_id=scan_id,
            deleted_by=self._operator.user_id,
        )
