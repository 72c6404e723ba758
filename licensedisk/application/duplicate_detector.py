"""
Duplicate license lookup within one business.

The detector only reports earlier scans; whether to save anyway is
decided by the operator.
"""

from licensedisk.core.logging import get_logger
from licensedisk.domain.models import DuplicateMatch
from licensedisk.infrastructure.db.repository import ScanRepository, require_business_id

logger = get_logger(__name__)


class DuplicateDetector:
    """
    Finds earlier scans of the same license number.

    Example:
        detector = DuplicateDetector(repository)
        matches = await detector.check_duplicate_license("ABC123GP", "biz-1")
    """

    def __init__(self, repository: ScanRepository):
        self._repository = repository

    async def check_duplicate_license(
        self,
        license_number: str,
        business_id: str,
        exclude_scan_id: str | None = None,
    ) -> list[DuplicateMatch]:
        """
        Look up earlier scans of a license number.

        Args:
            license_number: License number as parsed; surrounding whitespace
                is ignored.
            business_id: Business scope. Scans of other businesses are
                never returned.
            exclude_scan_id: Scan to leave out, used when editing.

        Returns:
            list: Matches, most recent first. Empty for a blank license number.

        Raises:
            RepositoryError: If business_id is missing or the lookup fails.
        """
        business_id = require_business_id(business_id)
        normalized = (license_number or "").strip()
        if not normalized:
            return []

        matches = await self._repository.find_scans_by_license(
            normalized,
            business_id,
            exclude_scan_id=exclude_scan_id,
        )
        matches = sorted(matches, key=lambda match: match.scanned_at, reverse=True)

        if matches:
            logger.info(
                "duplicate_license_found",
                license_number=normalized,
                business_id=business_id,
                matches=len(matches),
            )

        return matches
