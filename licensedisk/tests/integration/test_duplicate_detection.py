"""
Integration tests for duplicate license detection.
"""

from datetime import datetime, timedelta

import pytest

from licensedisk.application.duplicate_detector import DuplicateDetector
from licensedisk.infrastructure.db.repository import RepositoryError, SqlScanRepository

BUSINESS_ID = "biz-001"
OTHER_BUSINESS_ID = "biz-002"


@pytest.fixture
def detector(repository: SqlScanRepository) -> DuplicateDetector:
    """Create detector over the test repository."""
    return DuplicateDetector(repository)


class TestDuplicateDetector:
    """Tests for DuplicateDetector."""

    @pytest.mark.asyncio
    async def test_unseen_license(self, detector: DuplicateDetector, save_scan):
        await save_scan("XYZ456WC")

        assert await detector.check_duplicate_license("ABC123GP", BUSINESS_ID) == []

    @pytest.mark.asyncio
    async def test_other_business_never_matches(self, detector: DuplicateDetector, save_scan):
        """Test an identical license under another business is invisible."""
        await save_scan("ABC123GP", business_id=OTHER_BUSINESS_ID)

        assert await detector.check_duplicate_license("ABC123GP", BUSINESS_ID) == []

        own = await save_scan("ABC123GP")
        matches = await detector.check_duplicate_license("ABC123GP", BUSINESS_ID)

        assert [m.scan_id for m in matches] == [own.id]

    @pytest.mark.asyncio
    async def test_most_recent_first(self, detector: DuplicateDetector, save_scan):
        base = datetime(2024, 6, 1, 8, 0)
        older = await save_scan("ABC123GP", scanned_at=base, scanned_by="user-001")
        newer = await save_scan("ABC123GP", scanned_at=base + timedelta(days=3), scanned_by="user-002")

        matches = await detector.check_duplicate_license("ABC123GP", BUSINESS_ID)

        assert [m.scan_id for m in matches] == [newer.id, older.id]
        assert matches[0].scanned_by_email == "user-002@example.com"
        assert matches[0].scanned_at == base + timedelta(days=3)

    @pytest.mark.asyncio
    async def test_match_is_exact_on_trimmed_number(self, detector: DuplicateDetector, save_scan):
        await save_scan("ABC123GP")

        assert len(await detector.check_duplicate_license("  ABC123GP\n", BUSINESS_ID)) == 1
        assert await detector.check_duplicate_license("ABC123G", BUSINESS_ID) == []
        assert await detector.check_duplicate_license("ABC123GPX", BUSINESS_ID) == []

    @pytest.mark.asyncio
    async def test_exclude_scan_id(self, detector: DuplicateDetector, save_scan):
        """Test the scan being edited is not its own duplicate."""
        editing = await save_scan("ABC123GP")
        other = await save_scan("ABC123GP")

        matches = await detector.check_duplicate_license(
            "ABC123GP",
            BUSINESS_ID,
            exclude_scan_id=editing.id,
        )

        assert [m.scan_id for m in matches] == [other.id]

    @pytest.mark.asyncio
    async def test_blank_license(self, detector: DuplicateDetector, save_scan):
        await save_scan("ABC123GP")

        assert await detector.check_duplicate_license("   ", BUSINESS_ID) == []

    @pytest.mark.asyncio
    async def test_business_required(self, detector: DuplicateDetector):
        with pytest.raises(RepositoryError) as exc_info:
            await detector.check_duplicate_license("ABC123GP", "")

        assert exc_info.value.code == "missing_business_id"
