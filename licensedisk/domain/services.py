"""
Domain services for judging captured license disk data.

These services contain pure business logic with no infrastructure
dependencies. They can be easily unit tested.
"""

from dataclasses import dataclass

from licensedisk.domain.models import UNKNOWN, ExtractionSource, LicenseRecord, ScanQuality


@dataclass
class ScanQualityAssessor:
    """
    Grades how much of a disk was read.

    A structured read with every field resolved is GOOD. A read missing
    up to max_fair_gaps fields, or a complete heuristic read, is FAIR.
    Anything worse is POOR.

    Example:
        >>> assessor = ScanQualityAssessor()
        >>> assessor.count_gaps(record)
        0
        >>> assessor.assess(record)
        <ScanQuality.GOOD: 'good'>
    """

    max_fair_gaps: int = 2

    def count_gaps(self, record: LicenseRecord) -> int:
        """Number of fields that fell back to "Unknown"."""
        return sum(
            1
            for value in (record.province, record.expiry_date, record.vehicle_type)
            if value == UNKNOWN
        )

    def assess(self, record: LicenseRecord) -> ScanQuality:
        """
        Grade a parsed record.

        Args:
            record: Parser output.

        Returns:
            ScanQuality: GOOD, FAIR or POOR.
        """
        gaps = self.count_gaps(record)

        if gaps == 0:
            if record.source == ExtractionSource.STRUCTURED:
                return ScanQuality.GOOD
            return ScanQuality.FAIR

        if gaps <= self.max_fair_gaps and record.source == ExtractionSource.STRUCTURED:
            return ScanQuality.FAIR

        return ScanQuality.POOR
